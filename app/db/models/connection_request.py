from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    func,
    text,
)
from sqlalchemy.orm import relationship
from datetime import datetime
from app.db.base import Base

PENDING = "PENDING"
ACCEPTED = "ACCEPTED"
DECLINED = "DECLINED"
CANCELLED = "CANCELLED"

REQUEST_STATUSES = (PENDING, ACCEPTED, DECLINED, CANCELLED)


class ConnectionRequest(Base):
    __tablename__ = "connection_requests"
    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING', 'ACCEPTED', 'DECLINED', 'CANCELLED')",
            name="ck_connection_requests_status",
        ),
        CheckConstraint(
            "urgency IN ('LOW', 'MEDIUM', 'HIGH', 'URGENT')",
            name="ck_connection_requests_urgency",
        ),
        CheckConstraint(
            "budget_range_min IS NULL OR budget_range_max IS NULL OR budget_range_min <= budget_range_max",
            name="ck_connection_requests_budget",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)

    consumer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    vendor_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=True)

    message = Column(String, nullable=False)
    project_description = Column(String, nullable=True)
    budget_range_min = Column(Numeric(10, 2), nullable=True)
    budget_range_max = Column(Numeric(10, 2), nullable=True)
    preferred_start_date = Column(Date, nullable=True)
    urgency = Column(String, nullable=False, default="MEDIUM")

    status = Column(String, nullable=False, default=PENDING)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    responded_at = Column(DateTime, nullable=True)

    # relationships
    consumer = relationship("User", foreign_keys=[consumer_id])
    vendor = relationship("User", foreign_keys=[vendor_id])
    service = relationship("Service", foreign_keys=[service_id])


# At most one non-cancelled request per (consumer, vendor, service); a missing
# service counts as its own slot.
Index(
    "uq_connection_requests_active_triple",
    ConnectionRequest.consumer_id,
    ConnectionRequest.vendor_id,
    func.coalesce(ConnectionRequest.service_id, 0),
    unique=True,
    postgresql_where=text("status <> 'CANCELLED'"),
    sqlite_where=text("status <> 'CANCELLED'"),
)
