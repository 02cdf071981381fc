# Importing the models registers every table on Base.metadata.
from app.db.models.user import User
from app.db.models.category import Category
from app.db.models.service import Service
from app.db.models.connection_request import ConnectionRequest
from app.db.models.message import Message
from app.db.models.rating import Rating, VendorRatingAggregate
from app.db.models.notification import Notification

__all__ = [
    "User",
    "Category",
    "Service",
    "ConnectionRequest",
    "Message",
    "Rating",
    "VendorRatingAggregate",
    "Notification",
]
