"""Tests for ratings and the cached vendor aggregate."""

import pytest
from sqlalchemy import event
from sqlalchemy.exc import IntegrityError

from conftest import auth, make_user
from app.core.errors import DuplicateRatingError, ForbiddenError, NotFoundError, ValidationError
from app.db.models.connection_request import ACCEPTED
from app.db.models.rating import Rating, VendorRatingAggregate
from app.db.models.user import CONSUMER, VENDOR, User
from app.schemas.connection import ConnectionRequestCreate
from app.schemas.rating import CategoryScores, PartialCategoryScores, RatingCreate, RatingUpdate
from app.services import connections as connection_service
from app.services import ratings as rating_service


def _scores(cost, quality, timeliness, professionalism):
    return CategoryScores(cost=cost, quality=quality, timeliness=timeliness, professionalism=professionalism)


def _rate(db, dispatcher, rater, vendor, scores=(4, 5, 4, 5), **kwargs):
    payload = RatingCreate(vendor_id=vendor.id, ratings=_scores(*scores), **kwargs)
    return rating_service.create_rating(db, dispatcher, rater, payload)


def _assert_cache_matches_replay(db, vendor_id):
    db.expire_all()
    cached = db.get(VendorRatingAggregate, vendor_id)
    replay = rating_service.compute_aggregate(db, vendor_id)
    assert (
        cached.rating_count,
        cached.cost_sum,
        cached.quality_sum,
        cached.timeliness_sum,
        cached.professionalism_sum,
    ) == replay.totals()


class TestHelpers:
    def test_overall_is_mean_of_categories(self):
        assert rating_service.overall_of(4, 5, 4, 5) == 4.5
        assert rating_service.overall_of(1, 1, 1, 2) == 1.25

    @pytest.mark.parametrize(
        "overall,bucket",
        [(1.0, 1), (1.25, 1), (1.5, 2), (2.75, 3), (4.25, 4), (4.5, 5), (5.0, 5)],
    )
    def test_star_bucket_rounds_half_up(self, overall, bucket):
        assert rating_service.star_bucket(overall) == bucket

    def test_empty_stats_average_zero(self):
        stats = rating_service.AggregateStats(vendor_id=1)
        assert stats.average_overall == 0.0
        assert stats.average_cost == 0.0
        assert stats.distribution == {1: 0, 2: 0, 3: 0, 4: 0, 5: 0}


class TestCreateRating:
    def test_overall_and_aggregate(self, db, dispatcher, sink, consumer, vendor):
        rating = _rate(db, dispatcher, consumer, vendor, (4, 5, 4, 5), comment="Great work")

        assert rating.overall_rating == 4.5
        assert rating.is_verified is False
        stats = rating_service.get_aggregate(db, vendor.id)
        assert stats.count == 1
        assert stats.average_overall == 4.5
        assert stats.average_quality == 5.0
        assert stats.distribution[5] == 1
        assert sink.events[-1]["type"] == "NEW_RATING"
        assert sink.events[-1]["userId"] == vendor.id

    def test_out_of_range_score_rejected(self):
        with pytest.raises(ValueError):
            _scores(0, 5, 5, 5)
        with pytest.raises(ValueError):
            _scores(5, 6, 5, 5)

    def test_duplicate_rating(self, db, dispatcher, consumer, vendor):
        _rate(db, dispatcher, consumer, vendor)
        with pytest.raises(DuplicateRatingError):
            _rate(db, dispatcher, consumer, vendor, (1, 1, 1, 1))
        assert rating_service.get_aggregate(db, vendor.id).count == 1

    def test_cannot_rate_self(self, db, dispatcher, vendor):
        with pytest.raises(ValidationError):
            _rate(db, dispatcher, vendor, vendor)

    def test_cannot_rate_consumer(self, db, dispatcher, consumer, other_consumer):
        with pytest.raises(NotFoundError):
            _rate(db, dispatcher, consumer, other_consumer)

    def test_rating_tied_to_accepted_request_is_verified(self, db, dispatcher, consumer, vendor):
        request = connection_service.create_request(
            db, dispatcher, consumer,
            ConnectionRequestCreate(vendor_id=vendor.id, message="Need the water heater replaced"),
        )
        connection_service.respond_to_request(db, dispatcher, request.id, vendor, ACCEPTED)

        rating = _rate(db, dispatcher, consumer, vendor, connection_request_id=request.id)
        assert rating.is_verified is True

        # one rating per request, separate from the unlinked rating
        with pytest.raises(DuplicateRatingError):
            _rate(db, dispatcher, consumer, vendor, connection_request_id=request.id)
        assert _rate(db, dispatcher, consumer, vendor).is_verified is False

    def test_pending_request_cannot_be_rated(self, db, dispatcher, consumer, vendor):
        request = connection_service.create_request(
            db, dispatcher, consumer,
            ConnectionRequestCreate(vendor_id=vendor.id, message="Need the water heater replaced"),
        )
        with pytest.raises(ValidationError):
            _rate(db, dispatcher, consumer, vendor, connection_request_id=request.id)

    def test_foreign_request_not_found(self, db, dispatcher, consumer, other_consumer, vendor):
        request = connection_service.create_request(
            db, dispatcher, other_consumer,
            ConnectionRequestCreate(vendor_id=vendor.id, message="Need the water heater replaced"),
        )
        with pytest.raises(NotFoundError):
            _rate(db, dispatcher, consumer, vendor, connection_request_id=request.id)


class TestUpdateAndDelete:
    def test_partial_update_recomputes(self, db, dispatcher, consumer, vendor):
        rating = _rate(db, dispatcher, consumer, vendor, (4, 5, 4, 5))

        updated = rating_service.update_rating(
            db, rating.id, consumer, RatingUpdate(ratings=PartialCategoryScores(cost=2))
        )
        assert updated.cost_rating == 2
        assert updated.quality_rating == 5
        assert updated.overall_rating == 4.0
        assert rating_service.get_aggregate(db, vendor.id).average_cost == 2.0

    def test_only_rater_can_update(self, db, dispatcher, consumer, other_consumer, vendor):
        rating = _rate(db, dispatcher, consumer, vendor)
        with pytest.raises(ForbiddenError):
            rating_service.update_rating(db, rating.id, other_consumer, RatingUpdate(comment="nope"))

    def test_hidden_rating_leaves_aggregate(self, db, dispatcher, consumer, vendor):
        rating = _rate(db, dispatcher, consumer, vendor)
        rating_service.update_rating(db, rating.id, consumer, RatingUpdate(is_public=False))
        assert rating_service.get_aggregate(db, vendor.id).count == 0

    def test_delete_then_rate_again(self, db, dispatcher, consumer, vendor):
        rating = _rate(db, dispatcher, consumer, vendor)
        rating_service.delete_rating(db, rating.id, consumer)
        assert rating_service.get_aggregate(db, vendor.id).count == 0

        with pytest.raises(NotFoundError):
            rating_service.delete_rating(db, rating.id, consumer)

        again = _rate(db, dispatcher, consumer, vendor, (3, 3, 3, 3))
        assert again.id != rating.id
        assert rating_service.get_aggregate(db, vendor.id).average_overall == 3.0


def test_cached_aggregate_equals_replay_after_mixed_writes(db, dispatcher, vendor):
    raters = [make_user(db, f"rater{i}@example.com", f"Rater {i}", CONSUMER) for i in range(5)]
    ratings = [
        _rate(db, dispatcher, rater, vendor, scores)
        for rater, scores in zip(raters, [(5, 5, 5, 5), (1, 2, 3, 4), (4, 4, 3, 3), (2, 2, 2, 1), (5, 4, 5, 4)])
    ]
    _assert_cache_matches_replay(db, vendor.id)

    rating_service.update_rating(db, ratings[1].id, raters[1], RatingUpdate(ratings=PartialCategoryScores(quality=5)))
    _assert_cache_matches_replay(db, vendor.id)

    rating_service.delete_rating(db, ratings[3].id, raters[3])
    _assert_cache_matches_replay(db, vendor.id)

    rating_service.update_rating(db, ratings[4].id, raters[4], RatingUpdate(is_public=False))
    _assert_cache_matches_replay(db, vendor.id)

    stats = rating_service.get_aggregate(db, vendor.id)
    # remaining: (5,5,5,5) (1,5,3,4) (4,4,3,3)
    assert stats.count == 3
    assert stats.average_overall == pytest.approx((20 + 13 + 14) / 12)
    assert stats.distribution == {1: 0, 2: 0, 3: 1, 4: 1, 5: 1}


def test_average_keeps_full_precision(db, dispatcher, vendor):
    # 4.25, 4.25, 4.5 -> mean 4.3333...
    for i, scores in enumerate([(4, 4, 4, 5), (5, 4, 4, 4), (4, 5, 4, 5)]):
        rater = make_user(db, f"p{i}@example.com", f"P {i}", CONSUMER)
        _rate(db, dispatcher, rater, vendor, scores)
    assert rating_service.get_aggregate(db, vendor.id).average_overall == pytest.approx(13 / 3)


class TestListRatings:
    @pytest.fixture
    def rated_vendor(self, db, dispatcher, vendor):
        for i, (scores, comment) in enumerate([((5, 5, 5, 5), "Superb"), ((2, 2, 2, 2), None), ((4, 4, 4, 4), "Solid")]):
            rater = make_user(db, f"l{i}@example.com", f"Lister {i}", CONSUMER)
            _rate(db, dispatcher, rater, vendor, scores, comment=comment)
        return vendor

    def test_sort_and_filters(self, db, rated_vendor):
        total, rows = rating_service.list_ratings(db, rated_vendor.id, sort="highest_rating")
        assert total == 3
        assert [r.overall_rating for r, _ in rows] == [5.0, 4.0, 2.0]
        assert rows[0][1] == "Lister 0"

        total, rows = rating_service.list_ratings(db, rated_vendor.id, min_rating=4)
        assert total == 2

        total, _ = rating_service.list_ratings(db, rated_vendor.id, has_review=True)
        assert total == 2

        total, rows = rating_service.list_ratings(db, rated_vendor.id, sort="lowest_rating", page=2, per_page=2)
        assert total == 3
        assert [r.overall_rating for r, _ in rows] == [5.0]

    def test_unknown_sort(self, db, rated_vendor):
        with pytest.raises(ValidationError):
            rating_service.list_ratings(db, rated_vendor.id, sort="random")


class TestRatingRoutes:
    def test_create_with_camel_case_payload(self, client, consumer, vendor):
        resp = client.post(
            "/ratings",
            json={
                "vendorId": vendor.id,
                "ratings": {"cost": 4, "quality": 5, "timeliness": 4, "professionalism": 5},
                "comment": "Fixed it fast",
            },
            headers=auth(consumer),
        )
        assert resp.status_code == 201
        data = resp.json()["data"]
        assert data["overallRating"] == 4.5
        assert data["raterName"] == consumer.name

        resp = client.get(f"/ratings/{vendor.id}/aggregation")
        agg = resp.json()["data"]
        assert agg["count"] == 1
        assert agg["averageOverall"] == 4.5
        assert agg["distribution"]["5"] == 1

    def test_out_of_range_is_validation_error(self, client, consumer, vendor):
        resp = client.post(
            "/ratings",
            json={"vendorId": vendor.id, "ratings": {"cost": 6, "quality": 5, "timeliness": 4, "professionalism": 5}},
            headers=auth(consumer),
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_duplicate_is_conflict(self, client, consumer, vendor):
        payload = {"vendorId": vendor.id, "ratings": {"cost": 3, "quality": 3, "timeliness": 3, "professionalism": 3}}
        assert client.post("/ratings", json=payload, headers=auth(consumer)).status_code == 201
        resp = client.post("/ratings", json=payload, headers=auth(consumer))
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "DUPLICATE_RATING"

    def test_list_and_delete(self, client, consumer, vendor):
        payload = {"vendorId": vendor.id, "ratings": {"cost": 3, "quality": 3, "timeliness": 3, "professionalism": 3}}
        rating_id = client.post("/ratings", json=payload, headers=auth(consumer)).json()["data"]["id"]

        listing = client.get(f"/ratings/{vendor.id}?perPage=5").json()["data"]
        assert listing["total"] == 1
        assert listing["perPage"] == 5
        assert listing["items"][0]["id"] == rating_id

        assert client.delete(f"/ratings/{rating_id}", headers=auth(consumer)).json()["success"] is True
        assert client.get(f"/ratings/{vendor.id}/aggregation").json()["data"]["count"] == 0

    def test_aggregation_for_unknown_vendor(self, client):
        resp = client.get("/ratings/999/aggregation")
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "NOT_FOUND"


class TestLiveTripleIndex:
    def _insert(self, db, rater, vendor, connection_request_id=None, is_deleted=False):
        db.add(Rating(
            rater_id=rater.id,
            rated_id=vendor.id,
            connection_request_id=connection_request_id,
            cost_rating=3,
            quality_rating=3,
            timeliness_rating=3,
            professionalism_rating=3,
            overall_rating=3.0,
            is_deleted=is_deleted,
        ))
        db.commit()

    def test_second_live_rating_rejected(self, db, consumer, vendor):
        self._insert(db, consumer, vendor)
        with pytest.raises(IntegrityError):
            self._insert(db, consumer, vendor)
        db.rollback()

    def test_deleted_ratings_do_not_count(self, db, consumer, vendor):
        self._insert(db, consumer, vendor, is_deleted=True)
        self._insert(db, consumer, vendor, is_deleted=True)
        self._insert(db, consumer, vendor)
        assert db.query(Rating).count() == 3


def test_create_losing_insert_race_is_duplicate(file_sessionmaker, dispatcher):
    setup = file_sessionmaker()
    vendor = make_user(setup, "v@example.com", "Race Vendor", VENDOR)
    rater = make_user(setup, "r@example.com", "Racer", CONSUMER)
    early = make_user(setup, "e@example.com", "Early Bird", CONSUMER)
    # aggregate row exists, so the racer only reads it before flushing
    _rate(setup, dispatcher, early, vendor, (5, 5, 5, 5))
    vendor_id, rater_id = vendor.id, rater.id
    setup.close()

    racer, rival = file_sessionmaker(), file_sessionmaker()

    def rival_commits_first(session, flush_context, instances):
        rival.add(Rating(
            rater_id=rater_id,
            rated_id=vendor_id,
            cost_rating=1,
            quality_rating=1,
            timeliness_rating=1,
            professionalism_rating=1,
            overall_rating=1.0,
        ))
        rival.commit()

    event.listen(racer, "before_flush", rival_commits_first, once=True)
    try:
        payload = RatingCreate(vendor_id=vendor_id, ratings=_scores(4, 4, 4, 4))
        with pytest.raises(DuplicateRatingError):
            rating_service.create_rating(racer, dispatcher, racer.get(User, rater_id), payload)

        mine = racer.query(Rating).filter(Rating.rater_id == rater_id).all()
        assert [r.overall_rating for r in mine] == [1.0]
    finally:
        racer.close()
        rival.close()
