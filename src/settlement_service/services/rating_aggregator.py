"""Per-user rating aggregates recomputed from the full review set."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from settlement_service.services.ids import now_iso

if TYPE_CHECKING:
    from settlement_service.services.review_store import ReviewStore

OVERALL = "overall"
AS_POSTER = "as_poster"
AS_TASKER = "as_tasker"
SCOPES: tuple[str, ...] = (OVERALL, AS_POSTER, AS_TASKER)

# A reviewee acted as poster when the tasker wrote the review, and vice versa.
_SCOPE_REVIEWER_ROLE = {AS_POSTER: "tasker", AS_TASKER: "poster"}


def compute_rating_aggregates(user_id: str, reviews: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Count, unrounded mean and 1-5 histogram for each scope."""
    updated_at = now_iso()
    aggregates: list[dict[str, Any]] = []
    for scope in SCOPES:
        role = _SCOPE_REVIEWER_ROLE.get(scope)
        ratings = [
            int(review["rating"])
            for review in reviews
            if review["visible"] and (role is None or review["reviewer_role"] == role)
        ]
        histogram = {star: 0 for star in range(1, 6)}
        for rating in ratings:
            histogram[rating] += 1
        count = len(ratings)
        aggregates.append(
            {
                "user_id": user_id,
                "scope": scope,
                "total_count": count,
                "average": sum(ratings) / count if count else 0.0,
                "star_1": histogram[1],
                "star_2": histogram[2],
                "star_3": histogram[3],
                "star_4": histogram[4],
                "star_5": histogram[5],
                "updated_at": updated_at,
            }
        )
    return aggregates


def aggregate_view(aggregate: dict[str, Any] | None) -> dict[str, Any]:
    if aggregate is None:
        return {
            "average": 0.0,
            "total_count": 0,
            "distribution": {str(star): 0 for star in range(1, 6)},
        }
    return {
        "average": round(float(aggregate["average"]), 2),
        "total_count": aggregate["total_count"],
        "distribution": {str(star): aggregate[f"star_{star}"] for star in range(1, 6)},
    }


class RatingAggregator:
    """Stateless recomputation of rating aggregates on review creation."""

    def __init__(self, store: ReviewStore) -> None:
        self._store = store

    def on_review_created(self, review: dict[str, Any]) -> dict[str, Any]:
        """Rebuild the reviewee's three aggregates and return their views."""
        user_id = review["reviewee_id"]
        aggregates = self._store.recompute_rating_aggregates(
            user_id,
            lambda reviews: compute_rating_aggregates(user_id, reviews),
        )
        return {aggregate["scope"]: aggregate_view(aggregate) for aggregate in aggregates}

    def get_aggregates(self, user_id: str) -> dict[str, Any]:
        stored = self._store.get_rating_aggregates(user_id)
        return {scope: aggregate_view(stored.get(scope)) for scope in SCOPES}
