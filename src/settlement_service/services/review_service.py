"""Review submission, eligibility checks and rating statistics."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from settlement_service.errors import Conflict, Forbidden, NotFound, ValidationError
from settlement_service.logging import get_logger
from settlement_service.services import lifecycle
from settlement_service.services.ids import REVIEW_PREFIX, new_id, now_iso
from settlement_service.services.presenters import review_view
from settlement_service.services.review_store import DuplicateReviewError

if TYPE_CHECKING:
    from settlement_service.services.notification_dispatcher import NotificationDispatcher
    from settlement_service.services.rating_aggregator import RatingAggregator
    from settlement_service.services.review_store import ReviewStore
    from settlement_service.services.task_store import TaskStore

REVIEWER_ROLES = frozenset({lifecycle.POSTER, lifecycle.TASKER})


class ReviewService:
    """Validates and records reviews, then refreshes the reviewee's ratings."""

    def __init__(
        self,
        review_store: ReviewStore,
        task_store: TaskStore,
        rating_aggregator: RatingAggregator,
        notifier: NotificationDispatcher,
        min_text_length: int,
        max_text_length: int,
        recent_reviews_limit: int,
    ) -> None:
        self._review_store = review_store
        self._task_store = task_store
        self._rating_aggregator = rating_aggregator
        self._notifier = notifier
        self._min_text_length = min_text_length
        self._max_text_length = max_text_length
        self._recent_reviews_limit = recent_reviews_limit
        self._logger = get_logger(__name__)

    def _validate_rating(self, rating: object) -> int:
        if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
            raise ValidationError(
                "INVALID_RATING",
                "rating must be an integer between 1 and 5",
                {"rating": rating},
            )
        return rating

    def _validate_text(self, text: str) -> str:
        stripped = text.strip()
        if not self._min_text_length <= len(stripped) <= self._max_text_length:
            raise ValidationError(
                "INVALID_REVIEW_TEXT",
                f"text must be between {self._min_text_length} and "
                f"{self._max_text_length} characters",
                {"length": len(stripped)},
            )
        return stripped

    def _derive_reviewer_role(self, task: dict[str, Any], reviewer_id: str, reviewee_id: str) -> str:
        """
        Work out which side of the task the reviewer was on.

        The task must be completed, the reviewer must be a participant and
        the reviewee must be the other participant.
        """
        if task["status"] != lifecycle.COMPLETED:
            raise ValidationError(
                "REVIEW_NOT_ALLOWED",
                "Reviews can only be left for completed tasks",
                {"status": task["status"]},
            )
        if reviewer_id == reviewee_id:
            raise ValidationError("SELF_REVIEW", "Users cannot review themselves", {})

        role = lifecycle.actor_for(task, reviewer_id)
        if role is None:
            raise Forbidden("Only the poster or the assigned tasker can review this task")

        counterpart = task["assignee_id"] if role == lifecycle.POSTER else task["poster_id"]
        if reviewee_id != counterpart:
            raise ValidationError(
                "REVIEW_NOT_ALLOWED",
                "The reviewee must be the other participant of the task",
                {},
            )
        return role

    async def create_review(
        self,
        reviewee_id: str,
        task_id: str,
        reviewer_id: str,
        rating: object,
        text: str,
        reviewer_role: str | None,
    ) -> dict[str, Any]:
        """Record a review and return it together with the reviewee's refreshed ratings."""
        valid_rating = self._validate_rating(rating)
        valid_text = self._validate_text(text)
        if reviewer_role is not None and reviewer_role not in REVIEWER_ROLES:
            raise ValidationError(
                "INVALID_REVIEWER_ROLE",
                "reviewer_role must be 'poster' or 'tasker'",
                {"reviewer_role": reviewer_role},
            )

        task = self._task_store.get_task(task_id)
        if task is None:
            raise NotFound("TASK_NOT_FOUND", "Task not found", {"task_id": task_id})

        role = self._derive_reviewer_role(task, reviewer_id, reviewee_id)
        if reviewer_role is not None and reviewer_role != role:
            raise ValidationError(
                "INVALID_REVIEWER_ROLE",
                f"reviewer_role does not match: the reviewer was the {role}",
                {"expected": role},
            )

        review = {
            "review_id": new_id(REVIEW_PREFIX),
            "task_id": task_id,
            "reviewer_id": reviewer_id,
            "reviewee_id": reviewee_id,
            "reviewer_role": role,
            "rating": valid_rating,
            "text": valid_text,
            "visible": True,
            "created_at": now_iso(),
        }
        try:
            self._review_store.insert_review(review)
        except DuplicateReviewError as exc:
            raise Conflict(
                "REVIEW_ALREADY_EXISTS",
                "You have already reviewed this user for this task",
                {"task_id": task_id},
            ) from exc

        ratings = self._rating_aggregator.on_review_created(review)
        self._logger.info(
            "Review recorded",
            extra={
                "review_id": review["review_id"],
                "task_id": task_id,
                "reviewee_id": reviewee_id,
                "rating": valid_rating,
            },
        )
        self._notifier.dispatch(
            reviewee_id,
            "review_received",
            {"task_id": task_id, "review_id": review["review_id"], "rating": valid_rating},
        )
        return {"review": review_view(review), "ratings": ratings}

    async def check_eligibility(
        self, reviewee_id: str, task_id: str, reviewer_id: str
    ) -> dict[str, Any]:
        """
        Whether ``reviewer_id`` may review ``reviewee_id`` for a task.

        Runs the same checks as create_review. A failed check is reported
        as ``can_review: false`` with the error code as ``reason`` instead
        of being raised; only an unknown task is an error.
        """
        task = self._task_store.get_task(task_id)
        if task is None:
            raise NotFound("TASK_NOT_FOUND", "Task not found", {"task_id": task_id})

        result: dict[str, Any] = {
            "user_id": reviewee_id,
            "task_id": task_id,
            "reviewer_id": reviewer_id,
            "can_review": False,
            "reason": None,
            "reviewer_role": None,
        }
        try:
            role = self._derive_reviewer_role(task, reviewer_id, reviewee_id)
        except (ValidationError, Forbidden) as exc:
            result["reason"] = exc.error
            return result

        result["reviewer_role"] = role
        if self._review_store.has_review(task_id, reviewer_id, reviewee_id):
            result["reason"] = "REVIEW_ALREADY_EXISTS"
            return result
        result["can_review"] = True
        return result

    async def list_user_reviews(
        self,
        user_id: str,
        role: str | None,
        offset: int,
        limit: int,
    ) -> dict[str, Any]:
        """
        Reviews a user received. ``role`` filters on the role the user
        played: ``poster`` returns reviews written by taskers.
        """
        if role is not None and role not in REVIEWER_ROLES:
            raise ValidationError(
                "INVALID_PAYLOAD",
                "role must be 'poster' or 'tasker'",
                {"role": role},
            )
        reviewer_role = None
        if role is not None:
            reviewer_role = lifecycle.TASKER if role == lifecycle.POSTER else lifecycle.POSTER
        reviews, total = self._review_store.list_reviews_for_user(
            user_id, reviewer_role, limit, offset
        )
        return {
            "user_id": user_id,
            "reviews": [review_view(review) for review in reviews],
            "total": total,
            "offset": offset,
            "limit": limit,
        }

    async def list_task_reviews(self, task_id: str) -> dict[str, Any]:
        if self._task_store.get_task(task_id) is None:
            raise NotFound("TASK_NOT_FOUND", "Task not found", {"task_id": task_id})
        reviews = self._review_store.list_reviews_for_task(task_id)
        return {"task_id": task_id, "reviews": [review_view(review) for review in reviews]}

    async def get_rating_stats(self, user_id: str) -> dict[str, Any]:
        """Three aggregates plus the most recent visible reviews."""
        recent, _ = self._review_store.list_reviews_for_user(
            user_id, None, self._recent_reviews_limit, 0
        )
        return {
            "user_id": user_id,
            **self._rating_aggregator.get_aggregates(user_id),
            "recent_reviews": [review_view(review) for review in recent],
        }
