"""Meal ledger: create, read, update, delete and summarize a user's meals."""

import logging
from datetime import datetime, timedelta, timezone

from pydantic import TypeAdapter, ValidationError

from nutripocket_mcp.errors import InvalidArgumentError, MealNotFoundError
from nutripocket_mcp.models import (
    DailySummary,
    DailyTotals,
    MealCreate,
    MealRecord,
    MealUpdate,
)
from nutripocket_mcp.store import MealStore

logger = logging.getLogger(__name__)

_timestamp = TypeAdapter(datetime)


def _now() -> datetime:
    """Current time as an aware datetime in the server's local timezone."""
    return datetime.now().astimezone()


def day_bounds(now: datetime | None = None) -> tuple[datetime, datetime]:
    """Return [start, end) of the local calendar day containing ``now``.

    Local midnight carries the UTC offset in force at midnight, which is not
    the current one on daylight saving transition days. The end is exactly
    24 hours after local midnight.
    """
    now = now or _now()
    midnight = now.astimezone().replace(
        hour=0, minute=0, second=0, microsecond=0, tzinfo=None
    )
    start = midnight.astimezone()
    return start, start + timedelta(hours=24)


def parse_consumed_at(value: str | None, default: datetime) -> datetime:
    """Parse an ISO 8601 timestamp, falling back to ``default``.

    Naive timestamps are read as local time.
    """
    if not value:
        return default

    try:
        parsed = _timestamp.validate_python(value.strip())
    except ValidationError:
        logger.warning(f"Unparsable meal date '{value}', using current time")
        return default

    if parsed.tzinfo is None:
        return parsed.astimezone()
    return parsed.replace(tzinfo=timezone(parsed.utcoffset()))


def _require(value: str | None, name: str) -> str:
    if not value:
        raise InvalidArgumentError(f"{name} is required for this operation")
    return value


class MealLedger:
    """User-scoped meal records on top of a MealStore."""

    def __init__(self, store: MealStore):
        self.store = store

    async def create(self, user_id: str | None, meal: MealCreate) -> MealRecord:
        """Register a new meal.

        Macros default to 0 and the consumption time to now when absent.
        """
        user_id = _require(user_id, "userId")
        now = _now()

        record = await self.store.insert(
            {
                "userId": user_id,
                "mealType": meal.meal_type,
                "description": meal.description,
                "calories": meal.calories,
                "carbs": meal.carbs,
                "protein": meal.protein,
                "fat": meal.fat,
                "consumedAt": parse_consumed_at(meal.date, now),
                "createdAt": now,
                "updatedAt": now,
            }
        )
        logger.info(f"Registered meal {record.id} for user {user_id}")
        return record

    async def read_today(self, user_id: str | None) -> list[MealRecord]:
        """Meals consumed by the user today (local time), oldest first."""
        user_id = _require(user_id, "userId")
        start, end = day_bounds()
        return await self.store.find_between(user_id, start, end)

    async def update(
        self, meal_id: str | None, patch: MealUpdate, user_id: str | None = None
    ) -> int:
        """Apply a sparse update and refresh ``updatedAt``.

        Args:
            meal_id: Meal to update
            patch: Fields to overwrite; fields not supplied keep their values
            user_id: When given, only a meal owned by this user is updated

        Returns:
            Number of modified documents (0 or 1)

        Raises:
            MealNotFoundError: If no meal matches
        """
        meal_id = _require(meal_id, "mealId")
        fields = patch.fields_to_set()
        fields["updatedAt"] = _now()

        matched, modified = await self.store.update(meal_id, fields, user_id)
        if matched == 0:
            raise MealNotFoundError(meal_id)

        logger.info(f"Updated meal {meal_id}: {sorted(fields)}")
        return modified

    async def delete(self, meal_id: str | None, user_id: str | None = None) -> int:
        """Permanently delete a meal.

        Raises:
            MealNotFoundError: If no meal matches
        """
        meal_id = _require(meal_id, "mealId")

        deleted = await self.store.delete(meal_id, user_id)
        if deleted == 0:
            raise MealNotFoundError(meal_id)

        logger.info(f"Deleted meal {meal_id}")
        return deleted

    async def daily_summary(self, user_id: str | None) -> DailySummary:
        """Sum today's calories and macros for a user."""
        user_id = _require(user_id, "userId")
        start, end = day_bounds()
        meals = await self.store.find_between(user_id, start, end)

        totals = DailyTotals()
        for meal in meals:
            totals.total_calories += meal.calories or 0
            totals.total_carbs += meal.carbs or 0
            totals.total_protein += meal.protein or 0
            totals.total_fat += meal.fat or 0
            totals.meal_count += 1

        return DailySummary(date=start.date().isoformat(), totals=totals, meals=meals)
