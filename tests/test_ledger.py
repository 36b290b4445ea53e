"""Tests for the meal ledger."""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from nutripocket_mcp.errors import InvalidArgumentError, MealNotFoundError, StoreError
from nutripocket_mcp.ledger import MealLedger, day_bounds, parse_consumed_at
from nutripocket_mcp.models import MealCreate, MealUpdate
from nutripocket_mcp.store import InMemoryMealStore

LOCAL = timezone(timedelta(hours=-3))
NOON = datetime(2026, 3, 10, 12, 30, tzinfo=LOCAL)
MIDNIGHT = datetime(2026, 3, 10, 0, 0, tzinfo=LOCAL)

# POSIX TZ strings: fixed UTC-3, and US Eastern with its DST rules
SAO_PAULO_TZ = "<-03>3"
NEW_YORK_TZ = "EST5EDT,M3.2.0,M11.1.0"


@pytest.fixture(autouse=True)
def sao_paulo(local_timezone):
    """Run every ledger test with the server in UTC-3."""
    local_timezone(SAO_PAULO_TZ)


class Clock:
    """Settable replacement for the ledger's clock."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock():
    """Freeze the ledger's clock at noon local time."""
    fixed = Clock(NOON)
    with patch("nutripocket_mcp.ledger._now", fixed):
        yield fixed


@pytest.fixture
def ledger(clock):
    """Create a ledger over an empty in-memory store."""
    return MealLedger(InMemoryMealStore())


def lunch(**overrides) -> MealCreate:
    data = {
        "mealType": "lunch",
        "description": "rice and beans",
        "calories": 450,
        "carbs": 60,
        "protein": 15,
        "fat": 10,
    }
    data.update(overrides)
    return MealCreate.model_validate(data)


class TestDayBounds:
    """Tests for local day boundaries."""

    def test_day_bounds_start_at_local_midnight(self):
        """Test that the day starts at 00:00 and ends 24 hours later."""
        start, end = day_bounds(NOON)

        assert start == MIDNIGHT
        assert end == MIDNIGHT + timedelta(hours=24)

    def test_day_bounds_at_midnight(self):
        """Test that midnight belongs to the day it starts."""
        start, _ = day_bounds(MIDNIGHT)

        assert start == MIDNIGHT

    def test_day_bounds_use_server_timezone(self):
        """Test that a UTC clock reading is mapped to the local day."""
        start, _ = day_bounds(datetime(2026, 3, 11, 1, 0, tzinfo=timezone.utc))

        assert start == MIDNIGHT

    def test_day_bounds_on_spring_forward_day(self, local_timezone):
        """Test that midnight keeps standard time when DST starts later that day."""
        local_timezone(NEW_YORK_TZ)

        start, end = day_bounds(datetime(2026, 3, 8, 12, 0).astimezone())

        assert start == datetime(2026, 3, 8, 5, 0, tzinfo=timezone.utc)
        assert start.utcoffset() == timedelta(hours=-5)
        assert end == start + timedelta(hours=24)

        late_dinner = datetime(2026, 3, 7, 23, 30, tzinfo=timezone(timedelta(hours=-5)))
        assert not start <= late_dinner < end

    def test_day_bounds_on_fall_back_day(self, local_timezone):
        """Test that midnight keeps daylight time when DST ends later that day."""
        local_timezone(NEW_YORK_TZ)

        start, _ = day_bounds(datetime(2026, 11, 1, 12, 0).astimezone())

        assert start == datetime(2026, 11, 1, 4, 0, tzinfo=timezone.utc)
        assert start.utcoffset() == timedelta(hours=-4)

        breakfast = datetime(2026, 11, 1, 0, 30, tzinfo=timezone(timedelta(hours=-4)))
        assert start <= breakfast


class TestParseConsumedAt:
    """Tests for meal date parsing."""

    def test_missing_date_uses_default(self):
        assert parse_consumed_at(None, NOON) == NOON
        assert parse_consumed_at("", NOON) == NOON

    def test_utc_z_suffix(self):
        """Test ISO 8601 strings ending in Z."""
        result = parse_consumed_at("2026-03-10T08:30:00.000Z", NOON)

        assert result == datetime(2026, 3, 10, 8, 30, tzinfo=timezone.utc)

    def test_fractional_seconds_with_z_suffix(self):
        """Test a single fractional digit before the Z designator."""
        result = parse_consumed_at("2026-03-10T08:30:00.5Z", NOON)

        assert result == datetime(2026, 3, 10, 8, 30, 0, 500000, tzinfo=timezone.utc)

    def test_offset_is_kept(self):
        result = parse_consumed_at("2026-03-10T08:30:00+05:30", NOON)

        assert result.utcoffset() == timedelta(hours=5, minutes=30)
        assert result.isoformat() == "2026-03-10T08:30:00+05:30"

    def test_unparsable_date_uses_default(self):
        assert parse_consumed_at("yesterday-ish", NOON) == NOON

    def test_naive_date_is_local(self):
        """Test that naive timestamps get the local timezone."""
        result = parse_consumed_at("2026-03-10T08:30:00", NOON)

        assert result == datetime(2026, 3, 10, 8, 30, tzinfo=LOCAL)


class TestCreate:
    """Tests for registering meals."""

    @pytest.mark.asyncio
    async def test_create_returns_stored_record(self, ledger):
        """Test that the record carries an id and creation timestamps."""
        record = await ledger.create("u1", lunch())

        assert record.id
        assert record.user_id == "u1"
        assert record.meal_type == "lunch"
        assert record.calories == 450
        assert record.consumed_at == NOON
        assert record.created_at == NOON
        assert record.updated_at == NOON

    @pytest.mark.asyncio
    async def test_create_assigns_unique_ids(self, ledger):
        """Test that repeated creates never reuse an id."""
        ids = {(await ledger.create("u1", lunch())).id for _ in range(5)}

        assert len(ids) == 5

    @pytest.mark.asyncio
    async def test_create_defaults_missing_macros_to_zero(self, ledger):
        """Test that absent and null macros are stored as 0."""
        meal = MealCreate.model_validate(
            {"mealType": "snack", "description": "apple", "calories": 80, "fat": None}
        )

        record = await ledger.create("u1", meal)

        assert (record.carbs, record.protein, record.fat) == (0, 0, 0)

    @pytest.mark.asyncio
    async def test_create_uses_supplied_date(self, ledger):
        """Test that an explicit date becomes the consumption time."""
        record = await ledger.create("u1", lunch(date="2026-03-10T08:00:00-03:00"))

        assert record.consumed_at == datetime(2026, 3, 10, 8, 0, tzinfo=LOCAL)
        assert record.created_at == NOON

    @pytest.mark.asyncio
    async def test_create_requires_user(self, ledger):
        """Test that a missing userId is rejected."""
        with pytest.raises(InvalidArgumentError):
            await ledger.create(None, lunch())


class TestReadToday:
    """Tests for reading today's meals."""

    @pytest.mark.asyncio
    async def test_read_today_filters_to_local_day(self, ledger):
        """Test that yesterday's and tomorrow's meals are excluded."""
        await ledger.create("u1", lunch(description="yesterday", date="2026-03-09T23:59:59-03:00"))
        await ledger.create("u1", lunch(description="midnight", date="2026-03-10T00:00:00-03:00"))
        await ledger.create("u1", lunch(description="tomorrow", date="2026-03-11T00:00:00-03:00"))

        meals = await ledger.read_today("u1")

        assert [m.description for m in meals] == ["midnight"]

    @pytest.mark.asyncio
    async def test_read_today_orders_by_consumption_time(self, ledger):
        """Test ascending order regardless of insertion order."""
        await ledger.create("u1", lunch(description="dinner", date="2026-03-10T20:00:00-03:00"))
        await ledger.create("u1", lunch(description="breakfast", date="2026-03-10T07:00:00-03:00"))
        await ledger.create("u1", lunch(description="lunch"))

        meals = await ledger.read_today("u1")

        assert [m.description for m in meals] == ["breakfast", "lunch", "dinner"]

    @pytest.mark.asyncio
    async def test_read_today_is_user_scoped(self, ledger):
        await ledger.create("u1", lunch())
        await ledger.create("u2", lunch())

        meals = await ledger.read_today("u1")

        assert len(meals) == 1
        assert meals[0].user_id == "u1"

    @pytest.mark.asyncio
    async def test_read_today_empty(self, ledger):
        """Test that no meals is a valid result."""
        assert await ledger.read_today("nobody") == []


class TestUpdate:
    """Tests for sparse meal updates."""

    @pytest.mark.asyncio
    async def test_update_single_field_keeps_others(self, ledger, clock):
        """Test that only supplied fields change and updatedAt is refreshed."""
        record = await ledger.create("u1", lunch())
        clock.now = NOON + timedelta(hours=1)

        modified = await ledger.update(record.id, MealUpdate(calories=500))

        assert modified == 1
        [updated] = await ledger.read_today("u1")
        assert updated.calories == 500
        assert updated.meal_type == "lunch"
        assert updated.description == "rice and beans"
        assert (updated.carbs, updated.protein, updated.fat) == (60, 15, 10)
        assert updated.created_at == NOON
        assert updated.updated_at == NOON + timedelta(hours=1)

    @pytest.mark.asyncio
    async def test_update_writes_falsy_values(self, ledger):
        """Test that zero and empty-string values are written, not skipped."""
        record = await ledger.create("u1", lunch())

        await ledger.update(
            record.id, MealUpdate.model_validate({"calories": 0, "description": "", "fat": 0})
        )

        [updated] = await ledger.read_today("u1")
        assert updated.calories == 0
        assert updated.description == ""
        assert updated.fat == 0

    @pytest.mark.asyncio
    async def test_update_without_fields_refreshes_timestamp(self, ledger, clock):
        """Test that an empty update still touches updatedAt."""
        record = await ledger.create("u1", lunch())
        clock.now = NOON + timedelta(minutes=5)

        await ledger.update(record.id, MealUpdate())

        [updated] = await ledger.read_today("u1")
        assert updated.updated_at == NOON + timedelta(minutes=5)
        assert updated.calories == 450

    @pytest.mark.asyncio
    async def test_update_missing_meal(self, ledger):
        """Test that a nonexistent id fails and leaves other meals alone."""
        record = await ledger.create("u1", lunch())

        with pytest.raises(MealNotFoundError, match="Meal '507f1f77bcf86cd799439011' not found"):
            await ledger.update("507f1f77bcf86cd799439011", MealUpdate(calories=1))

        [untouched] = await ledger.read_today("u1")
        assert untouched.id == record.id
        assert untouched.calories == 450

    @pytest.mark.asyncio
    async def test_update_checks_owner_when_given(self, ledger):
        """Test that a userId restricts the update to that user's meal."""
        record = await ledger.create("u1", lunch())

        with pytest.raises(MealNotFoundError):
            await ledger.update(record.id, MealUpdate(calories=1), user_id="u2")

    @pytest.mark.asyncio
    async def test_update_malformed_id(self, ledger):
        with pytest.raises(StoreError):
            await ledger.update("not-an-id", MealUpdate(calories=1))


class TestDelete:
    """Tests for deleting meals."""

    @pytest.mark.asyncio
    async def test_delete_removes_meal(self, ledger):
        """Test that a deleted meal no longer shows up today."""
        keep = await ledger.create("u1", lunch(description="keep"))
        drop = await ledger.create("u1", lunch(description="drop"))

        deleted = await ledger.delete(drop.id)

        assert deleted == 1
        assert [m.id for m in await ledger.read_today("u1")] == [keep.id]

    @pytest.mark.asyncio
    async def test_delete_missing_meal(self, ledger):
        with pytest.raises(MealNotFoundError):
            await ledger.delete("507f1f77bcf86cd799439011")

    @pytest.mark.asyncio
    async def test_delete_twice(self, ledger):
        """Test that deletion is permanent."""
        record = await ledger.create("u1", lunch())
        await ledger.delete(record.id)

        with pytest.raises(MealNotFoundError):
            await ledger.delete(record.id)

    @pytest.mark.asyncio
    async def test_delete_requires_meal_id(self, ledger):
        with pytest.raises(InvalidArgumentError):
            await ledger.delete(None)


class TestDailySummary:
    """Tests for daily totals."""

    @pytest.mark.asyncio
    async def test_summary_without_meals(self, ledger):
        """Test that an empty day sums to zero."""
        summary = await ledger.daily_summary("u1")

        assert summary.date == "2026-03-10"
        assert summary.totals.model_dump(by_alias=True) == {
            "totalCalories": 0,
            "totalCarbs": 0,
            "totalProtein": 0,
            "totalFat": 0,
            "mealCount": 0,
        }
        assert summary.meals == []

    @pytest.mark.asyncio
    async def test_summary_single_lunch(self, ledger):
        """Test the rice-and-beans lunch scenario."""
        await ledger.create("u1", lunch())

        summary = await ledger.daily_summary("u1")

        assert summary.totals.total_calories == 450
        assert summary.totals.meal_count == 1
        assert summary.meals[0].description == "rice and beans"

    @pytest.mark.asyncio
    async def test_summary_adds_calories(self, ledger):
        """Test that two meals of 300 and 700 kcal sum to 1000."""
        await ledger.create("u2", lunch(calories=300))
        await ledger.create("u2", lunch(calories=700))

        summary = await ledger.daily_summary("u2")

        assert summary.totals.total_calories == 1000
        assert summary.totals.meal_count == 2

    @pytest.mark.asyncio
    async def test_summary_matches_returned_meals(self, ledger):
        """Test that totals equal the sum of the meals in the same response."""
        await ledger.create("u1", MealCreate(mealType="breakfast", description="toast", calories=210.5, carbs=30.25))
        await ledger.create("u1", MealCreate(mealType="snack", description="nuts", calories=170, fat=14.5))
        await ledger.create("u1", lunch(protein=22.75))
        await ledger.create("u1", lunch(date="2026-03-09T12:00:00-03:00"))

        summary = await ledger.daily_summary("u1")

        assert summary.totals.meal_count == len(summary.meals) == 3
        assert summary.totals.total_calories == pytest.approx(sum(m.calories for m in summary.meals))
        assert summary.totals.total_carbs == pytest.approx(sum(m.carbs for m in summary.meals))
        assert summary.totals.total_protein == pytest.approx(sum(m.protein for m in summary.meals))
        assert summary.totals.total_fat == pytest.approx(sum(m.fat for m in summary.meals))
