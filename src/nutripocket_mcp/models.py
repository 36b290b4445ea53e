"""Pydantic models for meal records, tool parameters and responses."""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Integers stay integers so calorie totals print without a trailing .0
Number = int | float
NonNegative = Annotated[int, Field(ge=0)] | Annotated[float, Field(ge=0)]


# Enums
class MealOperation(str, Enum):
    """Operations accepted by the register_meal tool."""

    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    DAILY_SUMMARY = "daily_summary"


# Base Models
class NutripocketBase(BaseModel):
    """Base model with common configuration."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


# Meal Models
class MealCreate(NutripocketBase):
    """Nutritional data for a new meal."""

    meal_type: str = Field(alias="mealType")
    description: str
    calories: NonNegative
    carbs: NonNegative = 0
    protein: NonNegative = 0
    fat: NonNegative = 0
    date: str | None = None

    @field_validator("carbs", "protein", "fat", mode="before")
    @classmethod
    def _missing_macro_is_zero(cls, value: Any) -> Any:
        return 0 if value is None else value


class MealUpdate(NutripocketBase):
    """Sparse update of a meal.

    Only fields the caller actually supplied end up in ``model_fields_set``,
    so an explicit ``calories=0`` or ``description=""`` is still written.
    """

    meal_type: str | None = Field(None, alias="mealType")
    description: str | None = None
    calories: NonNegative | None = None
    carbs: NonNegative | None = None
    protein: NonNegative | None = None
    fat: NonNegative | None = None

    def fields_to_set(self) -> dict[str, Any]:
        """Return the supplied fields keyed by their stored (camelCase) names."""
        supplied = self.model_dump(include=self.model_fields_set, by_alias=True)
        # An explicit null means "leave unchanged"; required fields never become null
        return {key: value for key, value in supplied.items() if value is not None}


class MealRecord(NutripocketBase):
    """A stored meal."""

    id: str
    user_id: str = Field(alias="userId")
    meal_type: str = Field(alias="mealType")
    description: str
    calories: Number
    carbs: Number = 0
    protein: Number = 0
    fat: Number = 0
    consumed_at: datetime = Field(alias="consumedAt")
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")

    def to_payload(self) -> dict[str, Any]:
        """Serialize for tool responses (camelCase keys, ISO timestamps)."""
        return self.model_dump(by_alias=True, mode="json")


class DailyTotals(NutripocketBase):
    """Summed nutrients for one day."""

    total_calories: Number = Field(0, alias="totalCalories")
    total_carbs: Number = Field(0, alias="totalCarbs")
    total_protein: Number = Field(0, alias="totalProtein")
    total_fat: Number = Field(0, alias="totalFat")
    meal_count: int = Field(0, alias="mealCount")


class DailySummary(NutripocketBase):
    """Totals and meals for the current local day."""

    date: str
    totals: DailyTotals
    meals: list[MealRecord] = Field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


# Response Models
class ToolResponse(BaseModel):
    """Uniform envelope returned by every tool."""

    success: bool
    data: Any = None
    code: str | None = None

    @classmethod
    def ok(cls, data: Any) -> "ToolResponse":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, message: str, code: str) -> "ToolResponse":
        return cls(success=False, data=message, code=code)

    def to_dict(self) -> dict[str, Any]:
        payload = {"success": self.success, "data": self.data}
        if self.code:
            payload["code"] = self.code
        return payload


# Error Models
class ErrorResponse(BaseModel):
    """Structured error from the WhatsApp gateway client."""

    error: bool = True
    code: str
    message: str

    @classmethod
    def not_found(cls, resource: str, identifier: str) -> "ErrorResponse":
        return cls(code="NOT_FOUND", message=f"{resource} '{identifier}' not found")

    @classmethod
    def auth_error(cls, message: str = "Authentication failed") -> "ErrorResponse":
        return cls(code="AUTH_ERROR", message=message)

    @classmethod
    def api_error(cls, message: str) -> "ErrorResponse":
        return cls(code="API_ERROR", message=message)

    @classmethod
    def validation_error(cls, message: str) -> "ErrorResponse":
        return cls(code="VALIDATION_ERROR", message=message)
