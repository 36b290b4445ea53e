"""Meal registration MCP tool."""

import logging
from typing import Any

from pydantic import ValidationError

from nutripocket_mcp.errors import (
    InvalidArgumentError,
    NutripocketError,
    UnsupportedOperationError,
)
from nutripocket_mcp.ledger import MealLedger
from nutripocket_mcp.models import MealCreate, MealOperation, MealUpdate, ToolResponse
from nutripocket_mcp.store import get_store

logger = logging.getLogger(__name__)


def get_ledger() -> MealLedger:
    """Build a ledger over the process-wide store."""
    return MealLedger(get_store())


def _parse_operation(operation: str) -> MealOperation:
    try:
        return MealOperation(operation)
    except ValueError:
        valid = ", ".join(op.value for op in MealOperation)
        raise UnsupportedOperationError(
            f"Unsupported operation '{operation}'. Must be one of: {valid}"
        ) from None


def _validation_message(error: ValidationError) -> str:
    problems = [
        f"{'.'.join(str(part) for part in e['loc']) or 'mealData'}: {e['msg']}"
        for e in error.errors()
    ]
    return "Invalid mealData - " + "; ".join(problems)


async def register_meal(
    operation: str,
    user_id: str | None = None,
    meal_id: str | None = None,
    meal_data: dict[str, Any] | None = None,
) -> dict:
    """Run one meal operation and wrap the outcome in the response envelope.

    Args:
        operation: One of create, read, update, delete, daily_summary
        user_id: Owner of the meals (create, read, daily_summary; optional
            ownership check for update and delete)
        meal_id: Meal to update or delete
        meal_data: Nutritional data for create (required) and update (sparse)

    Returns:
        {"success": True, "data": ...} or {"success": False, "data": message, "code": ...}
    """
    logger.debug(f"register_meal called: operation={operation}, user={user_id}, meal={meal_id}")

    try:
        ledger = get_ledger()

        match _parse_operation(operation):
            case MealOperation.CREATE:
                if meal_data is None:
                    raise InvalidArgumentError("mealData is required for create")
                record = await ledger.create(user_id, MealCreate.model_validate(meal_data))
                data = {
                    "message": "Meal registered successfully",
                    "mealId": record.id,
                    "meal": record.to_payload(),
                }

            case MealOperation.READ:
                meals = await ledger.read_today(user_id)
                data = {
                    "meals": [meal.to_payload() for meal in meals],
                    "totalMeals": len(meals),
                }

            case MealOperation.UPDATE:
                patch = MealUpdate.model_validate(meal_data or {})
                modified = await ledger.update(meal_id, patch, user_id)
                data = {"message": "Meal updated successfully", "modifiedCount": modified}

            case MealOperation.DELETE:
                deleted = await ledger.delete(meal_id, user_id)
                data = {"message": "Meal deleted successfully", "deletedCount": deleted}

            case MealOperation.DAILY_SUMMARY:
                summary = await ledger.daily_summary(user_id)
                data = summary.to_payload()

    except ValidationError as e:
        return ToolResponse.fail(_validation_message(e), InvalidArgumentError.code).to_dict()
    except NutripocketError as e:
        logger.warning(f"register_meal {operation} failed: {e}")
        return ToolResponse.fail(str(e), e.code).to_dict()
    except Exception as e:
        logger.exception(f"Unexpected error in register_meal {operation}")
        return ToolResponse.fail(f"Unexpected error: {str(e)}", "STORE_ERROR").to_dict()

    return ToolResponse.ok(data).to_dict()
