"""Exceptions raised by the meal ledger and its storage backends.

Each carries the ``code`` reported in the failure envelope of the
register_meal tool.
"""


class NutripocketError(Exception):
    """Base class for errors converted into tool failure responses."""

    code = "ERROR"


class InvalidArgumentError(NutripocketError):
    """A required input is missing or has the wrong type."""

    code = "INVALID_ARGUMENT"


class MealNotFoundError(NutripocketError):
    """No meal matches the given id."""

    code = "NOT_FOUND"

    def __init__(self, meal_id: str):
        super().__init__(f"Meal '{meal_id}' not found")


class StoreError(NutripocketError):
    """The backing store failed (connection, malformed id, driver error)."""

    code = "STORE_ERROR"


class UnsupportedOperationError(NutripocketError):
    """The register_meal operation tag is not one of the known operations."""

    code = "UNSUPPORTED_OPERATION"
