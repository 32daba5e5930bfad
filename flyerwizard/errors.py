"""
errors.py — Exception taxonomy for the migration wizard.

Every wizard failure that reaches a caller is a WizardError subclass carrying:
  - code         machine-readable error code (rendered in the error envelope)
  - status_code  HTTP status used by the exception handler in main.py
  - details      optional list of {field, issue} dicts

Four families:
  Validation  (422)  malformed request, e.g. REPLACE without a valid suggestion id
  NotFound    (404)  missing shopping list, absent or expired session
  Conflict    (409)  nothing to migrate, list locked, session not ACTIVE, stale suggestions
  Internal    (500)  cache or storage I/O failure
"""
from __future__ import annotations

from typing import Any, Optional


class WizardError(Exception):
    code: str = "INTERNAL_ERROR"
    status_code: int = 500

    def __init__(
        self,
        message: str,
        details: Optional[list[dict[str, Any]]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or []


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

class WizardValidationError(WizardError):
    code = "VALIDATION_ERROR"
    status_code = 422

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message, details=[{"field": field, "issue": message}])
        self.field = field


# ---------------------------------------------------------------------------
# Not found
# ---------------------------------------------------------------------------

class NotFoundError(WizardError):
    code = "NOT_FOUND"
    status_code = 404


class ShoppingListNotFoundError(NotFoundError):
    def __init__(self, shopping_list_id: int) -> None:
        super().__init__(f"Shopping list {shopping_list_id} not found")
        self.shopping_list_id = shopping_list_id


class SessionNotFoundError(NotFoundError):
    def __init__(self, session_id: str) -> None:
        super().__init__(f"Wizard session '{session_id}' not found or expired")
        self.session_id = session_id


class SessionExpiredError(SessionNotFoundError):
    code = "SESSION_EXPIRED"


# ---------------------------------------------------------------------------
# Conflict
# ---------------------------------------------------------------------------

class ConflictError(WizardError):
    code = "CONFLICT"
    status_code = 409


class NoExpiredItemsError(ConflictError):
    code = "NO_EXPIRED_ITEMS"

    def __init__(self, shopping_list_id: int) -> None:
        super().__init__(f"Shopping list {shopping_list_id} has no expired items to migrate")


class ListLockedError(ConflictError):
    code = "LIST_LOCKED"

    def __init__(self, shopping_list_id: int) -> None:
        super().__init__(
            f"Shopping list {shopping_list_id} is already being migrated by another active wizard session"
        )


class SessionNotActiveError(ConflictError):
    def __init__(self, session_id: str, status: str) -> None:
        super().__init__(f"Wizard session '{session_id}' is not ACTIVE (status={status})")


class StaleSuggestionsError(ConflictError):
    code = "STALE_DATA"

    def __init__(self, stale_product_ids: list[int]) -> None:
        super().__init__(
            f"Revalidation failed: {len(stale_product_ids)} selected offers are stale or expired",
            details=[{"field": "suggestion_id", "issue": f"offer {pid} is no longer valid"}
                     for pid in stale_product_ids],
        )
        self.stale_product_ids = stale_product_ids


class IdempotencyConflictError(ConflictError):
    def __init__(self, key: str) -> None:
        super().__init__(f"Idempotency key '{key}' was already used for a different wizard session")


# ---------------------------------------------------------------------------
# Rate limiting / internal
# ---------------------------------------------------------------------------

class RateLimitExceededError(WizardError):
    code = "RATE_LIMIT_EXCEEDED"
    status_code = 429


class WizardInternalError(WizardError):
    code = "INTERNAL_ERROR"
    status_code = 500
