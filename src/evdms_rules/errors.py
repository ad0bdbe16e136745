"""
evdms_rules.errors

Domain error taxonomy shared by every rules module.

Responsibilities:
- Define recoverable, user-facing failures (Forbidden, InvalidTransition, ...).
- Define `ConfigurationError` for programming errors that must fail loudly.
- Carry structured context so the HTTP layer can render errors without string parsing.
"""

from __future__ import annotations

from typing import Any


class DomainError(Exception):
    """
    Base class for rule violations. `code` is a stable identifier exposed to clients.
    """

    code = "domain_error"

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.code, "detail": self.message, **self.context}


class Unauthenticated(DomainError):
    code = "unauthenticated"


class Forbidden(DomainError):
    code = "forbidden"


class NotFound(DomainError):
    code = "not_found"


class InvalidTransition(DomainError):
    code = "invalid_transition"

    def __init__(self, *, entity: str, current: str, requested: str, role: str | None) -> None:
        super().__init__(
            f"{entity} cannot move from '{current}' to '{requested}' as {role or 'anonymous'}",
            entity=entity,
            current=current,
            requested=requested,
            role=role,
        )
        self.entity = entity
        self.current = current
        self.requested = requested
        self.role = role


class Expired(DomainError):
    code = "expired"


class DebtLimitExceeded(DomainError):
    code = "debt_limit_exceeded"

    def __init__(self, *, dealer_id: str, current_debt: int, amount: int, debt_limit: int) -> None:
        super().__init__(
            f"charge of {amount} would raise dealer {dealer_id} debt to "
            f"{current_debt + amount}, above limit {debt_limit}",
            dealer_id=dealer_id,
            current_debt=current_debt,
            amount=amount,
            debt_limit=debt_limit,
        )
        self.dealer_id = dealer_id
        self.current_debt = current_debt
        self.amount = amount
        self.debt_limit = debt_limit


class InvalidAmount(DomainError):
    code = "invalid_amount"


class ConfigurationError(RuntimeError):
    """
    Raised for programming errors: unknown roles, malformed route tables.
    Deliberately not a `DomainError` so no handler renders it as a user-facing failure.
    """


# --- Module Notes -----------------------------------------------------------
# The API layer maps DomainError subclasses to HTTP statuses in one place
# (`evdms_rules.api.errors`). ConfigurationError is left to propagate.
