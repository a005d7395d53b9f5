"""
Typed errors raised by the workflow stages.

Every error carries a machine-readable ``code`` and the HTTP status the API
layer answers with, plus the identifiers needed to act on it::

    PaymentFlowError
    +-- NotFoundError              404  entity, identifier
    +-- InvalidStateError          409  entity, identifier, current_status, action
    +-- InvalidFilterError         400  field, value, allowed
    +-- GenerationExhaustedError   503  prefix, attempts (safe to retry)

A record that fails field checks is not an error: it ends up REJECTED with a
reason string. Broken links after a committed receipt are not errors either;
they are logged, journaled and repaired by ``app.reconciliation``.
"""
from __future__ import annotations

from typing import Any, Iterable, Optional


class PaymentFlowError(Exception):
    code = "PAYMENT_FLOW_ERROR"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message}


class NotFoundError(PaymentFlowError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, entity: str, identifier: Any):
        self.entity = entity
        self.identifier = identifier
        super().__init__(f"{entity} not found: {identifier}")

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(entity=self.entity, identifier=str(self.identifier))
        return data


class InvalidStateError(PaymentFlowError):
    code = "INVALID_STATE"
    status_code = 409

    def __init__(self, entity: str, identifier: Any, current_status: Optional[str], action: str):
        self.entity = entity
        self.identifier = identifier
        self.current_status = current_status
        self.action = action
        super().__init__(
            f"Cannot {action} {entity} {identifier} in status {current_status}"
        )

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(
            entity=self.entity,
            identifier=str(self.identifier),
            current_status=self.current_status,
            action=self.action,
        )
        return data


class InvalidFilterError(PaymentFlowError):
    code = "INVALID_FILTER"
    status_code = 400

    def __init__(self, field: str, value: Any, allowed: Iterable[str]):
        self.field = field
        self.value = value
        self.allowed = sorted(allowed)
        super().__init__(
            f"Invalid {field}: {value}. Valid values are: {', '.join(self.allowed)}"
        )

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(field=self.field, value=str(self.value), allowed=self.allowed)
        return data


class GenerationExhaustedError(PaymentFlowError):
    code = "GENERATION_EXHAUSTED"
    status_code = 503

    def __init__(self, prefix: str, attempts: int):
        self.prefix = prefix
        self.attempts = attempts
        super().__init__(
            f"Failed to generate unique {prefix} number after {attempts} attempts"
        )

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(prefix=self.prefix, attempts=self.attempts, retryable=True)
        return data
