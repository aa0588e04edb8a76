"""Lifecycle engine exceptions.

Only lookup failures and rejected state transitions are raised. Data-quality
problems found while reconstructing history are reported as
``DataQualityIssue`` records instead, because stored event logs are known to
be incomplete.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from fastapi import Request, status
from fastapi.responses import JSONResponse


class LifecycleError(Exception):
    """Base error with an API-facing code, status and context."""

    def __init__(
        self,
        message: str,
        error_code: str = "LIFECYCLE_ERROR",
        status_code: int = status.HTTP_400_BAD_REQUEST,
        context: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.context = context or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_code": self.error_code,
            "message": self.message,
            "context": self.context,
        }


class EntityNotFoundError(LifecycleError):
    """Entity is absent, soft-deleted, or belongs to another tenant."""

    def __init__(self, entity_kind: str, entity_id: UUID) -> None:
        super().__init__(
            f"{entity_kind.capitalize()} not found.",
            error_code="ENTITY_NOT_FOUND",
            status_code=status.HTTP_404_NOT_FOUND,
            context={"entity_kind": entity_kind, "entity_id": str(entity_id)},
        )
        self.entity_kind = entity_kind
        self.entity_id = entity_id


class TenantNotFoundError(LifecycleError):
    def __init__(self, tenant_ref: str) -> None:
        super().__init__(
            "Tenant not found.",
            error_code="TENANT_NOT_FOUND",
            status_code=status.HTTP_404_NOT_FOUND,
            context={"tenant": tenant_ref},
        )


class TransitionConflictError(LifecycleError):
    """Requested state transition does not match the entity's current state."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(
            message,
            error_code="TRANSITION_CONFLICT",
            status_code=status.HTTP_409_CONFLICT,
            context=context,
        )


class InvalidCycleDefinitionError(LifecycleError):
    def __init__(self, message: str) -> None:
        super().__init__(
            message,
            error_code="INVALID_CYCLE_DEFINITION",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        )


async def lifecycle_error_handler(request: Request, exc: LifecycleError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())
