"""Generic resource operation pipeline.

Every resource endpoint is one :class:`ResourceOperation`: a fixed action,
the descriptors the caller must hold, the request shape, and the
data-access function to await. A request moves through

    INIT -> AUTHORIZING -> VALIDATING -> INVOKING -> RESPONDING -> DONE

and drops to FAILED from any non-terminal state. Each step only runs when
the previous one succeeded, so a denied request never reaches validation
and an invalid one never reaches the data-access function.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Optional,
    Sequence,
    Tuple,
    Type,
)

from fastapi import Depends, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from taskhub.api.schemas import Envelope, failure, success
from taskhub.api.validation import validate
from taskhub.logging import get_logger
from taskhub.service.auth import CallerCredential
from taskhub.service.authorization import Deny, OperationDescriptor, PermissionGrants
from taskhub.service.errors import (
    BusinessRuleError,
    ConflictError,
    DatabaseError,
    ForbiddenError,
    InternalServerError,
    NotFoundError,
    ServiceError,
    UnauthorizedError,
)
from taskhub.storage.errors import (
    BusinessRuleViolation,
    ConstraintViolation,
    RecordNotFound,
    StorageError,
)

logger = get_logger(__name__)

Handler = Callable[[Dict[str, Any]], Awaitable[Any]]
Prepare = Callable[[Dict[str, Any]], Dict[str, Any]]
Validator = Callable[[Type[BaseModel], Any], Tuple[Optional[BaseModel], Optional[ServiceError]]]


class Action(str, Enum):
    CREATE = "CREATE"
    READ = "READ"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class PipelineState(str, Enum):
    INIT = "INIT"
    AUTHORIZING = "AUTHORIZING"
    VALIDATING = "VALIDATING"
    INVOKING = "INVOKING"
    RESPONDING = "RESPONDING"
    DONE = "DONE"
    FAILED = "FAILED"


_NEXT_STATE = {
    PipelineState.INIT: PipelineState.AUTHORIZING,
    PipelineState.AUTHORIZING: PipelineState.VALIDATING,
    PipelineState.VALIDATING: PipelineState.INVOKING,
    PipelineState.INVOKING: PipelineState.RESPONDING,
    PipelineState.RESPONDING: PipelineState.DONE,
}
_TERMINAL = frozenset({PipelineState.DONE, PipelineState.FAILED})


class PipelineRun:
    """State of one request travelling through a :class:`ResourceOperation`."""

    def __init__(self) -> None:
        self.state = PipelineState.INIT
        self.history = [PipelineState.INIT]

    @property
    def finished(self) -> bool:
        return self.state in _TERMINAL

    def advance(self, target: PipelineState) -> None:
        if self.finished:
            raise RuntimeError(f"pipeline already finished in state {self.state.value}")
        if target is not PipelineState.FAILED and _NEXT_STATE[self.state] is not target:
            raise RuntimeError(
                f"illegal pipeline transition {self.state.value} -> {target.value}"
            )
        self.state = target
        self.history.append(target)

    def fail(self, error: ServiceError) -> Tuple[int, Envelope]:
        self.advance(PipelineState.FAILED)
        return error.status_code, failure(error.error_code, error.message, error.detail)


def _denial_error(denial: Deny) -> ServiceError:
    if denial.status_code == 401:
        return UnauthorizedError()
    return ForbiddenError()


def _map_handler_error(exc: Exception, operation: str) -> ServiceError:
    if isinstance(exc, BusinessRuleViolation):
        return BusinessRuleError(exc.message, detail=exc.detail)
    if isinstance(exc, RecordNotFound):
        return NotFoundError(exc.message, detail=exc.detail)
    if isinstance(exc, ConstraintViolation):
        return ConflictError(exc.message, detail=exc.detail)
    if isinstance(exc, ServiceError) and exc.status_code < 500:
        return exc
    if isinstance(exc, StorageError):
        logger.error(
            "resource_operation_storage_failed",
            operation=operation,
            sqlstate=exc.code,
            error=exc.message,
        )
        return DatabaseError()
    logger.error(
        "resource_operation_failed",
        operation=operation,
        error_type=type(exc).__name__,
        error=str(exc),
        exc_info=exc,
    )
    # Never echo the original text for server-side failures
    return InternalServerError()


def _normalize(result: Any, response_model: Optional[Type[BaseModel]]) -> Any:
    if response_model is None:
        return jsonable_encoder(result)
    if isinstance(result, list):
        return [
            response_model.model_validate(row).model_dump(mode="json", by_alias=True)
            for row in result
        ]
    return response_model.model_validate(result).model_dump(mode="json", by_alias=True)


@dataclass(frozen=True)
class ResourceOperation:
    """Immutable configuration of one endpoint's pipeline."""

    name: str
    action: Action
    descriptors: Tuple[OperationDescriptor, ...]
    shape: Type[BaseModel]
    handler: Handler
    prepare: Optional[Prepare] = None
    response_model: Optional[Type[BaseModel]] = None
    validator: Validator = field(default=validate)

    @property
    def success_status(self) -> int:
        return 201 if self.action is Action.CREATE else 200

    async def run(
        self,
        credential: Optional[CallerCredential],
        raw: Any,
        grants: Optional[PermissionGrants] = None,
    ) -> Tuple[int, Envelope]:
        """Run one request and return ``(http_status, envelope)``."""
        run = PipelineRun()
        grants = grants if grants is not None else PermissionGrants()

        run.advance(PipelineState.AUTHORIZING)
        decision = grants.check(credential, self.descriptors)
        if isinstance(decision, Deny):
            logger.info(
                "resource_operation_denied",
                operation=self.name,
                reason=decision.reason,
                status_code=decision.status_code,
            )
            return run.fail(_denial_error(decision))

        run.advance(PipelineState.VALIDATING)
        value, error = self.validator(self.shape, raw)
        if error is not None:
            logger.info(
                "resource_operation_invalid", operation=self.name, message=error.message
            )
            return run.fail(error)

        run.advance(PipelineState.INVOKING)
        params = value.model_dump()
        if self.prepare is not None:
            params = self.prepare(params)
        params.update(credential.as_params())
        try:
            result = await self.handler(params)
        except Exception as exc:
            mapped = _map_handler_error(exc, self.name)
            if mapped.status_code < 500:
                logger.info(
                    "resource_operation_rejected",
                    operation=self.name,
                    error_code=mapped.error_code,
                    message=mapped.message,
                )
            return run.fail(mapped)

        run.advance(PipelineState.RESPONDING)
        try:
            data = _normalize(result, self.response_model)
        except Exception as exc:
            return run.fail(_map_handler_error(exc, self.name))
        envelope = success(data)
        run.advance(PipelineState.DONE)
        return self.success_status, envelope

    def endpoint(
        self,
        credential_dependency: Callable[..., Awaitable[Optional[CallerCredential]]],
        grants_provider: Callable[[], PermissionGrants],
    ) -> Callable[..., Awaitable[JSONResponse]]:
        """Build the FastAPI route callable for this operation.

        Path and query values are merged over the JSON body; a body that is
        not a JSON object is handed to validation as-is so it fails there,
        after authorization.
        """

        async def route(
            request: Request,
            credential: Optional[CallerCredential] = Depends(credential_dependency),
        ) -> JSONResponse:
            raw = await _gather_input(request)
            status, envelope = await self.run(credential, raw, grants_provider())
            return JSONResponse(status_code=status, content=envelope.to_wire())

        route.__name__ = self.name
        return route


async def _gather_input(request: Request) -> Any:
    body: Any = {}
    payload = await request.body()
    if payload.strip():
        try:
            body = json.loads(payload)
        except ValueError:
            return payload.decode("utf-8", errors="replace")
    if not isinstance(body, dict):
        return body
    return {**body, **dict(request.query_params), **dict(request.path_params)}


def operation(
    name: str,
    action: Action,
    descriptors: Sequence[OperationDescriptor],
    shape: Type[BaseModel],
    handler: Handler,
    **options: Any,
) -> ResourceOperation:
    """Shorthand used by the route table."""
    return ResourceOperation(
        name=name,
        action=action,
        descriptors=tuple(descriptors),
        shape=shape,
        handler=handler,
        **options,
    )
