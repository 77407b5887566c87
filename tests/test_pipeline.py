"""Behavioural tests for the resource operation pipeline using fake data-access functions."""

import json

import pytest

from taskhub.api.pipeline import (
    Action,
    PipelineRun,
    PipelineState,
    ResourceOperation,
)
from taskhub.api.schemas import CategoryCreate, CategoryKey, CategoryResponse
from taskhub.api.validation import validate
from taskhub.service.auth import CallerCredential
from taskhub.service.authorization import (
    OperationDescriptor,
    Permission,
    PermissionGrants,
    Securable,
)
from taskhub.storage.errors import (
    BusinessRuleViolation,
    ConstraintViolation,
    RecordNotFound,
    StorageError,
)

MEMBER = CallerCredential(account_id=7, user_id=11, role="member")
VIEWER = CallerCredential(account_id=7, user_id=12, role="viewer")
GRANTS = PermissionGrants()


class FakeHandler:
    def __init__(self, result=None, error=None):
        self.calls = []
        self.result = result
        self.error = error

    async def __call__(self, params):
        self.calls.append(params)
        if self.error is not None:
            raise self.error
        return self.result if self.result is not None else {"echo": params}


class CountingValidator:
    def __init__(self):
        self.calls = 0

    def __call__(self, shape, raw):
        self.calls += 1
        return validate(shape, raw)


def _create_op(handler, validator=None, **options):
    return ResourceOperation(
        name="category_create",
        action=Action.CREATE,
        descriptors=(OperationDescriptor(Securable.CATEGORY, Permission.CREATE),),
        shape=CategoryCreate,
        handler=handler,
        validator=validator or validate,
        **options,
    )


def _rename_id(params):
    params = dict(params)
    params["id_category"] = params.pop("id")
    return params


def _read_op(handler, **options):
    return ResourceOperation(
        name="category_get",
        action=Action.READ,
        descriptors=(OperationDescriptor(Securable.CATEGORY, Permission.READ),),
        shape=CategoryKey,
        handler=handler,
        **options,
    )


async def test_successful_create_merges_credential_and_returns_201():
    handler = FakeHandler()
    status, envelope = await _create_op(handler).run(
        MEMBER, {"name": "Work", "color": "#4287f5"}, GRANTS
    )
    assert status == 201
    assert envelope.success is True
    assert len(handler.calls) == 1
    params = handler.calls[0]
    assert params["id_account"] == 7
    assert params["id_user"] == 11
    assert params["name"] == "Work"
    assert envelope.data == {"echo": params}


async def test_default_color_reaches_data_access():
    handler = FakeHandler()
    await _create_op(handler).run(MEMBER, {"name": "Work"}, GRANTS)
    assert handler.calls[0]["color"] == "#4287f5"


async def test_payload_cannot_override_credential():
    handler = FakeHandler()
    await _create_op(handler).run(
        MEMBER, {"name": "Work", "idAccount": 999, "id_user": 998}, GRANTS
    )
    assert handler.calls[0]["id_account"] == 7
    assert handler.calls[0]["id_user"] == 11


@pytest.mark.parametrize(
    "credential,status,code",
    [(None, 401, "UNAUTHORIZED"), (VIEWER, 403, "FORBIDDEN")],
)
async def test_denial_skips_validation_and_data_access(credential, status, code):
    handler = FakeHandler()
    validator = CountingValidator()
    got_status, envelope = await _create_op(handler, validator).run(
        credential, {"name": "Work"}, GRANTS
    )
    assert got_status == status
    assert envelope.success is False
    assert envelope.error.code == code
    assert validator.calls == 0
    assert handler.calls == []


async def test_validation_failure_skips_data_access():
    handler = FakeHandler()
    validator = CountingValidator()
    status, envelope = await _create_op(handler, validator).run(MEMBER, {"name": "W"}, GRANTS)
    assert status == 400
    assert envelope.error.code == "VALIDATION_ERROR"
    assert "name" in envelope.error.message
    assert envelope.error.details
    assert validator.calls == 1
    assert handler.calls == []


async def test_business_rule_message_preserved():
    handler = FakeHandler(error=BusinessRuleViolation("a category with this name already exists"))
    status, envelope = await _create_op(handler).run(MEMBER, {"name": "Work"}, GRANTS)
    assert status == 400
    assert envelope.error.code == "BUSINESS_RULE_ERROR"
    assert envelope.error.message == "a category with this name already exists"
    assert len(handler.calls) == 1


async def test_business_rule_without_detail_omits_details_key():
    handler = FakeHandler(error=BusinessRuleViolation("the default category cannot be deleted"))
    status, envelope = await _read_op(handler).run(MEMBER, {"id": "2"}, GRANTS)
    assert status == 400
    assert envelope.to_wire() == {
        "success": False,
        "error": {
            "code": "BUSINESS_RULE_ERROR",
            "message": "the default category cannot be deleted",
        },
    }


async def test_not_found_maps_to_404():
    handler = FakeHandler(error=RecordNotFound("category not found"))
    status, envelope = await _read_op(handler).run(MEMBER, {"id": "4"}, GRANTS)
    assert status == 404
    assert envelope.error.code == "NOT_FOUND"
    assert envelope.error.message == "category not found"


async def test_constraint_maps_to_409():
    handler = FakeHandler(error=ConstraintViolation("duplicate key"))
    status, envelope = await _create_op(handler).run(MEMBER, {"name": "Work"}, GRANTS)
    assert status == 409
    assert envelope.error.code == "CONFLICT"


async def test_unexpected_error_is_generic_500():
    handler = FakeHandler(error=RuntimeError("connection string postgres://secret@db"))
    status, envelope = await _create_op(handler).run(MEMBER, {"name": "Work"}, GRANTS)
    assert status == 500
    assert envelope.error.code == "INTERNAL_SERVER_ERROR"
    assert "secret" not in envelope.error.message
    assert envelope.error.message == "An unexpected error occurred"


async def test_storage_failure_is_database_error():
    handler = FakeHandler(error=StorageError("Database operation failed", code="08006"))
    status, envelope = await _create_op(handler).run(MEMBER, {"name": "Work"}, GRANTS)
    assert status == 500
    assert envelope.error.code == "DATABASE_ERROR"
    assert envelope.error.message == "Database operation failed"
    assert "08006" not in json.dumps(envelope.to_wire())


async def test_exactly_one_response_on_success_and_failure():
    ok = FakeHandler()
    bad = FakeHandler(error=ValueError("boom"))
    for handler in (ok, bad):
        result = await _create_op(handler).run(MEMBER, {"name": "Work"}, GRANTS)
        status, envelope = result
        assert isinstance(status, int)
        assert envelope.success is (handler is ok)
        assert len(handler.calls) == 1


async def test_read_is_idempotent_and_byte_identical():
    row = {
        "id_category": 4,
        "id_account": 7,
        "id_user": 11,
        "name": "Work",
        "color": "#4287f5",
        "date_created": "2026-01-01T00:00:00+00:00",
    }
    handler = FakeHandler(result=row)
    op = _read_op(
        handler,
        prepare=_rename_id,
        response_model=CategoryResponse,
    )
    first = await op.run(MEMBER, {"id": "4"}, GRANTS)
    second = await op.run(MEMBER, {"id": "4"}, GRANTS)
    assert first[0] == second[0] == 200
    assert json.dumps(first[1].to_wire()) == json.dumps(second[1].to_wire())
    assert first[1].data["idCategory"] == 4
    assert handler.calls[0]["id_category"] == 4
    assert "id" not in handler.calls[0]


async def test_response_model_shapes_lists():
    rows = [
        {
            "id_category": n,
            "id_account": 7,
            "id_user": 11,
            "name": f"Cat {n}",
            "color": "#4287f5",
            "date_created": "2026-01-01T00:00:00+00:00",
        }
        for n in (1, 2)
    ]
    op = _read_op(FakeHandler(result=rows), response_model=CategoryResponse)
    status, envelope = await op.run(MEMBER, {"id": "1"}, GRANTS)
    assert status == 200
    assert [item["idCategory"] for item in envelope.data] == [1, 2]


class TestPipelineRun:
    def test_happy_path_states(self):
        run = PipelineRun()
        for state in (
            PipelineState.AUTHORIZING,
            PipelineState.VALIDATING,
            PipelineState.INVOKING,
            PipelineState.RESPONDING,
            PipelineState.DONE,
        ):
            run.advance(state)
        assert run.finished
        assert run.history[0] is PipelineState.INIT

    def test_skipping_a_state_is_rejected(self):
        run = PipelineRun()
        with pytest.raises(RuntimeError):
            run.advance(PipelineState.INVOKING)

    def test_no_transition_after_terminal_state(self):
        run = PipelineRun()
        run.advance(PipelineState.AUTHORIZING)
        run.advance(PipelineState.FAILED)
        with pytest.raises(RuntimeError):
            run.advance(PipelineState.VALIDATING)
        with pytest.raises(RuntimeError):
            run.advance(PipelineState.FAILED)


def test_operation_is_immutable():
    op = _create_op(FakeHandler())
    with pytest.raises(Exception):
        op.name = "other"
    assert op.success_status == 201
    assert _read_op(FakeHandler()).success_status == 200
