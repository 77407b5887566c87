from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Header

from taskhub.api.pipeline import Action, ResourceOperation, operation
from taskhub.api.schemas import (
    AssignResponse,
    CategoryCreate,
    CategoryDelete,
    CategoryKey,
    CategoryList,
    CategoryResponse,
    CategoryUpdate,
    DeleteResponse,
    TaskCategoryAssign,
    TaskCategoryRemove,
    TaskCreate,
    TaskKey,
    TaskList,
    TaskResponse,
    TaskUpdate,
)
from taskhub.service import categories, tasks
from taskhub.service.auth import CallerCredential
from taskhub.service.authorization import (
    OperationDescriptor,
    Permission,
    PermissionGrants,
    Securable,
)
from taskhub.service.runtime import get_runtime

router = APIRouter(prefix="/api/v1/internal")


async def get_credential(
    authorization: Optional[str] = Header(None),
) -> Optional[CallerCredential]:
    """Resolve the caller; anonymous requests are denied by the pipeline."""
    runtime = get_runtime()
    return await runtime.auth.authenticate(authorization)


def _runtime_grants() -> PermissionGrants:
    return get_runtime().grants


def _rename(source: str, target: str):
    def prepare(params: Dict[str, Any]) -> Dict[str, Any]:
        params = dict(params)
        params[target] = params.pop(source)
        return params

    return prepare


def _d(securable: Securable, permission: Permission) -> OperationDescriptor:
    return OperationDescriptor(securable, permission)


_category_id = _rename("id", "id_category")
_task_id = _rename("id", "id_task")

OPERATIONS: list[tuple[str, str, ResourceOperation]] = [
    (
        "POST",
        "/category",
        operation(
            "category_create",
            Action.CREATE,
            [_d(Securable.CATEGORY, Permission.CREATE)],
            CategoryCreate,
            categories.category_create,
            response_model=CategoryResponse,
        ),
    ),
    (
        "GET",
        "/category",
        operation(
            "category_list",
            Action.READ,
            [_d(Securable.CATEGORY, Permission.READ)],
            CategoryList,
            categories.category_list,
            response_model=CategoryResponse,
        ),
    ),
    (
        "GET",
        "/category/{id}",
        operation(
            "category_get",
            Action.READ,
            [_d(Securable.CATEGORY, Permission.READ)],
            CategoryKey,
            categories.category_get,
            prepare=_category_id,
            response_model=CategoryResponse,
        ),
    ),
    (
        "PUT",
        "/category/{id}",
        operation(
            "category_update",
            Action.UPDATE,
            [_d(Securable.CATEGORY, Permission.UPDATE)],
            CategoryUpdate,
            categories.category_update,
            prepare=_category_id,
            response_model=CategoryResponse,
        ),
    ),
    (
        "DELETE",
        "/category/{id}",
        operation(
            "category_delete",
            Action.DELETE,
            [_d(Securable.CATEGORY, Permission.DELETE)],
            CategoryDelete,
            categories.category_delete,
            prepare=_category_id,
            response_model=DeleteResponse,
        ),
    ),
    (
        "POST",
        "/task",
        operation(
            "task_create",
            Action.CREATE,
            [_d(Securable.TASK, Permission.CREATE)],
            TaskCreate,
            tasks.task_create,
            response_model=TaskResponse,
        ),
    ),
    (
        "GET",
        "/task",
        operation(
            "task_list",
            Action.READ,
            [_d(Securable.TASK, Permission.READ)],
            TaskList,
            tasks.task_list,
            response_model=TaskResponse,
        ),
    ),
    (
        "GET",
        "/task/{id}",
        operation(
            "task_get",
            Action.READ,
            [_d(Securable.TASK, Permission.READ)],
            TaskKey,
            tasks.task_get,
            prepare=_task_id,
            response_model=TaskResponse,
        ),
    ),
    (
        "PUT",
        "/task/{id}",
        operation(
            "task_update",
            Action.UPDATE,
            [_d(Securable.TASK, Permission.UPDATE)],
            TaskUpdate,
            tasks.task_update,
            prepare=_task_id,
            response_model=TaskResponse,
        ),
    ),
    (
        "DELETE",
        "/task/{id}",
        operation(
            "task_delete",
            Action.DELETE,
            [_d(Securable.TASK, Permission.DELETE)],
            TaskKey,
            tasks.task_delete,
            prepare=_task_id,
            response_model=DeleteResponse,
        ),
    ),
    (
        "POST",
        "/task/{id}/category",
        operation(
            "task_category_assign",
            Action.UPDATE,
            [
                _d(Securable.TASK, Permission.UPDATE),
                _d(Securable.CATEGORY, Permission.READ),
            ],
            TaskCategoryAssign,
            categories.task_category_assign,
            prepare=_task_id,
            response_model=AssignResponse,
        ),
    ),
    (
        "DELETE",
        "/task/{id}/category/{idCategory}",
        operation(
            "task_category_remove",
            Action.UPDATE,
            [_d(Securable.TASK, Permission.UPDATE)],
            TaskCategoryRemove,
            categories.task_category_remove,
            prepare=_task_id,
            response_model=DeleteResponse,
        ),
    ),
]

for _method, _path, _operation in OPERATIONS:
    router.add_api_route(
        _path,
        _operation.endpoint(get_credential, _runtime_grants),
        methods=[_method],
        name=_operation.name,
    )
