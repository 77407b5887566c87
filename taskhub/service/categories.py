"""Category data-access functions.

Each function forwards its input field-for-field to one stored procedure.
``id_account`` and ``id_user`` always come from the caller credential merged
in by the pipeline.
"""

from __future__ import annotations

from typing import Any, Dict, List

from taskhub.service.runtime import call_procedure
from taskhub.storage.models import ProcedureMode


async def category_create(params: Dict[str, Any]) -> Dict[str, Any]:
    return await call_procedure(
        "sp_category_create",
        {
            "id_account": params["id_account"],
            "id_user": params["id_user"],
            "name": params["name"],
            "description": params.get("description", ""),
            "color": params["color"],
            "icon": params.get("icon"),
            "id_parent": params.get("id_parent"),
            "is_favorite": params.get("is_favorite", False),
        },
        ProcedureMode.SINGLE,
    )


async def category_list(params: Dict[str, Any]) -> List[Dict[str, Any]]:
    return await call_procedure(
        "sp_category_list",
        {"id_account": params["id_account"], "id_user": params["id_user"]},
        ProcedureMode.MULTI,
    )


async def category_get(params: Dict[str, Any]) -> Dict[str, Any]:
    return await call_procedure(
        "sp_category_get",
        {
            "id_account": params["id_account"],
            "id_user": params["id_user"],
            "id_category": params["id_category"],
        },
        ProcedureMode.SINGLE,
    )


async def category_update(params: Dict[str, Any]) -> Dict[str, Any]:
    return await call_procedure(
        "sp_category_update",
        {
            "id_account": params["id_account"],
            "id_user": params["id_user"],
            "id_category": params["id_category"],
            "name": params["name"],
            "description": params.get("description", ""),
            "color": params["color"],
            "icon": params.get("icon"),
            "is_favorite": params["is_favorite"],
        },
        ProcedureMode.SINGLE,
    )


async def category_delete(params: Dict[str, Any]) -> Dict[str, Any]:
    """Soft-delete a category, moving its tasks to ``id_target_category`` if given."""
    return await call_procedure(
        "sp_category_delete",
        {
            "id_account": params["id_account"],
            "id_user": params["id_user"],
            "id_category": params["id_category"],
            "id_target_category": params.get("id_target_category"),
        },
        ProcedureMode.SINGLE,
    )


async def task_category_assign(params: Dict[str, Any]) -> Dict[str, Any]:
    """Attach the comma-separated ``category_ids`` to a task."""
    return await call_procedure(
        "sp_task_category_assign",
        {
            "id_account": params["id_account"],
            "id_user": params["id_user"],
            "id_task": params["id_task"],
            "category_ids": params["category_ids"],
        },
        ProcedureMode.SINGLE,
    )


async def task_category_remove(params: Dict[str, Any]) -> Dict[str, Any]:
    return await call_procedure(
        "sp_task_category_remove",
        {
            "id_account": params["id_account"],
            "id_user": params["id_user"],
            "id_task": params["id_task"],
            "id_category": params["id_category"],
        },
        ProcedureMode.SINGLE,
    )
