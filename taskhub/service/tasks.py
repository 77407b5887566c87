from __future__ import annotations

from typing import Any, Dict, List

from taskhub.service.runtime import call_procedure
from taskhub.storage.models import ProcedureMode


def _task_fields(params: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "title": params["title"],
        "description": params.get("description", ""),
        "due_date": params["due_date"],
        "priority": params["priority"],
        "time_estimate": params.get("time_estimate"),
        "recurrence_config": params.get("recurrence_config"),
    }


async def task_create(params: Dict[str, Any]) -> Dict[str, Any]:
    return await call_procedure(
        "sp_task_create",
        {
            "id_account": params["id_account"],
            "id_user": params["id_user"],
            **_task_fields(params),
        },
        ProcedureMode.SINGLE,
    )


async def task_list(params: Dict[str, Any]) -> List[Dict[str, Any]]:
    return await call_procedure(
        "sp_task_list",
        {"id_account": params["id_account"], "id_user": params["id_user"]},
        ProcedureMode.MULTI,
    )


async def task_get(params: Dict[str, Any]) -> Dict[str, Any]:
    return await call_procedure(
        "sp_task_get",
        {
            "id_account": params["id_account"],
            "id_user": params["id_user"],
            "id_task": params["id_task"],
        },
        ProcedureMode.SINGLE,
    )


async def task_update(params: Dict[str, Any]) -> Dict[str, Any]:
    return await call_procedure(
        "sp_task_update",
        {
            "id_account": params["id_account"],
            "id_user": params["id_user"],
            "id_task": params["id_task"],
            **_task_fields(params),
            "status": params["status"],
        },
        ProcedureMode.SINGLE,
    )


async def task_delete(params: Dict[str, Any]) -> Dict[str, Any]:
    return await call_procedure(
        "sp_task_delete",
        {
            "id_account": params["id_account"],
            "id_user": params["id_user"],
            "id_task": params["id_task"],
        },
        ProcedureMode.SINGLE,
    )
