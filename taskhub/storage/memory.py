from __future__ import annotations

import threading
from dataclasses import asdict
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from taskhub.logging import get_logger
from taskhub.storage.errors import BusinessRuleViolation, ConstraintViolation, RecordNotFound
from taskhub.storage.models import CategoryRow, ProcedureMode, TaskRow, User


class MemoryStore:
    """In-process stand-in for the stored-procedure database.

    Every procedure the data-access layer calls is implemented here with the
    same account scoping and business rules, so the API can run without
    Postgres (tests, local development).
    """

    def __init__(self) -> None:
        self.logger = get_logger(__name__)
        self.users: Dict[int, User] = {}
        self.categories: Dict[int, CategoryRow] = {}
        self.tasks: Dict[int, TaskRow] = {}
        # (id_task, id_category) pairs
        self.task_categories: Set[Tuple[int, int]] = set()
        self._user_seq = 0
        self._category_seq = 0
        self._task_seq = 0
        # RLock so procedures can call helpers that also lock
        self._data_lock = threading.RLock()
        self._procedures: Dict[str, Callable[..., Any]] = {
            "sp_category_create": self._category_create,
            "sp_category_list": self._category_list,
            "sp_category_get": self._category_get,
            "sp_category_update": self._category_update,
            "sp_category_delete": self._category_delete,
            "sp_task_create": self._task_create,
            "sp_task_list": self._task_list,
            "sp_task_get": self._task_get,
            "sp_task_update": self._task_update,
            "sp_task_delete": self._task_delete,
            "sp_task_category_assign": self._task_category_assign,
            "sp_task_category_remove": self._task_category_remove,
        }

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)

    def verify_connection(self) -> None:
        return None

    def close(self) -> None:
        return None

    # users
    def create_user(
        self,
        email: str,
        *,
        account_id: int,
        role: str = "member",
        is_active: bool = True,
        meta: Optional[dict] = None,
    ) -> User:
        with self._data_lock:
            if any(u.email.lower() == email.lower() for u in self.users.values()):
                raise ConstraintViolation("email already exists", {"field": "email"})
            self._user_seq += 1
            user = User(
                id=self._user_seq,
                account_id=account_id,
                email=email,
                role=role,
                is_active=is_active,
                meta=meta or {},
            )
            self.users[user.id] = user
            # Every account owns one undeletable default category
            self.ensure_default_category(account_id, user.id)
            return user

    def get_user(self, user_id: int) -> Optional[User]:
        with self._data_lock:
            return self.users.get(user_id)

    def get_user_by_email(self, email: str) -> Optional[User]:
        with self._data_lock:
            for user in self.users.values():
                if user.email.lower() == email.lower():
                    return user
            return None

    # procedures
    def call_procedure(
        self, name: str, params: Dict[str, Any], mode: ProcedureMode
    ) -> Dict[str, Any] | List[Dict[str, Any]]:
        handler = self._procedures.get(name)
        if handler is None:
            raise LookupError(f"unknown procedure {name}")
        with self._data_lock:
            result = handler(**params)
        if mode is ProcedureMode.MULTI:
            return list(result or [])
        if isinstance(result, list):
            result = result[0] if result else None
        if result is None:
            self.logger.info("memory_procedure_no_row", procedure=name)
            raise RecordNotFound("Resource not found")
        return result

    # category helpers
    def _active_category(self, id_account: int, id_category: int) -> Optional[CategoryRow]:
        row = self.categories.get(id_category)
        if row is None or row.deleted or row.id_account != id_account:
            return None
        return row

    def _require_category(self, id_account: int, id_category: int) -> CategoryRow:
        row = self._active_category(id_account, id_category)
        if row is None:
            raise RecordNotFound("category not found", {"id_category": id_category})
        return row

    def _ensure_unique_name(
        self, id_account: int, name: str, *, exclude: Optional[int] = None
    ) -> None:
        wanted = name.strip().lower()
        for row in self.categories.values():
            if row.deleted or row.id_account != id_account or row.id_category == exclude:
                continue
            if row.name.strip().lower() == wanted:
                raise BusinessRuleViolation(
                    "a category with this name already exists", {"field": "name"}
                )

    def _category_to_row(self, row: CategoryRow) -> Dict[str, Any]:
        data = asdict(row)
        data.pop("deleted")
        data["task_count"] = sum(
            1
            for id_task, id_category in self.task_categories
            if id_category == row.id_category and self._active_task(row.id_account, id_task)
        )
        return data

    def _category_create(
        self,
        id_account: int,
        id_user: int,
        name: str,
        description: str = "",
        color: str = "#4287f5",
        icon: Optional[str] = None,
        id_parent: Optional[int] = None,
        is_favorite: bool = False,
    ) -> Dict[str, Any]:
        self._ensure_unique_name(id_account, name)
        if id_parent is not None and self._active_category(id_account, id_parent) is None:
            raise BusinessRuleViolation(
                "parent category not found", {"field": "id_parent"}
            )
        sort_order = sum(
            1 for r in self.categories.values() if r.id_account == id_account and not r.deleted
        )
        self._category_seq += 1
        now = self._now()
        row = CategoryRow(
            id_category=self._category_seq,
            id_account=id_account,
            id_user=id_user,
            name=name,
            description=description or "",
            color=color,
            icon=icon,
            id_parent=id_parent,
            sort_order=sort_order,
            is_favorite=is_favorite,
            date_created=now,
            date_modified=now,
        )
        self.categories[row.id_category] = row
        self.logger.debug("memory_category_created", id_category=row.id_category)
        return self._category_to_row(row)

    def ensure_default_category(
        self, id_account: int, id_user: int, name: str = "General"
    ) -> Dict[str, Any]:
        """Create the account's undeletable default category if it is missing."""
        with self._data_lock:
            for row in self.categories.values():
                if row.id_account == id_account and row.is_default and not row.deleted:
                    return self._category_to_row(row)
            created = self._category_create(id_account, id_user, name)
            row = self.categories[created["id_category"]]
            row.is_default = True
            return self._category_to_row(row)

    def _category_list(self, id_account: int, id_user: int) -> List[Dict[str, Any]]:
        rows = [
            r for r in self.categories.values() if r.id_account == id_account and not r.deleted
        ]
        rows.sort(key=lambda r: (r.sort_order, r.id_category))
        return [self._category_to_row(r) for r in rows]

    def _category_get(self, id_account: int, id_user: int, id_category: int) -> Dict[str, Any]:
        return self._category_to_row(self._require_category(id_account, id_category))

    def _category_update(
        self,
        id_account: int,
        id_user: int,
        id_category: int,
        name: str,
        color: str,
        is_favorite: bool,
        description: str = "",
        icon: Optional[str] = None,
    ) -> Dict[str, Any]:
        row = self._require_category(id_account, id_category)
        self._ensure_unique_name(id_account, name, exclude=id_category)
        row.name = name
        row.description = description or ""
        row.color = color
        row.icon = icon
        row.is_favorite = is_favorite
        row.date_modified = self._now()
        return self._category_to_row(row)

    def _category_delete(
        self,
        id_account: int,
        id_user: int,
        id_category: int,
        id_target_category: Optional[int] = None,
    ) -> Dict[str, Any]:
        row = self._require_category(id_account, id_category)
        if row.is_default:
            raise BusinessRuleViolation("the default category cannot be deleted")
        if id_target_category is not None:
            if id_target_category == id_category:
                raise BusinessRuleViolation(
                    "target category must differ from the deleted category",
                    {"field": "id_target_category"},
                )
            if self._active_category(id_account, id_target_category) is None:
                raise BusinessRuleViolation(
                    "target category not found", {"field": "id_target_category"}
                )
        moved = [pair for pair in self.task_categories if pair[1] == id_category]
        for id_task, _ in moved:
            self.task_categories.discard((id_task, id_category))
            if id_target_category is not None:
                self.task_categories.add((id_task, id_target_category))
        for child in self.categories.values():
            if child.id_parent == id_category:
                child.id_parent = None
        row.deleted = True
        row.date_modified = self._now()
        return {"success": True}

    # task helpers
    def _active_task(self, id_account: int, id_task: int) -> Optional[TaskRow]:
        row = self.tasks.get(id_task)
        if row is None or row.deleted or row.id_account != id_account:
            return None
        return row

    def _require_task(self, id_account: int, id_task: int) -> TaskRow:
        row = self._active_task(id_account, id_task)
        if row is None:
            raise RecordNotFound("task not found", {"id_task": id_task})
        return row

    def _task_to_row(self, row: TaskRow) -> Dict[str, Any]:
        data = asdict(row)
        data.pop("deleted")
        data["category_ids"] = sorted(
            id_category
            for id_task, id_category in self.task_categories
            if id_task == row.id_task and self._active_category(row.id_account, id_category)
        )
        return data

    def _task_create(
        self,
        id_account: int,
        id_user: int,
        title: str,
        due_date: date,
        priority: int,
        description: str = "",
        time_estimate: Optional[int] = None,
        recurrence_config: Optional[str] = None,
    ) -> Dict[str, Any]:
        self._task_seq += 1
        now = self._now()
        row = TaskRow(
            id_task=self._task_seq,
            id_account=id_account,
            id_user=id_user,
            title=title,
            description=description or "",
            due_date=due_date,
            priority=priority,
            time_estimate=time_estimate,
            recurrence_config=recurrence_config,
            date_created=now,
            date_modified=now,
        )
        self.tasks[row.id_task] = row
        return self._task_to_row(row)

    def _task_list(self, id_account: int, id_user: int) -> List[Dict[str, Any]]:
        rows = [r for r in self.tasks.values() if r.id_account == id_account and not r.deleted]
        rows.sort(key=lambda r: (r.due_date, r.id_task))
        return [self._task_to_row(r) for r in rows]

    def _task_get(self, id_account: int, id_user: int, id_task: int) -> Dict[str, Any]:
        return self._task_to_row(self._require_task(id_account, id_task))

    def _task_update(
        self,
        id_account: int,
        id_user: int,
        id_task: int,
        title: str,
        due_date: date,
        priority: int,
        status: int,
        description: str = "",
        time_estimate: Optional[int] = None,
        recurrence_config: Optional[str] = None,
    ) -> Dict[str, Any]:
        row = self._require_task(id_account, id_task)
        row.title = title
        row.description = description or ""
        row.due_date = due_date
        row.priority = priority
        row.status = status
        row.time_estimate = time_estimate
        row.recurrence_config = recurrence_config
        row.date_modified = self._now()
        return self._task_to_row(row)

    def _task_delete(self, id_account: int, id_user: int, id_task: int) -> Dict[str, Any]:
        row = self._require_task(id_account, id_task)
        row.deleted = True
        row.date_modified = self._now()
        self.task_categories = {pair for pair in self.task_categories if pair[0] != id_task}
        return {"success": True}

    def _task_category_assign(
        self, id_account: int, id_user: int, id_task: int, category_ids: str
    ) -> Dict[str, Any]:
        self._require_task(id_account, id_task)
        wanted: List[int] = []
        for part in category_ids.split(","):
            id_category = int(part)
            if self._active_category(id_account, id_category) is None:
                raise BusinessRuleViolation(
                    "category not found", {"id_category": id_category}
                )
            if id_category not in wanted:
                wanted.append(id_category)
        assigned = 0
        for id_category in wanted:
            if (id_task, id_category) not in self.task_categories:
                self.task_categories.add((id_task, id_category))
                assigned += 1
        return {"success": True, "assigned_count": assigned}

    def _task_category_remove(
        self, id_account: int, id_user: int, id_task: int, id_category: int
    ) -> Dict[str, Any]:
        self._require_task(id_account, id_task)
        if (id_task, id_category) not in self.task_categories:
            raise RecordNotFound(
                "category is not assigned to this task",
                {"id_task": id_task, "id_category": id_category},
            )
        self.task_categories.discard((id_task, id_category))
        return {"success": True}
