from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

from psycopg import errors, sql
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from taskhub.logging import get_logger
from taskhub.storage.errors import (
    BusinessRuleViolation,
    ConstraintViolation,
    RecordNotFound,
    StorageError,
)
from taskhub.storage.models import ProcedureMode, User

_NO_DATA_FOUND = "P0002"
_CONSTRAINT_SQLSTATES = {"23505", "23503"}


class PostgresStore:
    """Thin Postgres adapter: one stored-procedure call per data-access function."""

    def __init__(
        self,
        dsn: str,
        *,
        schema: str = "functional",
        business_rule_sqlstate: str = "P0001",
        min_size: int = 2,
        max_size: int = 10,
    ) -> None:
        self.dsn = dsn
        self.schema = schema
        self.business_rule_sqlstate = business_rule_sqlstate
        self.logger = get_logger(__name__)
        self.pool = ConnectionPool(
            self.dsn,
            min_size=min_size,
            max_size=max_size,
            kwargs={"row_factory": dict_row, "autocommit": False},
            open=True,
        )

    def _connect(self):
        return self.pool.connection()

    def verify_connection(self) -> None:
        with self._connect() as conn:
            conn.execute("SELECT 1").fetchone()

    def close(self) -> None:
        self.pool.close()

    def _classify(self, exc: errors.Error) -> StorageError:
        """Map a driver error onto a tagged storage error.

        Only business-rule messages raised by the procedures reach the
        client; driver text, constraint names and key values stay in the log.
        """

        sqlstate = getattr(exc, "sqlstate", None)
        diag = getattr(exc, "diag", None)
        primary = (diag.message_primary if diag is not None else None) or str(exc)
        if sqlstate == self.business_rule_sqlstate:
            return BusinessRuleViolation(primary, code=sqlstate)
        if sqlstate == _NO_DATA_FOUND:
            return RecordNotFound("Resource not found", code=sqlstate)
        if sqlstate in _CONSTRAINT_SQLSTATES:
            return ConstraintViolation("Resource conflict", code=sqlstate)
        return StorageError("Database operation failed", code=sqlstate)

    def _procedure_query(self, name: str, params: Dict[str, Any]) -> sql.Composed:
        arguments = sql.SQL(", ").join(
            sql.SQL("{} => {}").format(sql.Identifier(key), sql.Placeholder(key))
            for key in params
        )
        return sql.SQL("SELECT * FROM {}.{}({})").format(
            sql.Identifier(self.schema), sql.Identifier(name), arguments
        )

    def call_procedure(
        self, name: str, params: Dict[str, Any], mode: ProcedureMode
    ) -> Dict[str, Any] | List[Dict[str, Any]]:
        query = self._procedure_query(name, params)
        try:
            with self._connect() as conn:
                rows = conn.execute(query, params).fetchall()
        except errors.Error as exc:
            mapped = self._classify(exc)
            diag = getattr(exc, "diag", None)
            unclassified = type(mapped) is StorageError
            log_fn = self.logger.error if unclassified else self.logger.info
            log_fn(
                "procedure_failed" if unclassified else "procedure_rejected",
                procedure=name,
                sqlstate=mapped.code,
                error_type=type(exc).__name__,
                error=str(exc),
                db_detail=diag.message_detail if diag is not None else None,
                constraint=diag.constraint_name if diag is not None else None,
            )
            raise mapped from exc
        if mode is ProcedureMode.MULTI:
            return list(rows)
        if not rows:
            self.logger.info("procedure_no_row", procedure=name)
            raise RecordNotFound("Resource not found")
        return rows[0]

    # users
    def _row_to_user(self, row: Dict[str, Any]) -> User:
        meta = row.get("meta")
        if isinstance(meta, str):
            meta = json.loads(meta)
        return User(
            id=row["id"],
            account_id=row["account_id"],
            email=row["email"],
            role=row.get("role") or "member",
            is_active=bool(row.get("is_active", True)),
            created_at=row["created_at"],
            meta=meta,
        )

    def create_user(
        self,
        email: str,
        *,
        account_id: int,
        role: str = "member",
        is_active: bool = True,
        meta: Optional[dict] = None,
    ) -> User:
        try:
            with self._connect() as conn:
                row = conn.execute(
                    """
                    INSERT INTO app_user (account_id, email, role, is_active, meta)
                    VALUES (%s, %s, %s, %s, %s)
                    RETURNING id, account_id, email, role, is_active, created_at, meta
                    """,
                    (account_id, email, role, is_active, json.dumps(meta or {})),
                ).fetchone()
        except errors.UniqueViolation:
            raise ConstraintViolation("email already exists", {"field": "email"})
        return self._row_to_user(row)

    def get_user(self, user_id: int) -> Optional[User]:
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT id, account_id, email, role, is_active, created_at, meta
                FROM app_user WHERE id = %s
                """,
                (user_id,),
            ).fetchone()
        return self._row_to_user(row) if row else None

    def get_user_by_email(self, email: str) -> Optional[User]:
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT id, account_id, email, role, is_active, created_at, meta
                FROM app_user WHERE lower(email) = lower(%s)
                """,
                (email,),
            ).fetchone()
        return self._row_to_user(row) if row else None
