from __future__ import annotations

import asyncio
import threading
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse, urlunparse

from taskhub.config import get_settings, reset_settings_cache
from taskhub.logging import get_logger
from taskhub.service.auth import AuthService
from taskhub.service.authorization import PermissionGrants
from taskhub.storage.memory import MemoryStore
from taskhub.storage.models import ProcedureMode
from taskhub.storage.postgres import PostgresStore

logger = get_logger(__name__)


def _mask_url_password(url: Optional[str]) -> Optional[str]:
    """Mask the password component of a URL for safe logging.

    Example: postgresql://app:secret@db:5432/taskhub -> postgresql://app:***@db:5432/taskhub
    """
    if not url:
        return url
    try:
        parsed = urlparse(url)
    except ValueError:
        return "***url_parse_error***"
    if not parsed.password:
        return url
    netloc = parsed.hostname or ""
    if parsed.port:
        netloc = f"{netloc}:{parsed.port}"
    netloc = f"{parsed.username or ''}:***@{netloc}"
    return urlunparse(
        (parsed.scheme, netloc, parsed.path, parsed.params, parsed.query, parsed.fragment)
    )


class Runtime:
    """Holds singleton service instances for the FastAPI app."""

    def __init__(self):
        self.settings = get_settings()
        store_type = "memory" if self.settings.use_memory_store else "postgres"
        logger.info(
            "runtime_init_started",
            store_type=store_type,
            test_mode=self.settings.test_mode,
        )
        try:
            self.store = (
                MemoryStore()
                if self.settings.use_memory_store
                else PostgresStore(
                    self.settings.database_url,
                    schema=self.settings.procedure_schema,
                    business_rule_sqlstate=self.settings.business_rule_sqlstate,
                    min_size=self.settings.db_pool_min_size,
                    max_size=self.settings.db_pool_max_size,
                )
            )
        except Exception as exc:
            logger.error(
                "runtime_store_init_failed",
                store_type=store_type,
                database_url=_mask_url_password(self.settings.database_url),
                error_type=type(exc).__name__,
                error=str(exc),
            )
            raise
        self.auth = AuthService(self.store, self.settings)
        self.grants = PermissionGrants()
        logger.info("runtime_initialized", store_type=store_type)

    def close(self) -> None:
        self.store.close()


runtime: Runtime | None = None
_runtime_lock = threading.Lock()


def get_runtime() -> Runtime:
    """Get or create the Runtime singleton.

    Double-checked locking: the unlocked read is the fast path once the
    runtime exists.
    """
    global runtime
    if runtime is not None:
        return runtime
    with _runtime_lock:
        if runtime is None:
            runtime = Runtime()
        return runtime


def reset_runtime_for_tests() -> Runtime:
    """Reinitialize the runtime singleton for isolated test runs."""

    global runtime

    with _runtime_lock:
        if runtime is not None:
            runtime.close()
        reset_settings_cache()
        settings = get_settings()
        if not settings.test_mode:
            raise RuntimeError("runtime reset is only allowed in TEST_MODE")
        runtime = Runtime()
        return runtime


async def call_procedure(
    name: str, params: Dict[str, Any], mode: ProcedureMode
) -> Dict[str, Any] | List[Dict[str, Any]]:
    """Run one stored procedure on the configured store without blocking the loop."""

    store = get_runtime().store
    return await asyncio.to_thread(store.call_procedure, name, params, mode)
