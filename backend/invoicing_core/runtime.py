"""Runtime — composition root wiring settings, adapters and services together.

Invariants:
    - Services receive collaborators only through their constructors
    - One EventBus per Runtime; nothing is module-global except the db_manager singleton
    - stop() is safe to call after a failed or partial start()

Design Decisions:
    - runtime_lifespan() mirrors an application lifespan: logging + database on the
      way in, ordered shutdown on the way out
    - auth may be injected (tests, embedding apps); otherwise a GoTrue client is built
      and owned (closed) by the Runtime
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncGenerator

from invoicing_core.config import Settings, get_settings
from invoicing_core.core.repository_protocols import AuthProvider
from invoicing_core.infrastructure.activity_repository import SqlActivityRepository
from invoicing_core.infrastructure.auth_client import GoTrueAuthClient
from invoicing_core.infrastructure.database import DatabaseSessionManager, init_db
from invoicing_core.infrastructure.invoice_repository import (
    SqlInvoiceRepository, SqlInvoiceSerialCounter,
)
from invoicing_core.infrastructure.notification_repository import SqlNotificationRepository
from invoicing_core.infrastructure.observability import setup_logging
from invoicing_core.infrastructure.preference_store import SqlPreferenceStore
from invoicing_core.services.activity_clock import ActivityClock
from invoicing_core.services.event_bus import EventBus
from invoicing_core.services.invoice_number_allocator import InvoiceNumberAllocator
from invoicing_core.services.invoice_store import InvoiceStore
from invoicing_core.services.notification_mailbox import NotificationMailbox
from invoicing_core.services.session_guard import NoticeSink, SessionGuard

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    """Every live component of one signed-in client."""

    settings: Settings
    db: DatabaseSessionManager
    auth: AuthProvider
    bus: EventBus
    preferences: SqlPreferenceStore
    clock: ActivityClock
    guard: SessionGuard
    mailbox: NotificationMailbox
    allocator: InvoiceNumberAllocator
    invoices: InvoiceStore
    owns_auth: bool = False
    started: bool = field(default=False, init=False)

    async def start(self) -> None:
        self.mailbox.start()
        await self.guard.start()
        self.started = True
        if self.guard.is_authenticated:
            await self.mailbox.load()
        logger.info("Invoicing runtime started", extra={"state": self.guard.state.value})

    async def stop(self) -> None:
        self.mailbox.stop()
        await self.guard.stop()
        await self.bus.drain()
        if self.owns_auth and isinstance(self.auth, GoTrueAuthClient):
            await self.auth.aclose()
        self.started = False
        logger.info("Invoicing runtime stopped")


def build_runtime(
    settings: Settings,
    db: DatabaseSessionManager,
    *,
    auth: AuthProvider | None = None,
    notify: NoticeSink | None = None,
) -> Runtime:
    owns_auth = auth is None
    if auth is None:
        auth = GoTrueAuthClient(
            settings.auth_url,
            settings.auth_api_key,
            timeout_seconds=settings.auth_timeout_seconds,
            max_retries=settings.auth_max_retries,
            base_delay_ms=settings.auth_base_delay_ms,
            max_delay_ms=settings.auth_max_delay_ms,
        )

    bus = EventBus()
    activity_repo = SqlActivityRepository(db)
    preferences = SqlPreferenceStore(db, auth)
    clock = ActivityClock(activity_repo)
    guard = SessionGuard(
        auth, clock, activity_repo, preferences, bus,
        timeout=settings.session_timeout,
        session_scoped_keys=settings.session_scoped_keys,
        notify=notify,
    )
    return Runtime(
        settings=settings,
        db=db,
        auth=auth,
        bus=bus,
        preferences=preferences,
        clock=clock,
        guard=guard,
        mailbox=NotificationMailbox(auth, SqlNotificationRepository(db), bus),
        allocator=InvoiceNumberAllocator(SqlInvoiceSerialCounter(db)),
        invoices=InvoiceStore(
            auth, SqlInvoiceRepository(db), bus,
            retention=settings.deleted_invoice_retention,
        ),
        owns_auth=owns_auth,
    )


@asynccontextmanager
async def runtime_lifespan(
    settings: Settings | None = None,
    *,
    auth: AuthProvider | None = None,
    notify: NoticeSink | None = None,
    create_tables: bool = False,
) -> AsyncGenerator[Runtime, None]:
    """Startup/shutdown lifecycle."""
    settings = settings or get_settings()
    handler = setup_logging(settings.log_level, settings.log_format)
    db = init_db(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )
    runtime = build_runtime(settings, db, auth=auth, notify=notify)
    try:
        if create_tables:
            await db.create_all()
        await runtime.start()
        yield runtime
    finally:
        await runtime.stop()
        await db.dispose()
        logging.root.removeHandler(handler)
