"""
Traveler Runtime: wires configuration into the engine's services.

Ties together:
- Database + DocumentStore / PrincipalStore (SQLAlchemy)
- Directory (ldap3) and CasClient (httpx)
- BestEffortDispatcher for back-reference and propagation writes
- SessionStore (Redis)
- AsyncLogQueue + LogRetentionManager (audit logs)
- ShareManager, OwnershipService, BinderService, TicketAuthenticator

Lifecycle:
    runtime = TravelerRuntime(load_config())
    await runtime.startup()
    ...
    await runtime.shutdown()
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from traveler.db.session import Database
from traveler.directory.client import Directory, DirectoryClient, LdapDirectoryClient
from traveler.directory.sso import CasClient
from traveler.documents.store import DocumentStore, PrincipalStore
from traveler.engine.cache import RedisCache, SessionStore, create_session_store
from traveler.engine.config import TravelerConfig
from traveler.engine.dispatch import BestEffortDispatcher
from traveler.engine.logging import (
    AsyncLogQueue,
    LogRetentionManager,
    init_logging,
    log,
    log_system_event,
    shutdown_logging,
)
from traveler.security.auth import TicketAuthenticator
from traveler.security.ownership import OwnershipService
from traveler.security.share import ShareManager
from traveler.workflow.binder import BinderService

logger = logging.getLogger("traveler.runtime")


class TravelerRuntime:
    """
    Owns every long-lived component; route handlers reach services through it.

    Collaborators can be injected (an existing Database, a directory client,
    an httpx transport for CAS, a Redis client) and are otherwise built from
    the configuration.
    """

    def __init__(
        self,
        config: TravelerConfig,
        database: Optional[Database] = None,
        directory_client: Optional[DirectoryClient] = None,
        cas_transport: Optional[httpx.AsyncBaseTransport] = None,
        redis_client: Any = None,
        enable_audit_log: bool = True,
    ):
        self.config = config
        self._database = database
        self._owns_database = database is None
        self._directory_client = directory_client
        self._cas_transport = cas_transport
        self._redis_client = redis_client
        self._enable_audit_log = enable_audit_log

        # Initialized in startup()
        self.database: Optional[Database] = None
        self.documents: Optional[DocumentStore] = None
        self.principals: Optional[PrincipalStore] = None
        self.directory: Optional[Directory] = None
        self.cas: Optional[CasClient] = None
        self.dispatcher: Optional[BestEffortDispatcher] = None
        self.sessions: Optional[SessionStore] = None
        self.log_queue: Optional[AsyncLogQueue] = None
        self.retention_manager: Optional[LogRetentionManager] = None
        self.shares: Optional[ShareManager] = None
        self.ownership: Optional[OwnershipService] = None
        self.binders: Optional[BinderService] = None
        self.authenticator: Optional[TicketAuthenticator] = None

        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    # -----------------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------------

    async def startup(self) -> None:
        """Initialize all subsystems. Must run on the event loop that serves requests."""
        if self._started:
            logger.warning("Runtime already started")
            return

        cfg = self.config
        logging.getLogger("traveler").setLevel(cfg.logging.level.upper())
        logger.info(f"Starting {cfg.name} runtime ({cfg.environment})...")

        # 1. Audit logging
        if self._enable_audit_log:
            self.log_queue = init_logging(
                log_dir=cfg.logging.directory,
                flush_interval_ms=cfg.logging.async_queue.flush_interval_ms,
                flush_batch_size=cfg.logging.async_queue.flush_batch_size,
                max_queue_size=cfg.logging.async_queue.max_queue_size,
            )
            self.retention_manager = LogRetentionManager(
                log_dir=cfg.logging.directory,
                retention_days={
                    "execution": cfg.logging.retention.execution_days,
                    "security": cfg.logging.retention.security_days,
                },
                compress_after_days=cfg.logging.compress_after_days,
            )

        # 2. Persistence
        self.database = self._database or Database.from_config(
            cfg.database, create_tables=cfg.environment == "dev"
        )
        self.documents = DocumentStore(self.database)
        self.principals = PrincipalStore(self.database)

        # 3. Side channel for best-effort writes
        self.dispatcher = BestEffortDispatcher(max_queue_size=cfg.side_effects.max_queue_size)
        self.dispatcher.start()

        # 4. Directory + SSO
        client = self._directory_client or LdapDirectoryClient(cfg.directory)
        self.directory = Directory(client, cfg.directory)
        self.cas = CasClient(cfg.sso, transport=self._cas_transport)

        # 5. Sessions
        if self._redis_client is not None:
            cache = RedisCache(
                redis_url=cfg.redis.url,
                prefix="traveler:session:",
                default_ttl=cfg.security.session_timeout,
                db=cfg.redis.session_db,
            )
            cache.use_client(self._redis_client)
            self.sessions = SessionStore(cache, ttl=cfg.security.session_timeout)
        else:
            self.sessions = create_session_store(
                cfg.redis.url, db=cfg.redis.session_db, ttl=cfg.security.session_timeout
            )

        # 6. Services
        self.shares = ShareManager(self.documents, self.principals, self.directory, self.dispatcher)
        self.ownership = OwnershipService(self.documents, self.directory)
        self.binders = BinderService(self.documents, self.dispatcher)
        self.authenticator = TicketAuthenticator(
            self.cas, self.directory, self.principals, self.dispatcher, cfg.security
        )

        self._started = True
        log(log_system_event("runtime_started", details=self._subsystem_status()))
        logger.info(f"{cfg.name} runtime started")

    async def shutdown(self) -> None:
        """Drain best-effort writes, flush logs, close connections."""
        if not self._started:
            return

        logger.info(f"Shutting down {self.config.name} runtime...")

        if self.dispatcher is not None:
            await self.dispatcher.stop()
        if self.directory is not None:
            await self.directory.client.close()
        if self.sessions is not None:
            self.sessions.close()

        log(log_system_event("runtime_shutdown"))
        if self._enable_audit_log:
            shutdown_logging()
            self.log_queue = None

        if self.database is not None and self._owns_database:
            self.database.dispose()

        self._started = False
        logger.info(f"{self.config.name} runtime shut down")

    def _subsystem_status(self) -> Dict[str, Any]:
        return {
            "database": self.database is not None,
            "directory": self.directory is not None,
            "sessions": self.sessions is not None and self.sessions.is_available,
            "audit_log": self.log_queue is not None,
            "environment": self.config.environment,
        }
