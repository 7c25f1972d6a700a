"""Application bootstrap and lifecycle management."""

from dataclasses import replace
from typing import Protocol

from .backend import ITelemetryBackend, SqliteBackend
from .config import Settings, load_settings, resolve_db_path
from .formatting import NarrativeTraceFormatter
from .logging_config import get_logger
from .orchestrator import NarrativeTraceOrchestrator

logger = get_logger(__name__)


class IApplication(Protocol):
    """Bootstrap and lifecycle."""

    async def start(self) -> None:
        """Initialize components in dependency order."""
        ...

    async def stop(self) -> None:
        """Flush and shut down in reverse order."""
        ...

    async def reset(self) -> None:
        """Drop live traces and exported records."""
        ...

    @property
    def orchestrator(self) -> NarrativeTraceOrchestrator:
        """Root trace manager."""
        ...

    @property
    def formatter(self) -> NarrativeTraceFormatter:
        """Trace renderer."""
        ...


class Application:
    """Wires backend, orchestrator and formatter together."""

    def __init__(
        self,
        db_path: str | None = None,
        backend: ITelemetryBackend | None = None,
        settings: Settings | None = None,
    ):
        self._settings = settings or load_settings()
        if db_path is not None:
            self._settings = replace(self._settings, db_path=resolve_db_path(db_path))

        # Components (initialized in start())
        self._backend: ITelemetryBackend | None = backend
        self._orchestrator: NarrativeTraceOrchestrator | None = None
        self._formatter: NarrativeTraceFormatter | None = None

    async def start(self) -> None:
        """Initialize components in dependency order."""
        logger.info("Starting application")

        # 1. Backend (no dependencies)
        if self._backend is None:
            self._backend = SqliteBackend(self._settings.db_path)
        if isinstance(self._backend, SqliteBackend):
            await self._backend.init()
        logger.info("Telemetry backend initialized: %s", type(self._backend).__name__)

        # 2. Orchestrator (depends on backend)
        self._orchestrator = NarrativeTraceOrchestrator(self._backend, self._settings)

        # 3. Formatter (stateless)
        self._formatter = NarrativeTraceFormatter()
        logger.info("All components initialized successfully")

    async def stop(self) -> None:
        """Flush pending records and close the backend."""
        if self._orchestrator:
            live = self._orchestrator.active_trace_ids
            if live:
                logger.warning("Stopping with %d unfinalized traces", len(live))
            await self._orchestrator.flush()
        if isinstance(self._backend, SqliteBackend):
            await self._backend.close()
            logger.info("Telemetry backend closed")

    async def reset(self) -> None:
        """Drop live traces and exported records."""
        if isinstance(self._backend, SqliteBackend):
            await self._backend.clear()
        if self._backend is not None:
            self._orchestrator = NarrativeTraceOrchestrator(self._backend, self._settings)
        logger.info("Reset complete")

    @property
    def settings(self) -> Settings:
        """Effective settings."""
        return self._settings

    @property
    def orchestrator(self) -> NarrativeTraceOrchestrator:
        """Get orchestrator instance."""
        if not self._orchestrator:
            raise RuntimeError("Application not started")
        return self._orchestrator

    @property
    def formatter(self) -> NarrativeTraceFormatter:
        """Get formatter instance."""
        if not self._formatter:
            raise RuntimeError("Application not started")
        return self._formatter
