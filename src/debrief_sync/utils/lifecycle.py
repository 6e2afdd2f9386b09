"""
Lifecycle base class for long-running debrief-sync components.

A service moves UNINITIALIZED -> READY -> RUNNING -> STOPPED; any failing
phase leaves it in ERROR. Background tasks created through create_task()
are cancelled on stop. Observers can register for the "initialized",
"started" and "stopped" events.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Coroutine, Dict, List, Optional

from .logging import get_logger


class ServiceState(Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"
    ERROR = "error"


class ServiceError(Exception):
    """A lifecycle phase failed or was called in the wrong state."""


class ServiceNotReadyError(ServiceError):
    """An operation needs an initialized service (or an open scope)."""


@dataclass
class HealthStatus:
    healthy: bool
    last_check: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    details: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None


EventHandler = Callable[[str, Dict[str, Any]], Any]


class BaseService(ABC):
    """Template for services: subclasses implement the underscored hooks."""

    def __init__(self, name: str):
        self.name = name
        self.logger = get_logger(f"debrief-sync.{name}")
        self.state = ServiceState.UNINITIALIZED
        self._handlers: Dict[str, List[EventHandler]] = {}
        self._tasks: List[asyncio.Task] = []

    @property
    def is_ready(self) -> bool:
        return self.state in (ServiceState.READY, ServiceState.RUNNING)

    @property
    def is_running(self) -> bool:
        return self.state == ServiceState.RUNNING

    async def _run_phase(
        self,
        phase: str,
        hook: Callable[[], Awaitable[None]],
        during: ServiceState,
        after: ServiceState,
    ) -> None:
        self.state = during
        try:
            await hook()
        except Exception as e:
            self.state = ServiceState.ERROR
            self.logger.error(f"{phase}_failed", service=self.name, error=str(e), exc_info=True)
            raise ServiceError(f"{self.name} failed to {phase}: {e}") from e
        self.state = after

    async def initialize(self) -> None:
        if self.state not in (ServiceState.UNINITIALIZED, ServiceState.STOPPED):
            raise ServiceError(f"cannot initialize {self.name} while {self.state.value}")
        await self._run_phase("initialize", self._initialize, ServiceState.INITIALIZING, ServiceState.READY)
        await self._emit("initialized")

    async def start(self) -> None:
        """Initialize if needed, then start; a running service is left alone."""
        if self.is_running:
            return
        if self.state in (ServiceState.UNINITIALIZED, ServiceState.STOPPED):
            await self.initialize()
        if self.state != ServiceState.READY:
            raise ServiceNotReadyError(f"{self.name} is {self.state.value}")
        await self._run_phase("start", self._start, ServiceState.STARTING, ServiceState.RUNNING)
        self.logger.info("service_started", service=self.name)
        await self._emit("started")

    async def stop(self) -> None:
        """Run the stop hook and cancel background tasks; no-op unless running."""
        if not self.is_running:
            return
        self.state = ServiceState.STOPPING
        try:
            await self._stop()
        finally:
            pending = [t for t in self._tasks if not t.done()]
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            self._tasks.clear()
            self.state = ServiceState.STOPPED
        self.logger.info("service_stopped", service=self.name)
        await self._emit("stopped")

    def create_task(self, coro: Coroutine, name: Optional[str] = None) -> asyncio.Task:
        """Start a background task owned by this service."""
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.append(task)
        task.add_done_callback(self._discard_task)
        return task

    def _discard_task(self, task: asyncio.Task) -> None:
        if self.state != ServiceState.STOPPING and task in self._tasks:
            self._tasks.remove(task)

    async def health_check(self) -> HealthStatus:
        try:
            return HealthStatus(healthy=True, details=await self._health_check())
        except Exception as e:
            self.logger.warning("health_check_failed", service=self.name, error=str(e))
            return HealthStatus(healthy=False, error=str(e))

    def register_event_handler(self, event: str, handler: EventHandler) -> None:
        self._handlers.setdefault(event, []).append(handler)

    def unregister_event_handler(self, event: str, handler: EventHandler) -> None:
        handlers = self._handlers.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    async def _emit(self, event: str) -> None:
        data = {"service": self.name}
        for handler in list(self._handlers.get(event, [])):
            try:
                result = handler(event, data)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                self.logger.error("event_handler_failed", service_event=event, error=str(e))

    @abstractmethod
    async def _initialize(self) -> None:
        ...

    @abstractmethod
    async def _start(self) -> None:
        ...

    @abstractmethod
    async def _stop(self) -> None:
        ...

    @abstractmethod
    async def _health_check(self) -> Dict[str, Any]:
        ...


__all__ = [
    'BaseService',
    'ServiceState',
    'ServiceError',
    'ServiceNotReadyError',
    'HealthStatus',
]
