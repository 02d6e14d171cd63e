from __future__ import annotations

import enum
import time
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import anyio

from .handler import HandlerFactory, run_teardown
from .logging import get_logger
from .reaper import IdleReaper
from .registry import Session, SessionRegistry
from .routing import conversation_id
from .settings import DispatcherSettings
from .sources.base import EventSource
from .telegram.api_models import Update
from .timers import TimerService

if TYPE_CHECKING:
    from anyio.abc import TaskGroup
else:
    TaskGroup = object

logger = get_logger(__name__)

__all__ = [
    "AlreadyRunningError",
    "Diagnostic",
    "DiagnosticKind",
    "Dispatcher",
    "DispatcherError",
    "DispatcherState",
    "ErrorAction",
    "NotStartedError",
    "SessionExistsError",
    "serve",
]

SOURCE_RETRY_DELAY_S = 5.0


class DispatcherError(RuntimeError):
    pass


class AlreadyRunningError(DispatcherError):
    pass


class NotStartedError(DispatcherError):
    pass


class SessionExistsError(DispatcherError):
    def __init__(self, conversation_id: int) -> None:
        super().__init__(f"session {conversation_id} already exists")
        self.conversation_id = conversation_id


class DispatcherState(enum.Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


class DiagnosticKind(enum.StrEnum):
    UNROUTABLE = "unroutable"
    HANDLER_FAILED = "handler_failed"
    FACTORY_FAILED = "factory_failed"
    TEARDOWN_FAILED = "teardown_failed"
    DROPPED = "dropped"


class ErrorAction(enum.Enum):
    CONTINUE = "continue"
    REMOVE_SESSION = "remove_session"


@dataclass(frozen=True, slots=True)
class Diagnostic:
    kind: DiagnosticKind
    conversation_id: int | None = None
    update: Update | None = None
    error: BaseException | None = None


DiagnosticHook = Callable[[Diagnostic], "ErrorAction | None"]


class Dispatcher:
    """Routes updates from an event source to one handler per conversation.

    Every conversation gets its own delivery lane: updates for one id reach
    its handler one at a time, in arrival order, while different ids run
    concurrently. All tasks live under ``task_group``.
    """

    def __init__(
        self,
        source: EventSource,
        *,
        task_group: TaskGroup,
        settings: DispatcherSettings | None = None,
        on_diagnostic: DiagnosticHook | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = anyio.sleep,
    ) -> None:
        self._source = source
        self._task_group = task_group
        self._settings = settings or DispatcherSettings()
        self._on_diagnostic = on_diagnostic
        self._clock = clock
        self._sleep = sleep
        self._registry = SessionRegistry(clock=clock)
        self._timers = TimerService(
            clock=clock, sleep=sleep, tick_s=self._settings.timer_tick_s
        )
        self._state = DispatcherState.STOPPED
        self._factory: HandlerFactory | None = None
        self._started_once = False
        # Updates for ids whose session is still being created.
        self._inboxes: dict[int, deque[Update]] = {}
        # Removed sessions whose teardown has not finished yet.
        self._retiring: dict[int, Session] = {}
        self._lanes: TaskGroup | None = None
        self._open_scope: anyio.CancelScope | None = None
        self._ingest_scope: anyio.CancelScope | None = None
        self._done: anyio.Event | None = None

    @property
    def state(self) -> DispatcherState:
        return self._state

    @property
    def sessions(self) -> SessionRegistry:
        return self._registry

    @property
    def timers(self) -> TimerService:
        return self._timers

    @property
    def pending(self) -> int:
        queued = sum(len(session.pending) for session in self._registry.snapshot())
        return queued + sum(len(inbox) for inbox in self._inboxes.values())

    async def start(self, new_handler: HandlerFactory) -> None:
        if self._state is not DispatcherState.STOPPED:
            raise AlreadyRunningError(f"dispatcher is {self._state.value}")
        self._factory = new_handler
        self._started_once = True
        self._state = DispatcherState.STARTING
        self._done = anyio.Event()
        self._open_scope = open_scope = anyio.CancelScope()
        self._ingest_scope = ingest_scope = anyio.CancelScope()
        logger.info("dispatcher.starting")
        await self._task_group.start(self._run, open_scope, ingest_scope)

    async def stop(self) -> None:
        if not self._started_once or self._done is None:
            raise NotStartedError("dispatcher was never started")
        if self._state is DispatcherState.STARTING:
            self._state = DispatcherState.STOPPING
            logger.info("dispatcher.stopping", during="start")
            if self._open_scope is not None:
                self._open_scope.cancel()
        elif self._state is DispatcherState.RUNNING:
            self._state = DispatcherState.STOPPING
            logger.info("dispatcher.stopping", pending=self.pending)
            if self._ingest_scope is not None:
                self._ingest_scope.cancel()
        await self._done.wait()

    async def wait_stopped(self) -> None:
        if self._done is not None:
            await self._done.wait()

    def dispatch(self, update: Update) -> bool:
        """Queue ``update`` on its conversation's lane without waiting.

        Returns ``False`` when no conversation id can be derived. Updates
        dispatched while stopped stay queued until the next start.
        """
        cid = conversation_id(update)
        if cid is None:
            logger.debug(
                "dispatcher.update.unroutable",
                update_id=update.update_id,
                kind=update.kind,
            )
            self._report(Diagnostic(DiagnosticKind.UNROUTABLE, update=update))
            return False
        inbox = self._inboxes.get(cid)
        session = self._registry.get(cid) if inbox is None else None
        if session is not None:
            session.touch(self._clock())
            session.pending.append(update)
            self._wake(session)
            return True
        if inbox is None:
            inbox = deque()
            self._inboxes[cid] = inbox
            if self._lanes is not None:
                self._lanes.start_soon(self._create_session, cid)
        inbox.append(update)
        return True

    async def add_session(
        self, conversation_id: int, factory: HandlerFactory | None = None
    ) -> Session:
        factory = factory or self._factory
        if factory is None:
            raise NotStartedError("no handler factory; start the dispatcher first")
        if conversation_id in self._registry or conversation_id in self._inboxes:
            raise SessionExistsError(conversation_id)
        session, created = await self._registry.get_or_create(conversation_id, factory)
        if not created:
            raise SessionExistsError(conversation_id)
        self._link_predecessor(session)
        logger.info("dispatcher.session.added", conversation_id=conversation_id)
        return session

    async def remove_session(self, conversation_id: int) -> bool:
        """Detach the session for ``conversation_id`` and tear it down.

        Queued updates are dropped and reported. If an update is in flight
        the teardown runs once it finishes, so this is safe to call from the
        session's own handler.
        """
        session = self._registry.get(conversation_id)
        if session is None:
            return False
        self._detach(session)
        logger.info(
            "dispatcher.session.removed",
            conversation_id=conversation_id,
            in_flight=session.running,
        )
        if not session.running:
            await self._teardown(session)
        return True

    async def _run(
        self,
        open_scope: anyio.CancelScope,
        ingest_scope: anyio.CancelScope,
        *,
        task_status: Any = anyio.TASK_STATUS_IGNORED,
    ) -> None:
        try:
            with open_scope:
                await self._source.open()
        except BaseException:
            await self._finish()
            raise
        if open_scope.cancel_called:
            logger.info("dispatcher.start.aborted")
            await self._finish()
            task_status.started()
            return
        try:
            await self._serve(ingest_scope, task_status)
        finally:
            await self._finish()

    async def _serve(
        self, ingest_scope: anyio.CancelScope, task_status: Any
    ) -> None:
        self._state = DispatcherState.RUNNING
        async with anyio.create_task_group() as background:
            self._start_background(background)
            with anyio.CancelScope() as drain:
                try:
                    async with anyio.create_task_group() as lanes:
                        self._lanes = lanes
                        self._resume(lanes)
                        logger.info(
                            "dispatcher.started",
                            sessions=len(self._registry),
                            pending=self.pending,
                        )
                        task_status.started()
                        with ingest_scope:
                            await self._ingest()
                        self._state = DispatcherState.STOPPING
                        drain.deadline = (
                            anyio.current_time() + self._settings.stop_grace_s
                        )
                finally:
                    self._lanes = None
            if drain.cancelled_caught:
                logger.warning(
                    "dispatcher.stop.grace_expired",
                    grace_s=self._settings.stop_grace_s,
                    pending=self.pending,
                )
            background.cancel_scope.cancel()

    async def _finish(self) -> None:
        self._state = DispatcherState.STOPPING
        with anyio.CancelScope(shield=True):
            try:
                await self._source.aclose()
            except Exception as exc:
                logger.error(
                    "dispatcher.source.close_failed",
                    error=str(exc),
                    error_type=exc.__class__.__name__,
                )
        self._state = DispatcherState.STOPPED
        if self._done is not None:
            self._done.set()
        logger.info(
            "dispatcher.stopped", sessions=len(self._registry), pending=self.pending
        )

    def _start_background(self, task_group: TaskGroup) -> None:
        ttl_s = self._settings.session_ttl_s
        if ttl_s is not None:
            reaper = IdleReaper(
                self._registry,
                ttl_s=ttl_s,
                interval_s=self._settings.reap_interval_s,
                evict=self._evict,
                clock=self._clock,
                sleep=self._sleep,
            )
            task_group.start_soon(reaper.run)
        task_group.start_soon(self._timers.run, task_group)

    def _resume(self, lanes: TaskGroup) -> None:
        for session in self._registry.snapshot():
            self._wake(session)
        for cid in list(self._inboxes):
            lanes.start_soon(self._create_session, cid)

    async def _ingest(self) -> None:
        while True:
            try:
                update = await self._source.receive()
            except anyio.EndOfStream:
                logger.info("dispatcher.source.ended")
                return
            except Exception as exc:
                logger.error(
                    "dispatcher.source.failed",
                    error=str(exc),
                    error_type=exc.__class__.__name__,
                    retry_in=SOURCE_RETRY_DELAY_S,
                )
                await self._sleep(SOURCE_RETRY_DELAY_S)
                continue
            self.dispatch(update)

    async def _create_session(self, cid: int) -> None:
        factory = self._factory
        if factory is None:
            raise NotStartedError("no handler factory; start the dispatcher first")
        try:
            session, created = await self._registry.get_or_create(cid, factory)
        except Exception as exc:
            inbox = self._inboxes.pop(cid, deque())
            logger.error(
                "dispatcher.factory.failed",
                conversation_id=cid,
                dropped=len(inbox),
                error=str(exc),
                error_type=exc.__class__.__name__,
            )
            for update in inbox:
                self._report(
                    Diagnostic(
                        DiagnosticKind.FACTORY_FAILED,
                        conversation_id=cid,
                        update=update,
                        error=exc,
                    )
                )
            return
        if created:
            self._link_predecessor(session)
        inbox = self._inboxes.pop(cid, None)
        if inbox:
            session.pending.extend(inbox)
        session.touch(self._clock())
        self._wake(session)

    def _link_predecessor(self, session: Session) -> None:
        previous = self._retiring.get(session.conversation_id)
        if previous is not None and previous is not session:
            session.after = previous.done

    def _wake(self, session: Session) -> None:
        if session.running or session.closed or not session.pending:
            return
        if self._lanes is None:
            return
        session.running = True
        self._lanes.start_soon(self._lane, session)

    async def _lane(self, session: Session) -> None:
        try:
            if session.after is not None:
                await session.after.wait()
                session.after = None
            while session.pending and not session.closed:
                update = session.pending.popleft()
                await self._deliver(session, update)
        finally:
            session.running = False
            session.touch(self._clock())
            if session.closed:
                with anyio.CancelScope(shield=True):
                    await self._teardown(session)

    async def _deliver(self, session: Session, update: Update) -> None:
        try:
            await session.handler.update(update)
        except Exception as exc:
            logger.error(
                "dispatcher.handler.failed",
                conversation_id=session.conversation_id,
                update_id=update.update_id,
                error=str(exc),
                error_type=exc.__class__.__name__,
                exc_info=True,
            )
            action = self._report(
                Diagnostic(
                    DiagnosticKind.HANDLER_FAILED,
                    conversation_id=session.conversation_id,
                    update=update,
                    error=exc,
                )
            )
            if action is ErrorAction.REMOVE_SESSION:
                self._detach(session)
                logger.info(
                    "dispatcher.session.removed",
                    conversation_id=session.conversation_id,
                    reason="handler_failed",
                )

    def _detach(self, session: Session) -> None:
        if session.closed:
            return
        self._registry.discard(session)
        session.closed = True
        cid = session.conversation_id
        dropped = list(session.pending)
        session.pending.clear()
        self._retiring[cid] = session
        if dropped:
            logger.info("dispatcher.session.dropped", conversation_id=cid, count=len(dropped))
        for update in dropped:
            self._report(
                Diagnostic(DiagnosticKind.DROPPED, conversation_id=cid, update=update)
            )

    async def _evict(self, session: Session) -> None:
        self._detach(session)
        with anyio.CancelScope(shield=True):
            await self._teardown(session)

    async def _teardown(self, session: Session) -> None:
        if session.torn_down:
            return
        session.torn_down = True
        cid = session.conversation_id
        if self._registry.get(cid) is None:
            self._timers.remove_all(cid)
        try:
            await run_teardown(session.handler)
        except Exception as exc:
            logger.error(
                "dispatcher.teardown.failed",
                conversation_id=cid,
                error=str(exc),
                error_type=exc.__class__.__name__,
            )
            self._report(
                Diagnostic(
                    DiagnosticKind.TEARDOWN_FAILED, conversation_id=cid, error=exc
                )
            )
        finally:
            session.done.set()
            if self._retiring.get(cid) is session:
                del self._retiring[cid]

    def _report(self, diagnostic: Diagnostic) -> ErrorAction | None:
        if self._on_diagnostic is None:
            return None
        try:
            return self._on_diagnostic(diagnostic)
        except Exception as exc:
            logger.error(
                "dispatcher.diagnostic_hook.failed",
                kind=diagnostic.kind,
                error=str(exc),
                error_type=exc.__class__.__name__,
            )
            return None


async def serve(
    source: EventSource,
    new_handler: HandlerFactory,
    *,
    settings: DispatcherSettings | None = None,
    on_diagnostic: DiagnosticHook | None = None,
) -> None:
    """Run a dispatcher until the source ends or the caller is cancelled."""
    async with anyio.create_task_group() as tg:
        dispatcher = Dispatcher(
            source, task_group=tg, settings=settings, on_diagnostic=on_diagnostic
        )
        await dispatcher.start(new_handler)
        try:
            await dispatcher.wait_stopped()
        finally:
            with anyio.CancelScope(shield=True):
                await dispatcher.stop()
