"""
Long-lived notification stream client.

Supervises one push connection per authenticated session, exposes the
connection state machine and decoded events, and reconnects with
exponential backoff after transport failures:

    IDLE -> CONNECTING -> OPEN -> ERROR -> RECONNECTING -> CONNECTING ...
                                       \\-> CLOSED (attempt ceiling reached)

``disconnect()`` moves to CLOSED from any state. All methods must be called
from the event loop thread; the connection itself runs in a single owned
task.
"""

import asyncio
import datetime
import logging
from typing import Callable, List, Optional

from todonotify.notifications.errors import MalformedEventError
from todonotify.notifications.models import ConnectionState, NotificationEvent
from todonotify.notifications.timers import TimerHandle, TimerService
from todonotify.notifications.transport import StreamTransport

logger = logging.getLogger(__name__)

AUTH_REQUIRED = "Authentication required"
CONNECTION_FAILED = "Connection failed"
MAX_ATTEMPTS_EXCEEDED = "Max reconnection attempts exceeded"

EventListener = Callable[[NotificationEvent], None]
StateListener = Callable[[ConnectionState, Optional[str]], None]


class StreamClient:
    """Push connection supervisor with backoff reconnection."""

    def __init__(
        self,
        transport: StreamTransport,
        url: str,
        timers: TimerService,
        max_attempts: int = 5,
        base_delay_ms: int = 1000,
    ):
        self._transport = transport
        self.url = url
        self._timers = timers
        self.max_attempts = max_attempts
        self.base_delay_ms = base_delay_ms

        self._state = ConnectionState.IDLE
        self._error: Optional[str] = None
        self._session_id: Optional[str] = None
        self._attempts = 0
        # Bumped whenever a connection is superseded; stale callbacks compare against it.
        self._generation = 0
        self._task: Optional[asyncio.Task] = None
        self._retry_timer: Optional[TimerHandle] = None

        self._event_listeners: List[EventListener] = []
        self._state_listeners: List[StateListener] = []

        self.last_event: Optional[NotificationEvent] = None
        self.last_heartbeat_at: Optional[datetime.datetime] = None

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def connection_error(self) -> Optional[str]:
        return self._error

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.OPEN

    @property
    def attempts(self) -> int:
        """Retries scheduled since the stream last opened."""
        return self._attempts

    @property
    def session_id(self) -> Optional[str]:
        return self._session_id

    @property
    def connection_task(self) -> Optional[asyncio.Task]:
        """The task running the current connection, if any."""
        return self._task

    @property
    def has_pending_retry(self) -> bool:
        return self._retry_timer is not None

    def subscribe(self, listener: EventListener) -> Callable[[], None]:
        """Receive every decoded, non-heartbeat event."""
        self._event_listeners.append(listener)
        return lambda: self._unsubscribe(self._event_listeners, listener)

    def subscribe_state(self, listener: StateListener) -> Callable[[], None]:
        """Receive ``(state, error)`` on every transition."""
        self._state_listeners.append(listener)
        return lambda: self._unsubscribe(self._state_listeners, listener)

    @staticmethod
    def _unsubscribe(listeners: list, listener) -> None:
        if listener in listeners:
            listeners.remove(listener)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def connect(self, session_id: Optional[str]) -> None:
        """Open the stream for *session_id*.

        A no-op when a connection for the same session is already open or
        opening. Without a session the client reports an error and does not
        retry.
        """
        if not session_id:
            self._fail_unauthenticated()
            return

        if session_id == self._session_id and self._state in (
            ConnectionState.CONNECTING,
            ConnectionState.OPEN,
        ):
            logger.debug("Notification stream already active for this session")
            return

        self._session_id = session_id
        self._start()

    def disconnect(self) -> None:
        """Close the connection and cancel any pending retry. Always safe."""
        self._cancel_retry()
        self._cancel_task()
        self._generation += 1
        self._session_id = None
        if self._state is not ConnectionState.CLOSED:
            logger.info("Notification stream disconnected")
        self._set_state(ConnectionState.CLOSED, None)

    async def aclose(self) -> None:
        """Disconnect and wait for the connection task to finish."""
        task = self._task
        self.disconnect()
        if task is not None:
            await asyncio.wait({task})

    def reconnect(self) -> None:
        """Reset the attempt counter and start a fresh connection cycle."""
        self._attempts = 0
        self._error = None
        if not self._session_id:
            self._fail_unauthenticated()
            return
        logger.info("Reconnecting notification stream")
        self._start()

    def handle_visibility_change(self, visible: bool) -> None:
        """Recover a dropped connection when the app returns to the foreground."""
        if not visible:
            logger.debug("App hidden, keeping notification stream active")
            return
        if not self._session_id:
            return
        if self._state in (ConnectionState.OPEN, ConnectionState.CONNECTING):
            return
        logger.info(f"App visible with stream {self._state.value}, reconnecting")
        self.reconnect()

    # ------------------------------------------------------------------
    # Connection task
    # ------------------------------------------------------------------

    def _start(self) -> None:
        self._cancel_retry()
        self._cancel_task()
        self._generation += 1
        generation = self._generation
        self._set_state(ConnectionState.CONNECTING, self._error)
        self._task = asyncio.get_running_loop().create_task(
            self._run(generation, self._session_id),
            name=f"notification-stream-{generation}",
        )

    async def _run(self, generation: int, session_id: str) -> None:
        try:
            async with self._transport.open(self.url, {"sessionId": session_id}) as messages:
                if not self._is_current(generation):
                    return
                self._handle_open()
                async for raw in messages:
                    if not self._is_current(generation):
                        return
                    self._handle_message(raw)
            reason = "stream closed by server"
        except asyncio.CancelledError:
            raise
        except Exception as e:
            reason = str(e) or e.__class__.__name__

        if self._is_current(generation):
            self._handle_failure(reason)

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation and self._state is not ConnectionState.CLOSED

    def _handle_open(self) -> None:
        logger.info("Notification stream opened")
        self._attempts = 0
        self._set_state(ConnectionState.OPEN, None)

    def _handle_message(self, raw: str) -> None:
        try:
            event = NotificationEvent.from_json(raw)
        except MalformedEventError as e:
            logger.warning(f"Dropping malformed notification: {e} ({raw[:200]!r})")
            return

        if event.is_heartbeat:
            self.last_heartbeat_at = datetime.datetime.now(datetime.timezone.utc)
            logger.debug("Notification stream heartbeat")
            return

        logger.debug(f"Received notification: {event.type} - {event.message}")
        self.last_event = event
        for listener in list(self._event_listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Notification listener failed: {e}", exc_info=True)

    def _handle_failure(self, reason: str) -> None:
        logger.error(f"Notification stream error: {reason}")
        self._set_state(ConnectionState.ERROR, CONNECTION_FAILED)

        if self._attempts < self.max_attempts:
            delay = self.base_delay_ms * 2 ** self._attempts
            self._attempts += 1
            logger.info(
                f"Attempting to reconnect in {delay}ms "
                f"(attempt {self._attempts}/{self.max_attempts})"
            )
            self._schedule_retry(delay)
            self._set_state(ConnectionState.RECONNECTING, CONNECTION_FAILED)
        else:
            logger.error(MAX_ATTEMPTS_EXCEEDED)
            self._set_state(ConnectionState.CLOSED, MAX_ATTEMPTS_EXCEEDED)

    def _fail_unauthenticated(self) -> None:
        logger.error("Cannot open notification stream: no session")
        self._cancel_retry()
        self._cancel_task()
        self._generation += 1
        self._set_state(ConnectionState.ERROR, AUTH_REQUIRED)

    # ------------------------------------------------------------------
    # Retry timer
    # ------------------------------------------------------------------

    def _schedule_retry(self, delay_ms: float) -> None:
        self._cancel_retry()
        generation = self._generation
        self._retry_timer = self._timers.call_later(
            delay_ms, lambda: self._on_retry_due(generation)
        )

    def _on_retry_due(self, generation: int) -> None:
        if generation != self._generation or self._state is not ConnectionState.RECONNECTING:
            return
        self._retry_timer = None
        self._start()

    def _cancel_retry(self) -> None:
        if self._retry_timer is not None:
            self._retry_timer.cancel()
            self._retry_timer = None

    def _cancel_task(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    def _set_state(self, state: ConnectionState, error: Optional[str]) -> None:
        if state is self._state and error == self._error:
            return
        self._state = state
        self._error = error
        for listener in list(self._state_listeners):
            try:
                listener(state, error)
            except Exception as e:
                logger.error(f"Connection state listener failed: {e}", exc_info=True)
