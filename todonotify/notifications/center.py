"""
Session-scoped notification center.

Wires the stream client to the router, feeds the router the current
settings and owns the toast queue for the lifetime of a login session.
Collaborators are passed in explicitly; ``from_config`` builds the
production graph.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Set, Tuple

from todonotify.notifications.models import (
    ConnectionState,
    NotificationEvent,
    PermissionState,
    ToastType,
)
from todonotify.notifications.native import NativeDispatcher, create_ntfy_notifier
from todonotify.notifications.permissions import PermissionGateway, StaticPermissionPlatform
from todonotify.notifications.router import NotificationRouter, RouteResult
from todonotify.notifications.settings_api import SettingsAPIClient
from todonotify.notifications.settings_store import SettingsStore
from todonotify.notifications.stream_client import StreamClient
from todonotify.notifications.timers import TimerService
from todonotify.notifications.toasts import ToastQueue
from todonotify.notifications.transport import SSETransport

logger = logging.getLogger(__name__)


class NotificationCenter:
    """Composition root for one logged-in user's notifications."""

    def __init__(
        self,
        stream: StreamClient,
        router: NotificationRouter,
        toasts: ToastQueue,
        settings: SettingsStore,
        permissions: PermissionGateway,
    ):
        self.stream = stream
        self.router = router
        self.toasts = toasts
        self.settings = settings
        self.permissions = permissions
        self._routing: Set[asyncio.Task] = set()
        self._unsubscribe = stream.subscribe(self._on_event)

    @classmethod
    def from_config(
        cls,
        config: Dict[str, Any],
        timers: Optional[TimerService] = None,
        prompt: Optional[Callable[[], Awaitable[bool]]] = None,
        navigate: Optional[Callable[[str], None]] = None,
    ) -> "NotificationCenter":
        """Build the production object graph from a loaded config dict."""
        timers = timers or TimerService()
        server = config.get("server", {})
        stream_cfg = config.get("stream", {})
        toasts_cfg = config.get("toasts", {})
        native_cfg = config.get("native", {})
        timeout = float(server.get("timeout", 10.0))

        notifier = create_ntfy_notifier(native_cfg, timeout=timeout)
        platform = StaticPermissionPlatform(
            state=PermissionState(native_cfg.get("permission", "default")),
            supported=notifier is not None,
            prompt=prompt,
        )
        permissions = PermissionGateway(platform)
        dispatcher = NativeDispatcher(
            notifier,
            permissions,
            timers,
            auto_close_ms=int(native_cfg.get("auto_close_ms", 5000)),
        )
        toasts = ToastQueue(
            timers,
            default_duration_ms=int(toasts_cfg.get("default_duration_ms", 5000)),
            max_toasts=toasts_cfg.get("max_toasts"),
        )
        stream = StreamClient(
            SSETransport(timeout=timeout),
            url=f"{server['base_url'].rstrip('/')}{server['stream_path']}",
            timers=timers,
            max_attempts=int(stream_cfg.get("max_reconnect_attempts", 5)),
            base_delay_ms=int(stream_cfg.get("base_reconnect_delay_ms", 1000)),
        )
        router = NotificationRouter(toasts, dispatcher, navigate=navigate)
        return cls(stream, router, toasts, SettingsStore(), permissions)

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def login(self, session_id: str, settings_api: SettingsAPIClient) -> None:
        """Load the user's settings and open the notification stream."""
        await self.settings.on_login(settings_api)
        self.stream.connect(session_id)

    async def logout(self) -> None:
        """Close the stream and forget everything tied to the session."""
        await self.stream.aclose()
        for task in list(self._routing):
            task.cancel()
        await self.router.dispatcher.close_all()
        self.settings.on_logout()
        self.toasts.clear_all()

    def handle_visibility_change(self, visible: bool) -> None:
        self.stream.handle_visibility_change(visible)

    def reconnect(self) -> None:
        self.stream.reconnect()

    async def drain(self) -> None:
        """Wait for every routing task started so far."""
        while self._routing:
            await asyncio.wait(set(self._routing))

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    def _on_event(self, event: NotificationEvent) -> None:
        task = asyncio.get_running_loop().create_task(self._route(event))
        self._routing.add(task)
        task.add_done_callback(self._routing.discard)

    async def _route(self, event: NotificationEvent) -> RouteResult:
        try:
            return await self.router.route(event, self.settings.settings)
        except Exception as e:
            logger.error(f"Error routing notification: {e}", exc_info=True)
            return RouteResult()

    def show_toast(
        self,
        type: ToastType,
        title: str,
        message: str,
        duration_ms: Optional[int] = None,
        on_click: Optional[Callable[[], Any]] = None,
    ) -> str:
        """Show a toast for a direct UI action, with per-type default durations."""
        show = {
            ToastType.SUCCESS: self.toasts.show_success,
            ToastType.ERROR: self.toasts.show_error,
            ToastType.WARNING: self.toasts.show_warning,
            ToastType.INFO: self.toasts.show_info,
            ToastType.DUE_SOON: self.toasts.show_due_soon,
            ToastType.OVERDUE: self.toasts.show_overdue,
            ToastType.REMINDER: self.toasts.show_reminder,
        }[ToastType(type)]
        return show(title, message, duration_ms=duration_ms, on_click=on_click)

    def connection_status(self) -> Tuple[str, Optional[str]]:
        """Indicator value for the UI: connected, connecting, error or disconnected."""
        state = self.stream.state
        error = self.stream.connection_error
        if state is ConnectionState.OPEN:
            return "connected", None
        if error:
            return "error", error
        if state in (ConnectionState.CONNECTING, ConnectionState.RECONNECTING):
            return "connecting", None
        return "disconnected", None
