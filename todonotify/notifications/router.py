"""
Notification router.

Applies the visibility policy to each stream event and fans it out to the
toast queue and, when permitted, to native notifications. Delivery is
strictly additive: routing never removes or alters an earlier notification.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from todonotify.notifications.models import (
    DEFAULT_SETTINGS,
    NotificationEvent,
    NotificationSettings,
)
from todonotify.notifications.native import NativeDispatcher, NativeNotification
from todonotify.notifications.toasts import ToastQueue

logger = logging.getLogger(__name__)

EVENT_TITLES = {
    "due_soon": "마감일 임박",
    "overdue": "마감일 초과",
    "reminder": "할일 알림",
    "system": "시스템 알림",
}
FALLBACK_TITLE = "알림"


@dataclass(frozen=True)
class RouteResult:
    toast_id: Optional[str] = None
    native_dispatched: bool = False
    discarded: bool = False


def _log_navigation(todo_id: str) -> None:
    logger.info(f"Navigate to todo: {todo_id}")


def title_for(event_type: str) -> str:
    return EVENT_TITLES.get(event_type, FALLBACK_TITLE)


def native_tag_for(event: NotificationEvent) -> str:
    """Tag that makes repeated events for one todo replace each other."""
    if event.todo_id:
        return f"todo-{event.todo_id}"
    if event.type == "system":
        return "system"
    return f"notification-{event.type}"


class NotificationRouter:
    """Dispatches events to the toast and native channels."""

    def __init__(
        self,
        toasts: ToastQueue,
        dispatcher: NativeDispatcher,
        navigate: Optional[Callable[[str], None]] = None,
    ):
        self._toasts = toasts
        self._dispatcher = dispatcher
        self._navigate = navigate or _log_navigation

    @property
    def dispatcher(self) -> NativeDispatcher:
        return self._dispatcher

    async def route(
        self,
        event: NotificationEvent,
        settings: Optional[NotificationSettings] = None,
    ) -> RouteResult:
        """Deliver *event* according to *settings*.

        Quiet hours and the weekday restriction are not applied here; they
        gate the channel preferences in the settings UI.
        """
        if event.is_control_message:
            logger.debug(f"Discarding control message: {event.message}")
            return RouteResult(discarded=True)

        settings = settings or DEFAULT_SETTINGS
        title = title_for(event.type)
        logger.info(f"Routing notification: {event.type} - {event.message}")

        toast_id = None
        if settings.toast_enabled:
            toast_id = self._enqueue_toast(event, title)

        native_dispatched = False
        if settings.browser_enabled:
            native_dispatched = await self._dispatch_native(event, title, settings)

        return RouteResult(toast_id=toast_id, native_dispatched=native_dispatched)

    def _enqueue_toast(self, event: NotificationEvent, title: str) -> str:
        if event.type == "system":
            return self._toasts.show_info(title, event.message)

        on_click = None
        if event.todo_id:
            todo_id = event.todo_id

            def on_click() -> None:
                self._navigate(todo_id)

        if event.type == "due_soon":
            return self._toasts.show_due_soon(title, event.message, on_click=on_click)
        if event.type == "overdue":
            return self._toasts.show_overdue(title, event.message, on_click=on_click)
        return self._toasts.show_reminder(title, event.message, on_click=on_click)

    async def _dispatch_native(
        self, event: NotificationEvent, title: str, settings: NotificationSettings
    ) -> bool:
        if not self._dispatcher.can_notify():
            return False

        click_url = None
        if event.todo_id:
            click_url = self._dispatcher.notifier.click_url_for(event.todo_id)

        notification = NativeNotification(
            title=title,
            body=event.message,
            tag=native_tag_for(event),
            require_interaction=event.type == "overdue",
            silent=not settings.sound_enabled,
            click_url=click_url,
        )
        try:
            return await self._dispatcher.dispatch(notification)
        except Exception as e:
            logger.error(f"Failed to show native notification: {e}")
            return False
