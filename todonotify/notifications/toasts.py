"""
In-memory queue of transient toast notifications.

The queue exclusively owns its entries. Readers take a snapshot and request
removal by id; entries expire on their own after their display duration.
"""

import itertools
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from todonotify.notifications.models import ToastEntry, ToastType
from todonotify.notifications.timers import TimerHandle, TimerService

logger = logging.getLogger(__name__)

# Shared across queues so ids stay unique for the process lifetime.
_toast_ids = itertools.count(1)

DEFAULT_DURATION_MS = 5000
TYPE_DURATIONS_MS = {
    ToastType.ERROR: 7000,
    ToastType.DUE_SOON: 8000,
    ToastType.OVERDUE: 10000,
    ToastType.REMINDER: 6000,
}

ToastListener = Callable[[Tuple[ToastEntry, ...]], None]


class ToastQueue:
    """Ordered collection of visible toasts, most recent last."""

    def __init__(
        self,
        timers: TimerService,
        default_duration_ms: int = DEFAULT_DURATION_MS,
        max_toasts: Optional[int] = None,
    ):
        self._timers = timers
        self.default_duration_ms = default_duration_ms
        self.max_toasts = max_toasts
        self._entries: List[ToastEntry] = []
        self._expiry: Dict[str, TimerHandle] = {}
        self._listeners: List[ToastListener] = []

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, toast_id: str) -> bool:
        return any(entry.id == toast_id for entry in self._entries)

    def snapshot(self) -> Tuple[ToastEntry, ...]:
        return tuple(self._entries)

    def get(self, toast_id: str) -> Optional[ToastEntry]:
        for entry in self._entries:
            if entry.id == toast_id:
                return entry
        return None

    def subscribe(self, listener: ToastListener) -> Callable[[], None]:
        """Register *listener* for queue changes. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def add(
        self,
        type: ToastType,
        title: str,
        message: str,
        duration_ms: Optional[int] = None,
        on_click: Optional[Callable[[], Any]] = None,
    ) -> str:
        """Append a toast and return its id.

        A toast without an explicit duration expires after
        ``default_duration_ms``; ``duration_ms=0`` keeps it until dismissed.
        """
        entry = ToastEntry(
            id=f"toast-{next(_toast_ids)}",
            type=ToastType(type),
            title=title,
            message=message,
            duration_ms=duration_ms,
            on_click=on_click,
        )
        self._entries.append(entry)

        effective = self.default_duration_ms if duration_ms is None else duration_ms
        if effective > 0:
            toast_id = entry.id
            self._expiry[toast_id] = self._timers.call_later(
                effective, lambda: self._expire(toast_id)
            )

        if self.max_toasts is not None:
            while len(self._entries) > self.max_toasts:
                oldest = self._entries.pop(0)
                self._cancel_expiry(oldest.id)
                logger.debug(f"Dropped toast {oldest.id}: queue is at capacity")

        logger.debug(f"Toast {entry.id} added ({entry.type.value}): {title}")
        self._notify()
        return entry.id

    def remove(self, toast_id: str) -> None:
        """Remove a toast by id. Unknown ids are ignored."""
        self._cancel_expiry(toast_id)
        before = len(self._entries)
        self._entries = [entry for entry in self._entries if entry.id != toast_id]
        if len(self._entries) != before:
            self._notify()

    def clear_all(self) -> None:
        for handle in self._expiry.values():
            handle.cancel()
        self._expiry.clear()
        if self._entries:
            self._entries = []
            self._notify()

    def activate(self, toast_id: str) -> None:
        """Run the toast's click action and dismiss it when it has one."""
        entry = self.get(toast_id)
        if entry is None or entry.on_click is None:
            return
        try:
            entry.on_click()
        finally:
            self.remove(toast_id)

    # Convenience adders with the per-type default durations.
    def show_success(self, title: str, message: str, **options: Any) -> str:
        return self._show(ToastType.SUCCESS, title, message, options)

    def show_error(self, title: str, message: str, **options: Any) -> str:
        return self._show(ToastType.ERROR, title, message, options)

    def show_warning(self, title: str, message: str, **options: Any) -> str:
        return self._show(ToastType.WARNING, title, message, options)

    def show_info(self, title: str, message: str, **options: Any) -> str:
        return self._show(ToastType.INFO, title, message, options)

    def show_due_soon(self, title: str, message: str, **options: Any) -> str:
        return self._show(ToastType.DUE_SOON, title, message, options)

    def show_overdue(self, title: str, message: str, **options: Any) -> str:
        return self._show(ToastType.OVERDUE, title, message, options)

    def show_reminder(self, title: str, message: str, **options: Any) -> str:
        return self._show(ToastType.REMINDER, title, message, options)

    def _show(
        self, type: ToastType, title: str, message: str, options: Dict[str, Any]
    ) -> str:
        duration_ms = options.get("duration_ms")
        if duration_ms is None:
            duration_ms = TYPE_DURATIONS_MS.get(type)
        return self.add(
            type, title, message, duration_ms=duration_ms, on_click=options.get("on_click")
        )

    def _expire(self, toast_id: str) -> None:
        self._expiry.pop(toast_id, None)
        self.remove(toast_id)

    def _cancel_expiry(self, toast_id: str) -> None:
        handle = self._expiry.pop(toast_id, None)
        if handle is not None:
            handle.cancel()

    def _notify(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.error(f"Toast listener failed: {e}", exc_info=True)
