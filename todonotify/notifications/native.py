"""
Native (OS-level) notification dispatch.

Native notifications are delivered through ntfy, which pushes them to the
user's desktop and phone clients. The dispatcher in front of the backend
checks the permission gateway, replaces notifications that share a tag and
closes non-interactive notifications after a few seconds.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set

import httpx

from todonotify.notifications.errors import NativeDispatchError
from todonotify.notifications.permissions import PermissionGateway
from todonotify.notifications.timers import TimerHandle, TimerService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NativeNotification:
    title: str
    body: str
    tag: Optional[str] = None
    require_interaction: bool = False
    silent: bool = False
    click_url: Optional[str] = None


class NativeNotifier(ABC):
    """Backend that actually surfaces a notification outside the app."""

    @abstractmethod
    async def show(self, notification: NativeNotification) -> Any:
        """Show *notification* and return a handle for ``close``.

        Raises:
            NativeDispatchError: If the platform refused the notification.
        """

    @abstractmethod
    async def close(self, handle: Any) -> None:
        """Dismiss a previously shown notification."""

    def click_url_for(self, todo_id: str) -> Optional[str]:
        """Click-through URL for a todo, or None when the backend has none."""
        return None


class NtfyNotifier(NativeNotifier):
    """Async HTTP client for ntfy push notifications."""

    # ntfy priority names to their numeric JSON values
    PRIORITIES = {"min": 1, "low": 2, "default": 3, "high": 4, "max": 5}

    def __init__(
        self,
        server_url: str,
        topic: str,
        token: str = "",
        click_base_url: str = "",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.server_url = server_url.rstrip("/")
        self.topic = topic
        self.click_base_url = click_base_url.rstrip("/") if click_base_url else ""
        self.timeout = timeout
        self._transport = transport

        headers: Dict[str, str] = {}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._headers = headers

    def click_url_for(self, todo_id: str) -> Optional[str]:
        """Click-through URL for a todo, or None without a base URL."""
        if not self.click_base_url:
            return None
        return f"{self.click_base_url}/todos/{todo_id}"

    async def show(self, notification: NativeNotification) -> Optional[str]:
        """Publish *notification* to the configured topic.

        Published as JSON to the server root, which keeps non-ASCII titles
        intact.

        Returns:
            The ntfy message id.
        """
        tags = ["bell"] if not notification.silent else ["no_bell"]
        if notification.tag:
            tags.append(notification.tag)
        payload: Dict[str, Any] = {
            "topic": self.topic,
            "title": notification.title[:256],
            "message": notification.body[:2000] if notification.body else "(no content)",
            "priority": self.PRIORITIES["high" if notification.require_interaction else "default"],
            "tags": tags,
        }
        if notification.click_url:
            payload["click"] = notification.click_url

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                resp = await client.post(
                    f"{self.server_url}/", json=payload, headers=self._headers
                )
        except httpx.HTTPError as e:
            raise NativeDispatchError(f"ntfy publish failed: {e}") from e

        if resp.status_code != 200:
            raise NativeDispatchError(
                f"ntfy publish returned {resp.status_code}: {resp.text[:200]}"
            )
        logger.info(f"ntfy notification sent: {notification.title[:60]}")
        return resp.json().get("id")

    async def close(self, handle: Any) -> None:
        # ntfy has no retract call; replacement by tag only affects the
        # dispatcher's bookkeeping, so devices may still stack messages.
        logger.debug(f"ntfy message {handle} left in place on close")


def create_ntfy_notifier(
    native_config: Dict[str, Any], timeout: float = 10.0
) -> Optional[NtfyNotifier]:
    """Build an NtfyNotifier from the ``native`` config section.

    Returns None when native notifications are disabled or no topic is
    configured, so callers can degrade gracefully.
    """
    if not native_config.get("enabled", True):
        logger.info("Native notifications are disabled in config")
        return None

    ntfy = native_config.get("ntfy", {}) or {}
    topic = ntfy.get("topic") or ""
    if not topic:
        logger.info(
            "Native notifications not configured -- set native.ntfy.topic in config"
        )
        return None

    url = ntfy.get("url") or "https://ntfy.sh"
    notifier = NtfyNotifier(
        server_url=url,
        topic=topic,
        token=ntfy.get("token") or "",
        click_base_url=ntfy.get("click_base_url") or "",
        timeout=timeout,
    )
    logger.info(f"ntfy notifier initialized (topic={topic}, server={url})")
    return notifier


class _Pending:
    """Placeholder owning a tag while its notification is being shown."""


class NativeDispatcher:
    """Permission-gated native notification dispatch with tag replacement."""

    def __init__(
        self,
        notifier: Optional[NativeNotifier],
        gateway: PermissionGateway,
        timers: TimerService,
        auto_close_ms: int = 5000,
    ):
        self._notifier = notifier
        self._gateway = gateway
        self._timers = timers
        self.auto_close_ms = auto_close_ms
        # tag -> backend handle, or a _Pending while show() is in flight
        self._active: Dict[str, Any] = {}
        self._close_timers: Dict[str, TimerHandle] = {}
        self._closing: Set[asyncio.Task] = set()

    @property
    def notifier(self) -> Optional[NativeNotifier]:
        return self._notifier

    def can_notify(self) -> bool:
        return self._notifier is not None and self._gateway.can_notify()

    async def dispatch(self, notification: NativeNotification) -> bool:
        """Show *notification* if permitted.

        A notification with a tag replaces the previous one with the same
        tag, including one whose ``show`` is still in flight.

        Returns:
            True if the notification was handed to the backend, False when
            native notifications are unavailable or not permitted.

        Raises:
            NativeDispatchError: If the backend failed to show it.
        """
        if not self.can_notify():
            return False

        tag = notification.tag
        if not tag:
            await self._notifier.show(notification)
            return True

        # Claim the tag before awaiting so concurrent dispatches see each other.
        previous = self._release(tag)
        pending = _Pending()
        self._active[tag] = pending
        if previous is not None and not isinstance(previous, _Pending):
            await self._close_quietly(tag, previous)

        try:
            handle = await self._notifier.show(notification)
        except BaseException:
            if self._active.get(tag) is pending:
                del self._active[tag]
            raise

        if self._active.get(tag) is not pending:
            # Superseded while showing.
            await self._close_quietly(tag, handle)
            return True

        self._active[tag] = handle
        if not notification.require_interaction and self.auto_close_ms > 0:
            self._close_timers[tag] = self._timers.call_later(
                self.auto_close_ms, lambda: self._expire(tag, handle)
            )
        return True

    def active_tags(self) -> List[str]:
        return list(self._active)

    async def close_all(self) -> None:
        """Close every tracked notification, including interactive ones."""
        for tag in list(self._active):
            handle = self._release(tag)
            if handle is not None and not isinstance(handle, _Pending):
                await self._close_quietly(tag, handle)
        if self._closing:
            await asyncio.wait(set(self._closing))

    def _release(self, tag: str) -> Any:
        timer = self._close_timers.pop(tag, None)
        if timer is not None:
            timer.cancel()
        return self._active.pop(tag, None)

    async def _close_quietly(self, tag: str, handle: Any) -> None:
        try:
            await self._notifier.close(handle)
        except Exception as e:
            logger.warning(f"Failed to close native notification '{tag}': {e}")

    def _expire(self, tag: str, handle: Any) -> None:
        # A newer notification may already own the tag.
        if self._active.get(tag) is not handle:
            return
        self._close_timers.pop(tag, None)
        del self._active[tag]
        try:
            task = asyncio.get_running_loop().create_task(self._close_quietly(tag, handle))
        except RuntimeError:
            logger.debug(f"No running loop to close native notification '{tag}'")
            return
        self._closing.add(task)
        task.add_done_callback(self._closing.discard)
