"""
Permission gateway for native notifications.

Wraps the platform's permission primitive (default/granted/denied) so the
router and the settings UI share one source of truth.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional

from todonotify.notifications.models import PermissionState

logger = logging.getLogger(__name__)

PERMISSION_MESSAGES = {
    PermissionState.GRANTED: "브라우저 알림이 허용되었습니다.",
    PermissionState.DENIED: "브라우저 알림이 차단되었습니다. 브라우저 설정에서 권한을 변경할 수 있습니다.",
    PermissionState.DEFAULT: "브라우저 알림 권한을 요청할 수 있습니다.",
}


class PermissionPlatform(ABC):
    """Platform-native permission primitive."""

    @property
    @abstractmethod
    def supported(self) -> bool:
        """Whether native notifications exist on this platform at all."""

    @abstractmethod
    def current(self) -> PermissionState:
        """Current permission, without prompting the user."""

    @abstractmethod
    async def prompt(self) -> PermissionState:
        """Ask the user and return the resulting permission."""


class StaticPermissionPlatform(PermissionPlatform):
    """Permission held in configuration, optionally upgraded by a prompt.

    Args:
        state: Initial permission.
        supported: False when no native backend is configured.
        prompt: Async callable returning True when the user allows
            notifications. Without one, prompting denies.
    """

    def __init__(
        self,
        state: PermissionState = PermissionState.DEFAULT,
        supported: bool = True,
        prompt: Optional[Callable[[], Awaitable[bool]]] = None,
    ):
        self._state = PermissionState(state)
        self._supported = supported
        self._prompt = prompt

    @property
    def supported(self) -> bool:
        return self._supported

    def current(self) -> PermissionState:
        return self._state

    async def prompt(self) -> PermissionState:
        if self._prompt is None:
            self._state = PermissionState.DENIED
        else:
            allowed = await self._prompt()
            self._state = PermissionState.GRANTED if allowed else PermissionState.DENIED
        return self._state


class PermissionGateway:
    """Single source of truth for native notification permission."""

    def __init__(self, platform: PermissionPlatform):
        self._platform = platform
        self._state = PermissionState.DENIED
        self._pending: Optional[asyncio.Future] = None
        self.check()

    @property
    def supported(self) -> bool:
        return self._platform.supported

    @property
    def state(self) -> PermissionState:
        return self._state

    @property
    def is_requesting(self) -> bool:
        return self._pending is not None

    def check(self) -> PermissionState:
        """Refresh the cached state from the platform without prompting."""
        if not self._platform.supported:
            self._state = PermissionState.DENIED
        else:
            self._state = self._platform.current()
        return self._state

    async def request(self) -> PermissionState:
        """Prompt the user if the permission is still undecided.

        Safe to call repeatedly: once granted or denied the cached state is
        returned without prompting again. Concurrent callers share a single
        prompt.
        """
        if not self._platform.supported:
            logger.warning("Native notifications are not supported")
            self._state = PermissionState.DENIED
            return self._state

        state = self.check()
        if state != PermissionState.DEFAULT:
            return state

        if self._pending is not None:
            return await asyncio.shield(self._pending)

        future = asyncio.get_running_loop().create_future()
        self._pending = future
        try:
            try:
                self._state = PermissionState(await self._platform.prompt())
            except asyncio.CancelledError:
                future.cancel()
                raise
            except Exception as e:
                logger.error(f"Failed to request notification permission: {e}")
                self._state = PermissionState.DENIED
            future.set_result(self._state)
            logger.info(f"Notification permission is now {self._state.value}")
            return self._state
        finally:
            self._pending = None

    def can_notify(self) -> bool:
        """True when native notifications may be shown right now."""
        return self.supported and self.check() == PermissionState.GRANTED

    def permission_message(self) -> str:
        """User-facing description of the current permission."""
        return PERMISSION_MESSAGES.get(
            self.check(), "브라우저 알림 상태를 확인할 수 없습니다."
        )
