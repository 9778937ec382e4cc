"""
In-memory cache of the user's notification settings.

The store is reconciled against the settings API: it loads on login, sends
only the changed keys on update and clears itself on logout.
"""

import datetime
import logging
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from todonotify.notifications.errors import SettingsAPIError, SettingsUpdateError
from todonotify.notifications.models import (
    DEFAULT_SETTINGS,
    NotificationSettings,
    PermissionState,
    is_lead_time,
)
from todonotify.notifications.permissions import PermissionGateway
from todonotify.notifications.settings_api import SettingsAPIClient

logger = logging.getLogger(__name__)

LOAD_ERROR_MESSAGE = "알림 설정을 불러오는데 실패했습니다."
UPDATE_ERROR_MESSAGE = "알림 설정 업데이트에 실패했습니다."

SettingsListener = Callable[[Optional[NotificationSettings]], None]


class SettingsStore:
    """Single cache of NotificationSettings for the logged-in user."""

    def __init__(self, api: Optional[SettingsAPIClient] = None):
        self._api = api
        self.settings: Optional[NotificationSettings] = None
        self.error: Optional[str] = None
        self.loading = False
        self._listeners: List[SettingsListener] = []

    def subscribe(self, listener: SettingsListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # -- session lifecycle --
    async def on_login(self, api: SettingsAPIClient) -> Optional[NotificationSettings]:
        """Bind the API for the new session and fetch its settings."""
        self._api = api
        return await self.load()

    def on_logout(self) -> None:
        self._api = None
        self.error = None
        self._set(None)

    # -- remote reconciliation --
    async def load(self) -> Optional[NotificationSettings]:
        """Fetch the settings, falling back to the defaults on failure.

        Never raises; a failed fetch sets ``error`` instead.
        """
        if self._api is None:
            self._set(None)
            return None

        self.loading = True
        self.error = None
        try:
            data = await self._api.fetch()
            settings = NotificationSettings.model_validate(data)
        except (SettingsAPIError, ValidationError) as e:
            logger.error(f"Failed to load notification settings: {e}")
            self.error = LOAD_ERROR_MESSAGE
            settings = DEFAULT_SETTINGS.model_copy(deep=True)
        finally:
            self.loading = False

        self._set(settings)
        return settings

    async def update(self, partial: Dict[str, Any]) -> Dict[str, Any]:
        """Send the keys of *partial* that differ from the cached settings.

        Keys may be attribute names (``toast_enabled``) or wire names
        (``toast_notifications``).

        Returns:
            The wire-format diff that was sent; empty when nothing changed.

        Raises:
            ValueError: If *partial* names an unknown setting or holds an
                invalid value.
            SettingsUpdateError: If the API rejected the update. The cached
                settings are left unchanged.
        """
        if self._api is None or self.settings is None:
            logger.warning("Ignoring settings update: no settings loaded")
            return {}

        wire_partial = NotificationSettings.to_wire_partial(partial)
        current = self.settings.to_wire()
        self._check_new_lead_times(wire_partial.get("reminder_times"))
        merged = NotificationSettings.model_validate({**current, **wire_partial})
        merged_wire = merged.to_wire()
        diff = {
            key: merged_wire[key]
            for key in wire_partial
            if merged_wire[key] != current[key]
        }
        if not diff:
            logger.debug("Settings update skipped: nothing changed")
            return {}

        self.loading = True
        self.error = None
        try:
            await self._api.save(diff)
        except SettingsAPIError as e:
            logger.error(f"Failed to update notification settings: {e}")
            self.error = UPDATE_ERROR_MESSAGE
            raise SettingsUpdateError(UPDATE_ERROR_MESSAGE) from e
        finally:
            self.loading = False

        self._set(merged)
        logger.info(f"Notification settings updated: {', '.join(diff)}")
        return diff

    def _check_new_lead_times(self, tokens: Any) -> None:
        # Tokens already stored on the server are accepted as they are.
        if not isinstance(tokens, list):
            return
        known = set(self.settings.reminder_lead_times)
        for token in tokens:
            if isinstance(token, str) and token.strip() not in known and not is_lead_time(token):
                raise ValueError(f"Invalid reminder lead time: {token!r}")

    async def refresh(self) -> Optional[NotificationSettings]:
        return await self.load()

    # -- preference helpers used by the settings UI --
    async def add_reminder_time(self, token: str) -> Dict[str, Any]:
        if self.settings is None or token in self.settings.reminder_lead_times:
            return {}
        return await self.update(
            {"reminder_lead_times": [*self.settings.reminder_lead_times, token]}
        )

    async def remove_reminder_time(self, token: str) -> Dict[str, Any]:
        if self.settings is None:
            return {}
        remaining = [t for t in self.settings.reminder_lead_times if t != token]
        return await self.update({"reminder_lead_times": remaining})

    async def toggle_browser_notifications(self, gateway: PermissionGateway) -> bool:
        """Flip the native channel preference.

        Turning it on first asks for permission; if the user does not grant
        it the preference stays off.

        Returns:
            The resulting value of ``browser_enabled``.
        """
        if self.settings is None:
            return False

        enabling = not self.settings.browser_enabled
        if enabling and not gateway.can_notify():
            result = await gateway.request()
            if result != PermissionState.GRANTED:
                logger.info("Native notifications not enabled: permission not granted")
                return self.settings.browser_enabled

        await self.update({"browser_enabled": enabling})
        return self.settings.browser_enabled

    def delivery_window_open(self, moment: Optional[datetime.datetime] = None) -> bool:
        """Whether quiet hours and the weekday rule currently allow delivery."""
        settings = self.settings or DEFAULT_SETTINGS
        return settings.allows_delivery_at(moment or datetime.datetime.now())

    def _set(self, settings: Optional[NotificationSettings]) -> None:
        self.settings = settings
        for listener in list(self._listeners):
            try:
                listener(settings)
            except Exception as e:
                logger.error(f"Settings listener failed: {e}", exc_info=True)
