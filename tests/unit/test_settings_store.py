"""Unit tests for the settings API client and the settings store."""

import asyncio
import datetime
import json
from unittest.mock import AsyncMock

import httpx
import pytest

from todonotify.notifications.errors import (
    AuthenticationRequiredError,
    SettingsAPIError,
    SettingsUpdateError,
)
from todonotify.notifications.models import NotificationSettings, PermissionState
from todonotify.notifications.permissions import PermissionGateway, StaticPermissionPlatform
from todonotify.notifications.settings_api import SettingsAPIClient
from todonotify.notifications.settings_store import (
    LOAD_ERROR_MESSAGE,
    UPDATE_ERROR_MESSAGE,
    SettingsStore,
)

BASE_URL = "http://localhost:3300"

SERVER_SETTINGS = {
    "browser_notifications": False,
    "toast_notifications": True,
    "reminder_times": ["1h", "30m"],
    "quiet_hours_start": "22:00:00",
    "quiet_hours_end": "08:00:00",
    "weekdays_only": False,
    "sound_enabled": True,
}


class FakeSettingsServer:
    """MockTransport handler that records requests."""

    def __init__(self, data=None, get_status=200, put_status=200):
        self.data = dict(data or SERVER_SETTINGS)
        self.get_status = get_status
        self.put_status = put_status
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.method == "GET":
            if self.get_status != 200:
                return httpx.Response(self.get_status, json={"success": False, "error": "boom"})
            return httpx.Response(200, json={"success": True, "data": self.data})
        if self.put_status != 200:
            return httpx.Response(self.put_status, json={"success": False, "error": "boom"})
        self.data.update(json.loads(request.content))
        return httpx.Response(200, json={"success": True, "message": "updated"})

    @property
    def puts(self):
        return [json.loads(r.content) for r in self.requests if r.method == "PUT"]


def _api(server):
    return SettingsAPIClient(BASE_URL, "sess-1", transport=httpx.MockTransport(server))


def _loaded_store(server):
    store = SettingsStore()
    asyncio.run(store.on_login(_api(server)))
    return store


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------

class TestSettingsAPIClient:
    def test_requires_session(self):
        with pytest.raises(AuthenticationRequiredError):
            SettingsAPIClient(BASE_URL, "")

    def test_fetch_sends_bearer_session(self):
        server = FakeSettingsServer()

        data = asyncio.run(_api(server).fetch())

        (request,) = server.requests
        assert str(request.url) == f"{BASE_URL}/api/notifications/settings"
        assert request.headers["Authorization"] == "Bearer sess-1"
        assert data == SERVER_SETTINGS

    def test_save_returns_message(self):
        server = FakeSettingsServer()

        message = asyncio.run(_api(server).save({"sound_enabled": False}))

        assert message == "updated"
        assert server.puts == [{"sound_enabled": False}]

    def test_error_status_raises(self):
        server = FakeSettingsServer(get_status=500)

        with pytest.raises(SettingsAPIError) as exc_info:
            asyncio.run(_api(server).fetch())
        assert exc_info.value.status_code == 500

    def test_success_false_raises(self):
        def handler(request):
            return httpx.Response(200, json={"success": False, "message": "nope"})

        api = SettingsAPIClient(BASE_URL, "s", transport=httpx.MockTransport(handler))
        with pytest.raises(SettingsAPIError, match="nope"):
            asyncio.run(api.fetch())

    def test_missing_data_raises(self):
        def handler(request):
            return httpx.Response(200, json={"success": True})

        api = SettingsAPIClient(BASE_URL, "s", transport=httpx.MockTransport(handler))
        with pytest.raises(SettingsAPIError):
            asyncio.run(api.fetch())


# ---------------------------------------------------------------------------
# Store: load
# ---------------------------------------------------------------------------

class TestLoad:
    def test_login_loads_settings(self):
        store = _loaded_store(FakeSettingsServer())

        assert store.settings is not None
        assert not store.settings.browser_enabled
        assert store.error is None
        assert not store.loading

    def test_load_failure_falls_back_to_defaults(self):
        store = _loaded_store(FakeSettingsServer(get_status=503))

        assert store.settings == NotificationSettings()
        assert store.error == LOAD_ERROR_MESSAGE

    def test_invalid_payload_falls_back_to_defaults(self):
        store = _loaded_store(FakeSettingsServer(data={"toast_notifications": "maybe"}))

        assert store.settings == NotificationSettings()
        assert store.error == LOAD_ERROR_MESSAGE

    def test_server_default_payload_keeps_preferences(self):
        # Default settings payload of the todo backend, with toasts turned off.
        server = FakeSettingsServer(data={
            "browser_notifications": True,
            "toast_notifications": False,
            "reminder_times": ["09:00", "18:00"],
            "quiet_hours_start": "22:00",
            "quiet_hours_end": "08:00",
            "weekdays_only": False,
            "sound_enabled": True,
        })

        store = _loaded_store(server)

        assert store.error is None
        assert not store.settings.toast_enabled
        assert store.settings.reminder_lead_times == ["09:00", "18:00"]
        assert store.settings.quiet_hours_start == datetime.time(22, 0)

    def test_adding_reminder_keeps_server_tokens(self):
        server = FakeSettingsServer(data={**SERVER_SETTINGS, "reminder_times": ["09:00"]})
        store = _loaded_store(server)

        diff = asyncio.run(store.add_reminder_time("30m"))

        assert diff == {"reminder_times": ["09:00", "30m"]}
        assert server.puts == [{"reminder_times": ["09:00", "30m"]}]

    def test_load_without_session_is_empty(self):
        store = SettingsStore()

        assert asyncio.run(store.load()) is None
        assert store.settings is None

    def test_logout_clears(self):
        store = _loaded_store(FakeSettingsServer())
        seen = []
        store.subscribe(seen.append)

        store.on_logout()

        assert store.settings is None
        assert seen == [None]


# ---------------------------------------------------------------------------
# Store: update
# ---------------------------------------------------------------------------

class TestUpdate:
    def test_sends_only_changed_keys(self):
        server = FakeSettingsServer()
        store = _loaded_store(server)

        diff = asyncio.run(store.update({"toast_enabled": False, "sound_enabled": True}))

        assert diff == {"toast_notifications": False}
        assert server.puts == [{"toast_notifications": False}]
        assert not store.settings.toast_enabled

    def test_unchanged_update_sends_nothing(self):
        server = FakeSettingsServer()
        store = _loaded_store(server)

        diff = asyncio.run(store.update({"toast_notifications": True, "weekdays_only": False}))

        assert diff == {}
        assert server.puts == []

    def test_quiet_hours_sent_as_hh_mm_ss(self):
        server = FakeSettingsServer()
        store = _loaded_store(server)

        asyncio.run(store.update({"quiet_hours_start": "23:00"}))

        assert server.puts == [{"quiet_hours_start": "23:00:00"}]
        assert store.settings.quiet_hours_start == datetime.time(23, 0)

    def test_failure_keeps_previous_settings(self):
        server = FakeSettingsServer(put_status=500)
        store = _loaded_store(server)
        before = store.settings

        with pytest.raises(SettingsUpdateError):
            asyncio.run(store.update({"sound_enabled": False}))

        assert store.settings == before
        assert store.error == UPDATE_ERROR_MESSAGE
        assert not store.loading

    def test_unknown_key_raises(self):
        store = _loaded_store(FakeSettingsServer())

        with pytest.raises(ValueError):
            asyncio.run(store.update({"volume": 11}))

    def test_invalid_value_raises_without_request(self):
        server = FakeSettingsServer()
        store = _loaded_store(server)

        with pytest.raises(ValueError):
            asyncio.run(store.update({"reminder_lead_times": ["whenever"]}))
        assert server.puts == []

    def test_update_before_load_is_noop(self):
        store = SettingsStore()
        assert asyncio.run(store.update({"sound_enabled": False})) == {}

    def test_listeners_notified_on_change(self):
        store = _loaded_store(FakeSettingsServer())
        seen = []
        store.subscribe(seen.append)

        asyncio.run(store.update({"weekdays_only": True}))

        assert len(seen) == 1
        assert seen[0].weekdays_only


class TestReminderTimes:
    def test_add_and_remove(self):
        server = FakeSettingsServer()
        store = _loaded_store(server)

        asyncio.run(store.add_reminder_time("1d"))
        asyncio.run(store.remove_reminder_time("1h"))

        assert store.settings.reminder_lead_times == ["30m", "1d"]
        assert server.puts == [
            {"reminder_times": ["1h", "30m", "1d"]},
            {"reminder_times": ["30m", "1d"]},
        ]

    def test_adding_existing_time_sends_nothing(self):
        server = FakeSettingsServer()
        store = _loaded_store(server)

        assert asyncio.run(store.add_reminder_time("30m")) == {}
        assert server.puts == []


class TestToggleBrowserNotifications:
    def test_enabling_asks_for_permission(self):
        server = FakeSettingsServer()
        store = _loaded_store(server)
        prompt = AsyncMock(return_value=True)
        gateway = PermissionGateway(StaticPermissionPlatform(prompt=prompt))

        enabled = asyncio.run(store.toggle_browser_notifications(gateway))

        assert enabled
        prompt.assert_awaited_once()
        assert server.puts == [{"browser_notifications": True}]

    def test_refused_permission_keeps_channel_off(self):
        server = FakeSettingsServer()
        store = _loaded_store(server)
        gateway = PermissionGateway(
            StaticPermissionPlatform(prompt=AsyncMock(return_value=False))
        )

        enabled = asyncio.run(store.toggle_browser_notifications(gateway))

        assert not enabled
        assert server.puts == []

    def test_disabling_needs_no_permission(self):
        server = FakeSettingsServer(data={**SERVER_SETTINGS, "browser_notifications": True})
        store = _loaded_store(server)
        prompt = AsyncMock()
        gateway = PermissionGateway(
            StaticPermissionPlatform(state=PermissionState.DENIED, prompt=prompt)
        )

        enabled = asyncio.run(store.toggle_browser_notifications(gateway))

        assert not enabled
        prompt.assert_not_awaited()
        assert server.puts == [{"browser_notifications": False}]


class TestDeliveryWindow:
    def test_uses_loaded_settings(self):
        store = _loaded_store(FakeSettingsServer())

        assert store.delivery_window_open(datetime.datetime(2024, 5, 6, 12, 0))
        assert not store.delivery_window_open(datetime.datetime(2024, 5, 6, 23, 0))
