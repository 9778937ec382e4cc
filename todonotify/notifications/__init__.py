"""
Real-time task reminder notifications.

The stream client keeps a push connection open, the router decides per
event and per user preference whether to show a toast, a native
notification, both or neither.
"""

from .center import NotificationCenter
from .errors import (
    AuthenticationRequiredError,
    MalformedEventError,
    NativeDispatchError,
    NotificationError,
    SettingsAPIError,
    SettingsUpdateError,
)
from .models import (
    DEFAULT_SETTINGS,
    ConnectionState,
    NotificationEvent,
    NotificationSettings,
    PermissionState,
    ToastEntry,
    ToastType,
)
from .native import NativeDispatcher, NativeNotification, NativeNotifier, NtfyNotifier
from .permissions import PermissionGateway, PermissionPlatform, StaticPermissionPlatform
from .router import NotificationRouter, RouteResult
from .settings_api import SettingsAPIClient
from .settings_store import SettingsStore
from .stream_client import StreamClient
from .timers import TimerService
from .toasts import ToastQueue
from .transport import SSETransport, StreamTransport

__all__ = [
    "NotificationCenter",
    "AuthenticationRequiredError",
    "MalformedEventError",
    "NativeDispatchError",
    "NotificationError",
    "SettingsAPIError",
    "SettingsUpdateError",
    "DEFAULT_SETTINGS",
    "ConnectionState",
    "NotificationEvent",
    "NotificationSettings",
    "PermissionState",
    "ToastEntry",
    "ToastType",
    "NativeDispatcher",
    "NativeNotification",
    "NativeNotifier",
    "NtfyNotifier",
    "PermissionGateway",
    "PermissionPlatform",
    "StaticPermissionPlatform",
    "NotificationRouter",
    "RouteResult",
    "SettingsAPIClient",
    "SettingsStore",
    "StreamClient",
    "TimerService",
    "ToastQueue",
    "SSETransport",
    "StreamTransport",
]
