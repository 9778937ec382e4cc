"""
Pydantic models and enums for the notification subsystem.

These models define the shapes exchanged with the server (stream events and
notification settings) and the in-memory records owned by the client
(toasts, connection and permission state).
"""

import datetime
import logging
import re
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Literal, Optional, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_serializer,
    field_validator,
)

from todonotify.notifications.errors import MalformedEventError

logger = logging.getLogger(__name__)

# Literal heartbeat sent by the server every 30 seconds.
HEARTBEAT_TOKEN = "ping"
# First message on every new stream.
STREAM_GREETING = "SSE connection established"
CONTROL_MESSAGES = frozenset({HEARTBEAT_TOKEN, STREAM_GREETING})

EventType = Literal["due_soon", "overdue", "reminder", "system"]

_LEAD_TIME_PATTERN = re.compile(r"^([1-9]\d*)([mhdw])$")
_LEAD_TIME_UNITS = {"m": "minutes", "h": "hours", "d": "days", "w": "weeks"}


def is_lead_time(token: str) -> bool:
    """Whether *token* is a lead time such as ``30m``, ``1h``, ``2d`` or ``1w``."""
    return bool(_LEAD_TIME_PATTERN.match(token.strip()))


class ConnectionState(str, Enum):
    """Lifecycle state of the push stream connection."""

    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    ERROR = "error"
    RECONNECTING = "reconnecting"
    CLOSED = "closed"


class PermissionState(str, Enum):
    """Mirror of the platform's native notification permission."""

    DEFAULT = "default"
    GRANTED = "granted"
    DENIED = "denied"


class ToastType(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"
    DUE_SOON = "due_soon"
    OVERDUE = "overdue"
    REMINDER = "reminder"


# --- Stream events ---
class NotificationEvent(BaseModel):
    """A single notification pushed by the server. Immutable once received."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    type: EventType
    message: str
    todo_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("todo_id", "todoId")
    )
    timestamp: datetime.datetime = Field(
        default_factory=lambda: datetime.datetime.now(datetime.timezone.utc)
    )

    @field_validator("todo_id", mode="before")
    @classmethod
    def coerce_todo_id(cls, value: Any) -> Any:
        """Numeric ids from the server are treated as strings."""
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @property
    def is_heartbeat(self) -> bool:
        return self.type == "system" and self.message == HEARTBEAT_TOKEN

    @property
    def is_control_message(self) -> bool:
        return self.type == "system" and self.message in CONTROL_MESSAGES

    @classmethod
    def from_json(cls, raw: str) -> "NotificationEvent":
        """Decode a raw stream payload.

        Raises:
            MalformedEventError: If the payload is not valid JSON or does not
                match the event shape.
        """
        try:
            return cls.model_validate_json(raw)
        except ValidationError as e:
            raise MalformedEventError(
                f"Invalid notification payload: {e.error_count()} error(s)", raw=raw
            ) from e


# --- Notification settings ---
class NotificationSettings(BaseModel):
    """The user's notification preferences.

    Python attribute names are used in code; the aliases are the field names
    of the settings API.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    browser_enabled: bool = Field(default=True, alias="browser_notifications")
    toast_enabled: bool = Field(default=True, alias="toast_notifications")
    reminder_lead_times: List[str] = Field(
        default_factory=lambda: ["1h", "30m"], alias="reminder_times"
    )
    quiet_hours_start: datetime.time = Field(
        default=datetime.time(22, 0), alias="quiet_hours_start"
    )
    quiet_hours_end: datetime.time = Field(
        default=datetime.time(8, 0), alias="quiet_hours_end"
    )
    weekdays_only: bool = Field(default=False, alias="weekdays_only")
    sound_enabled: bool = Field(default=True, alias="sound_enabled")

    @field_validator("reminder_lead_times")
    @classmethod
    def validate_lead_times(cls, value: List[str]) -> List[str]:
        """Keep the first occurrence of each token.

        Tokens the client cannot interpret (the server also stores times of
        day such as ``09:00``) are kept as opaque strings so that saving the
        settings never drops them.
        """
        seen: List[str] = []
        for token in value:
            token = token.strip()
            if not token or token in seen:
                continue
            if not is_lead_time(token):
                logger.warning(f"Keeping unrecognised reminder time {token!r} as is")
            seen.append(token)
        return seen

    @field_validator("quiet_hours_start", "quiet_hours_end")
    @classmethod
    def truncate_to_seconds(cls, value: datetime.time) -> datetime.time:
        return value.replace(microsecond=0, tzinfo=None)

    @field_serializer("quiet_hours_start", "quiet_hours_end")
    def serialize_time(self, value: datetime.time) -> str:
        """Times of day travel as HH:MM:SS."""
        return value.strftime("%H:%M:%S")

    @classmethod
    def wire_name(cls, key: str) -> str:
        """Map a python attribute name or wire name to the wire name."""
        for name, info in cls.model_fields.items():
            alias = info.alias or name
            if key in (name, alias):
                return alias
        raise KeyError(key)

    @classmethod
    def to_wire_partial(cls, partial: Dict[str, Any]) -> Dict[str, Any]:
        """Rename the keys of a partial update to wire names."""
        wire: Dict[str, Any] = {}
        for key, value in partial.items():
            try:
                wire[cls.wire_name(key)] = value
            except KeyError:
                raise ValueError(f"Unknown notification setting: {key}") from None
        return wire

    def to_wire(self) -> Dict[str, Any]:
        """JSON-ready dict keyed by wire names."""
        return self.model_dump(by_alias=True, mode="json")

    def is_quiet_at(self, moment: Union[datetime.datetime, datetime.time]) -> bool:
        """Whether *moment* falls inside the quiet hours window.

        The window may wrap midnight (22:00-08:00). Equal start and end
        means no quiet window.
        """
        t = moment.time() if isinstance(moment, datetime.datetime) else moment
        t = t.replace(tzinfo=None)
        start, end = self.quiet_hours_start, self.quiet_hours_end
        if start == end:
            return False
        if start < end:
            return start <= t < end
        return t >= start or t < end

    def allows_delivery_at(self, moment: datetime.datetime) -> bool:
        """Whether quiet hours and the weekday restriction allow delivery."""
        if self.weekdays_only and moment.weekday() >= 5:
            return False
        return not self.is_quiet_at(moment)


DEFAULT_SETTINGS = NotificationSettings()


def lead_time_to_timedelta(token: str) -> datetime.timedelta:
    """Convert a lead time token such as ``30m`` or ``1d`` to a timedelta."""
    match = _LEAD_TIME_PATTERN.match(token.strip())
    if not match:
        raise ValueError(f"Invalid reminder lead time: {token!r}")
    amount, unit = match.groups()
    return datetime.timedelta(**{_LEAD_TIME_UNITS[unit]: int(amount)})


# --- Toasts ---
@dataclass(frozen=True)
class ToastEntry:
    """A transient in-app notification owned by the ToastQueue."""

    id: str
    type: ToastType
    title: str
    message: str
    duration_ms: Optional[int] = None
    on_click: Optional[Callable[[], Any]] = field(default=None, compare=False)
    created_at: float = field(default_factory=time.monotonic, compare=False)
