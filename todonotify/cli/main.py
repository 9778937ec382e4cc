"""
CLI entry point for todonotify.

``todonotify watch`` keeps the notification stream open and renders toasts
in the terminal; native notifications go out through ntfy when configured.
"""

import argparse
import asyncio
import logging
import os
import signal
import sys
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from todonotify.config import ConfigError, ConfigLoader
from todonotify.logging_config import setup_logging
from todonotify.notifications import (
    ConnectionState,
    NotificationCenter,
    NotificationSettings,
    PermissionGateway,
    SettingsAPIClient,
    SettingsStore,
    SettingsUpdateError,
    StaticPermissionPlatform,
    ToastEntry,
)
from todonotify.notifications.native import create_ntfy_notifier
from todonotify.notifications.models import PermissionState

logger = logging.getLogger(__name__)

BOOL_SETTINGS = {
    "browser_enabled",
    "toast_enabled",
    "weekdays_only",
    "sound_enabled",
}


async def ask_permission() -> bool:
    """Ask on the terminal whether native notifications may be shown."""
    answer = await asyncio.to_thread(
        input, "Allow native notifications for task reminders? [y/N] "
    )
    return answer.strip().lower() in ("y", "yes")


def render_toast(entry: ToastEntry) -> None:
    duration = f" ({entry.duration_ms}ms)" if entry.duration_ms else ""
    print(f"[{entry.type.value}] {entry.title}: {entry.message}{duration}", flush=True)


def parse_setting(assignment: str) -> Dict[str, Any]:
    """Parse ``key=value`` into a partial settings dict."""
    if "=" not in assignment:
        raise ValueError(f"Expected KEY=VALUE, got {assignment!r}")
    key, value = (part.strip() for part in assignment.split("=", 1))
    try:
        name = next(
            field
            for field, info in NotificationSettings.model_fields.items()
            if key in (field, info.alias)
        )
    except StopIteration:
        raise ValueError(f"Unknown setting: {key}") from None

    if name in BOOL_SETTINGS:
        lowered = value.lower()
        if lowered not in ("true", "false", "yes", "no", "on", "off", "1", "0"):
            raise ValueError(f"{key} expects a boolean, got {value!r}")
        return {name: lowered in ("true", "yes", "on", "1")}
    if name == "reminder_lead_times":
        return {name: [token.strip() for token in value.split(",") if token.strip()]}
    return {name: value}


def _settings_api(config: Dict[str, Any], session_id: str) -> SettingsAPIClient:
    server = config["server"]
    return SettingsAPIClient(
        base_url=server["base_url"],
        session_id=session_id,
        settings_path=server["settings_path"],
        timeout=float(server.get("timeout", 10.0)),
    )


async def run_watch(config: Dict[str, Any], session_id: str) -> int:
    center = NotificationCenter.from_config(config, prompt=ask_permission)
    seen: set = set()

    def on_toasts(snapshot) -> None:
        for entry in snapshot:
            if entry.id not in seen:
                seen.add(entry.id)
                render_toast(entry)

    def on_state(state: ConnectionState, error: Optional[str]) -> None:
        status, detail = center.connection_status()
        suffix = f" ({detail})" if detail else ""
        print(f"-- stream {state.value}: {status}{suffix}", flush=True)

    center.toasts.subscribe(on_toasts)
    center.stream.subscribe_state(on_state)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    loop.add_signal_handler(signal.SIGINT, stop.set)
    loop.add_signal_handler(signal.SIGTERM, stop.set)
    if hasattr(signal, "SIGUSR1"):
        # Treat SIGUSR1 like the app returning to the foreground.
        loop.add_signal_handler(
            signal.SIGUSR1, lambda: center.handle_visibility_change(True)
        )

    await center.login(session_id, _settings_api(config, session_id))
    if center.settings.error:
        print(f"!! {center.settings.error}", flush=True)

    await stop.wait()
    logger.info("Stopping notification watch")
    await center.logout()
    return 0


async def run_settings_show(config: Dict[str, Any], session_id: str) -> int:
    store = SettingsStore()
    settings = await store.on_login(_settings_api(config, session_id))
    if store.error:
        print(f"!! {store.error} (showing defaults)")
    for key, value in settings.to_wire().items():
        print(f"{key}: {value}")
    state = "open" if store.delivery_window_open() else "quiet"
    print(f"delivery window: {state}")
    return 0


async def run_settings_set(
    config: Dict[str, Any], session_id: str, assignments: List[str]
) -> int:
    partial: Dict[str, Any] = {}
    for assignment in assignments:
        partial.update(parse_setting(assignment))

    store = SettingsStore()
    await store.on_login(_settings_api(config, session_id))
    if store.error:
        print(f"!! {store.error}")
        return 1

    # The native channel goes through the permission prompt.
    wanted_browser = partial.pop("browser_enabled", None)
    changed: Dict[str, Any] = {}
    try:
        if wanted_browser is not None and wanted_browser != store.settings.browser_enabled:
            gateway = _permission_gateway(config)
            enabled = await store.toggle_browser_notifications(gateway)
            if enabled == wanted_browser:
                changed["browser_notifications"] = enabled
            else:
                print(f"!! browser notifications not enabled: {gateway.permission_message()}")
        if partial:
            changed.update(await store.update(partial))
    except SettingsUpdateError as e:
        print(f"!! {e}")
        return 1

    if changed:
        print("updated: " + ", ".join(f"{k}={v}" for k, v in changed.items()))
    else:
        print("nothing to update")
    return 0


def _permission_gateway(config: Dict[str, Any]) -> PermissionGateway:
    native = config.get("native", {})
    notifier = create_ntfy_notifier(native)
    return PermissionGateway(
        StaticPermissionPlatform(
            state=PermissionState(native.get("permission", "default")),
            supported=notifier is not None,
            prompt=ask_permission,
        )
    )


async def run_permission(config: Dict[str, Any]) -> int:
    gateway = _permission_gateway(config)
    state = await gateway.request()
    print(f"permission: {state.value}")
    print(gateway.permission_message())
    return 0 if state is PermissionState.GRANTED else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="todonotify", description="Task reminder notifications"
    )
    parser.add_argument("--config", help="Path to config.yaml")
    parser.add_argument(
        "--session-id",
        default=os.getenv("TODONOTIFY_SESSION_ID"),
        help="Session id (defaults to TODONOTIFY_SESSION_ID)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("watch", help="Stream notifications to the terminal")

    settings_parser = sub.add_parser("settings", help="Show or change notification settings")
    settings_sub = settings_parser.add_subparsers(dest="settings_command", required=True)
    settings_sub.add_parser("show", help="Print the current settings")
    set_parser = settings_sub.add_parser("set", help="Change settings")
    set_parser.add_argument("assignments", nargs="+", metavar="KEY=VALUE")

    sub.add_parser("permission", help="Request native notification permission")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = ConfigLoader(args.config).get_config()
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2
    logging_config = config.get("logging", {})
    setup_logging(
        level=logging_config.get("level"),
        fmt=logging_config.get("format"),
        json_output=bool(logging_config.get("json")),
    )

    if args.command == "permission":
        return asyncio.run(run_permission(config))

    if not args.session_id:
        parser.error("a session id is required (--session-id or TODONOTIFY_SESSION_ID)")

    try:
        if args.command == "watch":
            return asyncio.run(run_watch(config, args.session_id))
        if args.settings_command == "show":
            return asyncio.run(run_settings_show(config, args.session_id))
        return asyncio.run(run_settings_set(config, args.session_id, args.assignments))
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
