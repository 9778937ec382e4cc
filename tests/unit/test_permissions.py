"""Unit tests for the native notification permission gateway."""

import asyncio
from unittest.mock import AsyncMock

from todonotify.notifications.models import PermissionState
from todonotify.notifications.permissions import (
    PERMISSION_MESSAGES,
    PermissionGateway,
    StaticPermissionPlatform,
)


class TestCheck:
    def test_unsupported_platform_is_denied(self):
        gateway = PermissionGateway(
            StaticPermissionPlatform(state=PermissionState.GRANTED, supported=False)
        )

        assert gateway.check() is PermissionState.DENIED
        assert not gateway.can_notify()

    def test_granted(self):
        gateway = PermissionGateway(StaticPermissionPlatform(state=PermissionState.GRANTED))

        assert gateway.can_notify()
        assert gateway.permission_message() == PERMISSION_MESSAGES[PermissionState.GRANTED]


class TestRequest:
    def test_prompt_grants(self):
        prompt = AsyncMock(return_value=True)
        gateway = PermissionGateway(StaticPermissionPlatform(prompt=prompt))

        assert asyncio.run(gateway.request()) is PermissionState.GRANTED
        assert gateway.can_notify()
        prompt.assert_awaited_once()

    def test_decided_permission_is_not_prompted_again(self):
        prompt = AsyncMock(return_value=False)
        gateway = PermissionGateway(StaticPermissionPlatform(prompt=prompt))

        assert asyncio.run(gateway.request()) is PermissionState.DENIED
        assert asyncio.run(gateway.request()) is PermissionState.DENIED
        assert prompt.await_count == 1

    def test_denied_never_prompts(self):
        prompt = AsyncMock(return_value=True)
        gateway = PermissionGateway(
            StaticPermissionPlatform(state=PermissionState.DENIED, prompt=prompt)
        )

        assert asyncio.run(gateway.request()) is PermissionState.DENIED
        prompt.assert_not_awaited()

    def test_unsupported_never_prompts(self):
        prompt = AsyncMock(return_value=True)
        gateway = PermissionGateway(StaticPermissionPlatform(supported=False, prompt=prompt))

        assert asyncio.run(gateway.request()) is PermissionState.DENIED
        prompt.assert_not_awaited()

    def test_without_prompt_denies(self):
        gateway = PermissionGateway(StaticPermissionPlatform())

        assert asyncio.run(gateway.request()) is PermissionState.DENIED

    def test_failing_prompt_denies(self):
        prompt = AsyncMock(side_effect=RuntimeError("no tty"))
        gateway = PermissionGateway(StaticPermissionPlatform(prompt=prompt))

        assert asyncio.run(gateway.request()) is PermissionState.DENIED
        assert not gateway.is_requesting

    def test_concurrent_requests_share_one_prompt(self):
        release = None
        calls = 0

        async def prompt():
            nonlocal calls
            calls += 1
            await release.wait()
            return True

        gateway = PermissionGateway(StaticPermissionPlatform(prompt=prompt))

        async def scenario():
            nonlocal release
            release = asyncio.Event()
            first = asyncio.create_task(gateway.request())
            await asyncio.sleep(0)
            assert gateway.is_requesting
            second = asyncio.create_task(gateway.request())
            await asyncio.sleep(0)
            release.set()
            return await asyncio.gather(first, second)

        results = asyncio.run(scenario())

        assert results == [PermissionState.GRANTED, PermissionState.GRANTED]
        assert calls == 1
        assert not gateway.is_requesting
