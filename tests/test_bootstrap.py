import asyncio
import unittest
from datetime import UTC, datetime

from stream_tag_bot.bootstrap import AppRuntime
from stream_tag_bot.credentials import CredentialPair, CredentialRefreshScheduler, TokenResponse
from stream_tag_bot.transport import TransportSupervisor
from tests.credentials.base import CredentialStoreTestCase

NOW = datetime(2024, 5, 1, 20, 0, 0, tzinfo=UTC)


class _Closable:
    def __init__(self, name: str, order: list[str]):
        self._name = name
        self._order = order

    async def close(self) -> None:
        self._order.append(self._name)


class _GatedIdentity:
    def __init__(self, gate: asyncio.Event):
        self._gate = gate
        self.calls = 0

    async def refresh(self, refresh_token: str) -> TokenResponse:
        self.calls += 1
        await self._gate.wait()
        return TokenResponse(access_token="access-1", refresh_token="refresh-1", expires_in=3600)


class _IdleTransport:
    def __init__(self) -> None:
        self.tokens: list[str] = []
        self._closed: asyncio.Event | None = None

    async def serve(self, token: str) -> None:
        self.tokens.append(token)
        self._closed = asyncio.Event()
        await self._closed.wait()

    async def close(self) -> None:
        if self._closed is not None:
            self._closed.set()


def _runtime(order: list[str], **overrides) -> AppRuntime:
    parts = {
        name: _Closable(name, order)
        for name in ("monitor", "scheduler", "supervisor", "dispatcher", "helix")
    }
    parts.update(overrides)
    return AppRuntime(sessions=object(), exports=object(), log_descriptions=[], **parts)


class AppRuntimeCloseTests(unittest.TestCase):
    def test_close_stops_token_refresh_before_chat(self) -> None:
        order: list[str] = []
        asyncio.run(_runtime(order).close())
        self.assertEqual(["monitor", "scheduler", "supervisor", "dispatcher", "helix"], order)


class AppRuntimeShutdownTests(CredentialStoreTestCase):
    def test_refresh_finishing_during_close_does_not_restart_chat(self) -> None:
        transport = _IdleTransport()

        async def scenario() -> TransportSupervisor:
            gate = asyncio.Event()
            supervisor = TransportSupervisor(transport, "access-0", reconnect_delay_seconds=0)
            scheduler = CredentialRefreshScheduler(
                identity_client=_GatedIdentity(gate),
                store=self._store,
                cipher=self._cipher,
                initial=CredentialPair("access-0", "refresh-0"),
                reconnect=supervisor.reconnect,
                clock=lambda: NOW,
            )
            runtime = _runtime([], scheduler=scheduler, supervisor=supervisor)
            await supervisor.start()
            pending = asyncio.create_task(scheduler.refresh())
            await asyncio.sleep(0)
            closing = asyncio.create_task(runtime.close())
            await asyncio.sleep(0)
            gate.set()
            await closing
            await pending
            return supervisor

        supervisor = asyncio.run(scenario())
        self.assertFalse(supervisor.is_running)
        self.assertEqual(["access-0"], transport.tokens)


if __name__ == "__main__":
    unittest.main()
