import asyncio
import unittest

from stream_tag_bot.errors import ChatAuthFailed, TransportDisconnected
from stream_tag_bot.transport import ChatTransport, TransportSupervisor


class _FlakyTransport:
    """Drops the first ``failures`` connections, then stays up until closed."""

    def __init__(self, failures: int = 0):
        self._failures = failures
        self._closed: asyncio.Event | None = None
        self.tokens: list[str] = []
        self.close_calls = 0

    async def serve(self, token: str) -> None:
        self.tokens.append(token)
        if len(self.tokens) <= self._failures:
            raise TransportDisconnected("dropped")
        self._closed = asyncio.Event()
        await self._closed.wait()

    async def close(self) -> None:
        self.close_calls += 1
        if self._closed is not None:
            self._closed.set()


class _RejectingTransport(_FlakyTransport):
    """Rejects logins made with ``stale_token``."""

    def __init__(self, stale_token: str):
        super().__init__()
        self._stale_token = stale_token

    async def serve(self, token: str) -> None:
        if token == self._stale_token:
            self.tokens.append(token)
            raise ChatAuthFailed("Login authentication failed")
        await super().serve(token)


async def _wait_for(predicate, timeout: float = 2.0) -> None:
    for _ in range(int(timeout / 0.01)):
        if predicate():
            return
        await asyncio.sleep(0.01)


class TransportSupervisorTests(unittest.TestCase):
    def test_fake_transport_satisfies_protocol(self) -> None:
        self.assertIsInstance(_FlakyTransport(), ChatTransport)

    def test_reconnects_after_disconnects(self) -> None:
        transport = _FlakyTransport(failures=2)
        supervisor = TransportSupervisor(transport, "tok-1", reconnect_delay_seconds=0)

        async def scenario() -> None:
            await supervisor.start()
            await _wait_for(lambda: len(transport.tokens) == 3)
            self.assertTrue(supervisor.is_running)
            await supervisor.close()

        asyncio.run(scenario())
        self.assertEqual(3, supervisor.connect_count)
        self.assertEqual(["tok-1"] * 3, transport.tokens)
        self.assertFalse(supervisor.is_running)

    def test_gives_up_after_max_attempts(self) -> None:
        transport = _FlakyTransport(failures=10)
        supervisor = TransportSupervisor(transport, "tok-1", reconnect_delay_seconds=0, max_attempts=3)

        async def scenario() -> None:
            await supervisor.start()
            await supervisor.wait_closed()

        asyncio.run(scenario())
        self.assertEqual(3, supervisor.connect_count)
        self.assertFalse(supervisor.is_running)

    def test_reconnect_switches_token(self) -> None:
        transport = _FlakyTransport()
        supervisor = TransportSupervisor(transport, "old", reconnect_delay_seconds=0)

        async def scenario() -> None:
            await supervisor.start()
            await _wait_for(lambda: transport.tokens == ["old"])
            await supervisor.reconnect("new")
            await _wait_for(lambda: transport.tokens == ["old", "new"])
            await supervisor.close()

        asyncio.run(scenario())
        self.assertEqual(["old", "new"], transport.tokens)
        self.assertEqual(2, supervisor.connect_count)

    def test_plain_disconnect_does_not_request_refresh(self) -> None:
        transport = _FlakyTransport(failures=1)
        refreshes: list[str] = []

        async def refresh() -> bool:
            refreshes.append("refresh")
            return True

        supervisor = TransportSupervisor(transport, "tok-1", on_unauthorized=refresh, reconnect_delay_seconds=0)

        async def scenario() -> None:
            await supervisor.start()
            await _wait_for(lambda: len(transport.tokens) == 2)
            await supervisor.close()

        asyncio.run(scenario())
        self.assertEqual([], refreshes)

    def test_rejected_login_refreshes_token_before_retrying(self) -> None:
        transport = _RejectingTransport("stale")
        refreshes: list[str] = []
        supervisor: TransportSupervisor | None = None

        async def refresh() -> bool:
            refreshes.append("refresh")
            await supervisor.reconnect("fresh")
            return True

        supervisor = TransportSupervisor(transport, "stale", on_unauthorized=refresh, reconnect_delay_seconds=0)

        async def scenario() -> None:
            await supervisor.start()
            await _wait_for(lambda: "fresh" in transport.tokens)
            await supervisor.close()

        asyncio.run(scenario())
        self.assertEqual(["refresh"], refreshes)
        self.assertEqual(["stale", "fresh"], transport.tokens)

    def test_failed_refresh_still_retries_login(self) -> None:
        transport = _RejectingTransport("stale")
        refreshes: list[str] = []

        async def refresh() -> bool:
            refreshes.append("refresh")
            return False

        supervisor = TransportSupervisor(
            transport,
            "stale",
            on_unauthorized=refresh,
            reconnect_delay_seconds=0,
            max_attempts=2,
        )

        async def scenario() -> None:
            await supervisor.start()
            await supervisor.wait_closed()

        asyncio.run(scenario())
        self.assertEqual(["refresh", "refresh"], refreshes)
        self.assertEqual(["stale", "stale"], transport.tokens)


if __name__ == "__main__":
    unittest.main()
