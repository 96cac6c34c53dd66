import asyncio
import json
import threading
from datetime import UTC, datetime, timedelta
from unittest.mock import patch

from stream_tag_bot.sessions import Session, Tag
from stream_tag_bot.sessions import store as store_module
from tests.sessions.base import SessionStoreTestCase

T0 = datetime(2024, 5, 1, 20, 0, 0, tzinfo=UTC)


class SessionStoreTests(SessionStoreTestCase):
    def test_load_missing_session_returns_none(self) -> None:
        self.assertIsNone(asyncio.run(self._store.load("nope")))
        self.assertFalse(self._store.exists("nope"))

    def test_save_writes_pretty_printed_record(self) -> None:
        session = Session(id="123", start_time=T0, delay_seconds=15)
        session.add_tag(session.new_tag("mod_a", "big play", at=T0 + timedelta(seconds=100)))
        asyncio.run(self._store.save(session))

        path = self._tmp_dir / "tags.123.json"
        self.assertEqual(path, self._store.path_for("123"))
        text = path.read_text(encoding="utf-8")
        self.assertIn('\n    "id": "123"', text)

        data = json.loads(text)
        self.assertEqual(["id", "startTime", "delay", "tags"], list(data))
        self.assertEqual("2024-05-01T20:00:00.000Z", data["startTime"])
        self.assertEqual(15, data["delay"])
        self.assertEqual(
            {
                "timestamp": "2024-05-01T20:01:40.000Z",
                "relativeTime": "0h1m25s",
                "relativeTimestamp": 85_000,
                "moderator": "mod_a",
                "message": "big play",
            },
            data["tags"][0],
        )

    def test_round_trip_preserves_tags(self) -> None:
        session = Session(id="abc", start_time=T0, delay_seconds=2.5)
        session.add_tag(session.new_tag("m1", "first", at=T0 + timedelta(seconds=10)))
        session.add_tag(session.new_tag("m2", "ñandú ✨", at=T0 + timedelta(minutes=61)))
        asyncio.run(self._store.save(session))

        loaded = asyncio.run(self._store.load("abc"))
        self.assertIsNotNone(loaded)
        self.assertEqual(session.start_time, loaded.start_time)
        self.assertEqual(2.5, loaded.delay_seconds)
        self.assertEqual(session.tags, loaded.tags)
        self.assertIn("ñandú ✨", self._store.path_for("abc").read_text(encoding="utf-8"))

    def test_missing_offset_is_backfilled_with_zero_delay(self) -> None:
        record = {
            "id": "old",
            "startTime": "2024-05-01T20:00:00.000Z",
            "delay": 15,
            "tags": [
                {
                    "timestamp": "2024-05-01T20:00:30.000Z",
                    "relativeTime": "",
                    "moderator": "m",
                    "message": "legacy",
                }
            ],
        }
        self._store.path_for("old").write_text(json.dumps(record), encoding="utf-8")

        loaded = asyncio.run(self._store.load("old"))
        self.assertEqual(30_000, loaded.tags[0].relative_offset_ms)
        self.assertEqual("0h0m30s", loaded.tags[0].relative_time)

    def test_zero_offset_is_kept(self) -> None:
        data = {
            "timestamp": "2024-05-01T20:00:30.000Z",
            "relativeTimestamp": 0,
            "moderator": "m",
            "message": "x",
        }
        tag = Tag.from_dict(data, session_start=T0)
        self.assertEqual(0, tag.relative_offset_ms)

    def test_corrupt_record_loads_as_none(self) -> None:
        self._store.path_for("bad").write_text("{not json", encoding="utf-8")
        self.assertIsNone(asyncio.run(self._store.load("bad")))

    def test_concurrent_saves_leave_latest_snapshot(self) -> None:
        session = Session(id="race", start_time=T0)

        async def scenario() -> None:
            pending = []
            for i in range(20):
                session.add_tag(session.new_tag("m", f"tag {i}", at=T0 + timedelta(seconds=i)))
                pending.append(asyncio.create_task(self._store.save(session)))
            await asyncio.gather(*pending)

        asyncio.run(scenario())
        data = json.loads(self._store.path_for("race").read_text(encoding="utf-8"))
        self.assertEqual(20, len(data["tags"]))
        self.assertFalse(self._store.path_for("race").with_name("tags.race.json.tmp").exists())

    def test_load_reads_file_off_the_event_loop_thread(self) -> None:
        asyncio.run(self._store.save(Session(id="t1", start_time=T0)))
        real_read = store_module._read_json
        reader_threads: list[int] = []

        def recording_read(path):
            reader_threads.append(threading.get_ident())
            return real_read(path)

        async def scenario() -> tuple[Session | None, int]:
            return await self._store.load("t1"), threading.get_ident()

        with patch.object(store_module, "_read_json", side_effect=recording_read):
            loaded, loop_thread = asyncio.run(scenario())

        self.assertEqual("t1", loaded.id)
        self.assertEqual(1, len(reader_threads))
        self.assertNotEqual(loop_thread, reader_threads[0])
