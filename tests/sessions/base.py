import shutil
import unittest
from pathlib import Path
from uuid import uuid4

from stream_tag_bot.sessions import SessionManager, SessionStore


PROJECT_ROOT = Path(__file__).resolve().parents[2]


class SessionStoreTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp_dir = PROJECT_ROOT / ".test-artifacts" / f"{self.__class__.__name__.lower()}-{uuid4().hex}"
        self._tmp_dir.mkdir(parents=True, exist_ok=True)
        self._store = SessionStore(self._tmp_dir)
        self._sessions = SessionManager(self._store, default_delay_seconds=15)

    def tearDown(self) -> None:
        shutil.rmtree(self._tmp_dir, ignore_errors=True)
