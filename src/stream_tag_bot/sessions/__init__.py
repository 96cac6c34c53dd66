from stream_tag_bot.sessions.models import Session, Tag
from stream_tag_bot.sessions.session_manager import SessionManager
from stream_tag_bot.sessions.store import SessionStore

__all__ = [
    "Session",
    "SessionManager",
    "SessionStore",
    "Tag",
]
