from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional, Set

from logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class Session:
    """One live Socket.IO connection."""

    sid: str
    connected_at: datetime = field(default_factory=datetime.now)
    user_id: Optional[str] = None
    rooms: Set[str] = field(default_factory=set)


class SessionRegistry:
    """In-memory lookup of live connections on this instance.

    The transport owns the connections and their room membership; this registry only
    mirrors it so handlers can answer "who is this connection" and "which connections
    belong to this user" without asking Socket.IO.
    """

    def __init__(self):
        # Format: {sid: Session}
        self._sessions: Dict[str, Session] = {}
        # Format: {user_id: {sid, ...}}
        self._user_connections: Dict[str, Set[str]] = {}

    def register(self, sid: str) -> Session:
        session = self._sessions.get(sid)
        if session is None:
            session = Session(sid=sid)
            self._sessions[sid] = session
            logger.debug(f"Registered session {sid} (live sessions: {len(self._sessions)})")
        return session

    def get(self, sid: str) -> Optional[Session]:
        return self._sessions.get(sid)

    def bind_user(self, sid: str, user_id: str) -> Session:
        session = self.register(sid)
        if session.user_id and session.user_id != user_id:
            # Same socket re-ran setup as somebody else
            self._discard_user_connection(session.user_id, sid)
        session.user_id = user_id
        self._user_connections.setdefault(user_id, set()).add(sid)
        logger.debug(f"Session {sid} bound to user {user_id}")
        return session

    def add_room(self, sid: str, room: str) -> bool:
        """Record a joined room. Returns False if the connection was already in it."""
        session = self.register(sid)
        if room in session.rooms:
            return False
        session.rooms.add(room)
        return True

    def rooms_of(self, sid: str) -> Set[str]:
        session = self._sessions.get(sid)
        return set(session.rooms) if session else set()

    def connections_for(self, user_id: str) -> Set[str]:
        return set(self._user_connections.get(user_id, ()))

    def drop(self, sid: str) -> Optional[Session]:
        session = self._sessions.pop(sid, None)
        if session is None:
            return None
        if session.user_id:
            self._discard_user_connection(session.user_id, sid)
        logger.debug(f"Dropped session {sid} (live sessions: {len(self._sessions)})")
        return session

    def _discard_user_connection(self, user_id: str, sid: str):
        connections = self._user_connections.get(user_id)
        if not connections:
            return
        connections.discard(sid)
        if not connections:
            del self._user_connections[user_id]

    def __len__(self) -> int:
        return len(self._sessions)
