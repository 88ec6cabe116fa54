import secrets
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from config import DEFAULT_IMPORT_SESSION_TTL
from file_parser import ParsedData
from schemas import FieldMapping

SESSION_ID_BYTES = 16


def new_session_id() -> str:
    """Random 32-character hex identifier for import and auth sessions."""
    return secrets.token_hex(SESSION_ID_BYTES)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ImportSession:
    id: str
    filename: str
    data: ParsedData
    created_at: datetime
    expires_at: datetime
    user_id: Optional[int] = None
    mapping: Optional[FieldMapping] = None

    def expired(self, now: datetime) -> bool:
        return now >= self.expires_at


@dataclass
class ImportSessionStore:
    """
    Parsed uploads waiting for a column mapping. Entries live for ``ttl``
    seconds; ``sweep`` drops the expired ones and is run by the scheduler.
    """

    ttl: int = DEFAULT_IMPORT_SESSION_TTL
    clock: Callable[[], datetime] = _utcnow
    _sessions: dict[str, ImportSession] = field(default_factory=dict, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def create(
        self, filename: str, data: ParsedData, user_id: Optional[int] = None
    ) -> ImportSession:
        now = self.clock()
        session = ImportSession(
            id=new_session_id(),
            filename=filename,
            data=data,
            created_at=now,
            expires_at=now + timedelta(seconds=self.ttl),
            user_id=user_id,
        )
        with self._lock:
            self._sessions[session.id] = session
        return session

    def get(self, session_id: str) -> Optional[ImportSession]:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None or session.expired(self.clock()):
            return None
        return session

    def update(self, session_id: str, mapping: FieldMapping) -> bool:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return False
            session.mapping = mapping
            return True

    def delete(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)

    def sweep(self) -> int:
        now = self.clock()
        with self._lock:
            expired = [sid for sid, s in self._sessions.items() if s.expired(now)]
            for sid in expired:
                del self._sessions[sid]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
