"""In-memory chat sessions keyed by user id."""

import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from .conversation import ConversationState
from .logger import get_logger

_log = get_logger(__name__)

__all__ = ["Session", "SessionStore"]


@dataclass
class Session:
    user_id: int
    conversation: ConversationState = field(default_factory=ConversationState)
    last_activity: float = field(default_factory=time.time)
    generation: int = 0
    # Held for the whole of a request so one turn at a time touches history.
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def touch(self) -> None:
        self.last_activity = time.time()


PreClearHook = Callable[[int, Session], None]


class SessionStore:
    """Owns every live session; all mutation goes through its methods."""

    def __init__(self):
        self._sessions: Dict[int, Session] = {}
        self._generations: Dict[int, int] = {}
        self._lock = threading.Lock()
        self._pre_clear_hook: Optional[PreClearHook] = None

    def on_before_clear(self, hook: Optional[PreClearHook]) -> None:
        self._pre_clear_hook = hook

    def get(self, user_id: int) -> Session:
        with self._lock:
            session = self._sessions.get(user_id)
            if session is None:
                session = Session(user_id=user_id,
                                  generation=self._generations.get(user_id, 0))
                self._sessions[user_id] = session
            session.touch()
            return session

    def generation(self, user_id: int) -> int:
        with self._lock:
            return self._generations.get(user_id, 0)

    def is_current(self, user_id: int, generation: int) -> bool:
        """False once the session was cleared after ``generation`` was read."""
        return self.generation(user_id) == generation

    def is_live(self, session: Session) -> bool:
        """True while ``session`` is still stored for its user and belongs to
        the current generation."""
        with self._lock:
            return (self._sessions.get(session.user_id) is session
                    and self._generations.get(session.user_id, 0) == session.generation)

    def clear(self, user_id: int) -> None:
        with self._lock:
            session = self._sessions.pop(user_id, None)
            self._generations[user_id] = self._generations.get(user_id, 0) + 1

        hook = self._pre_clear_hook
        if session is not None and len(session.conversation) > 0 and hook is not None:
            try:
                hook(user_id, session)
            except Exception as e:
                # Clearing must not depend on the hook.
                _log.warning("Pre-clear hook failed for user %s: %s", user_id, e)
        _log.info("Session cleared for user %s", user_id)

    def evict_idle(self, max_idle: float, now: Optional[float] = None) -> List[int]:
        """Drop sessions idle longer than ``max_idle`` seconds.

        Sessions with a request in flight are skipped, so eviction never
        races an append.
        """
        now = time.time() if now is None else now
        evicted = []
        with self._lock:
            for user_id, session in list(self._sessions.items()):
                if now - session.last_activity <= max_idle:
                    continue
                if not session.lock.acquire(blocking=False):
                    continue
                try:
                    del self._sessions[user_id]
                finally:
                    session.lock.release()
                evicted.append(user_id)
        if evicted:
            _log.info("Evicted %d idle session(s)", len(evicted))
        return evicted

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, user_id: int) -> bool:
        with self._lock:
            return user_id in self._sessions
