import logging
import uuid
from typing import Dict

from ..schemas.quiz_schema import Quiz
from .commit_service import CommitProtocol
from .session_service import QuizSession

logger = logging.getLogger(__name__)


class SessionRegistry:
    def __init__(self, protocol: CommitProtocol, tick_interval: float = 1.0) -> None:
        self.protocol = protocol
        self._tick_interval = tick_interval
        self._sessions: Dict[str, QuizSession] = {}

    def create(self, quiz: Quiz) -> tuple[str, QuizSession]:
        session_id = str(uuid.uuid4())
        session = QuizSession(quiz, self.protocol, tick_interval=self._tick_interval)
        self._sessions[session_id] = session
        return session_id, session

    def get(self, session_id: str) -> QuizSession | None:
        return self._sessions.get(session_id)

    def discard(self, session_id: str) -> bool:
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        session.close()
        return True

    def close_all(self) -> None:
        for session_id in list(self._sessions):
            self.discard(session_id)
        logger.info("all sessions closed")

    def __len__(self) -> int:
        return len(self._sessions)
