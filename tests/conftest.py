import os
import tempfile

# the app module builds its engine at import time
os.environ.setdefault(
    "DATABASE_URL",
    "sqlite+aiosqlite:///" + os.path.join(tempfile.mkdtemp(prefix="quiz_session_"), "test.db"),
)

import pytest

from quiz_session.errors import BackendRejected, ChainRejected
from quiz_session.schemas.quiz_schema import Option, Question, Quiz
from quiz_session.schemas.submission_schema import TxResult


class FakeWallet:
    def __init__(self, connected=True):
        self.is_connected = connected
        self.address = "0xabc" if connected else None


class FakeChain:
    def __init__(self, fail=False):
        self.fail = fail
        self.calls = []

    async def submit_commitment(self, commitment, contract_address):
        self.calls.append((commitment, contract_address))
        if self.fail:
            raise ChainRejected("user rejected the request")
        return TxResult(tx_hash="0x" + "11" * 32, block_number=7)


class FakeBackend:
    def __init__(self, fail=False):
        self.fail = fail
        self.calls = []

    async def submit_quiz(self, quiz_id, answers, idempotency_key=None):
        self.calls.append((quiz_id, answers, idempotency_key))
        if self.fail:
            raise BackendRejected("backend is down")
        return "Quiz submitted successfully"


def build_quiz(n_questions=3, duration=60, quiz_id="quiz-1"):
    questions = []
    for i in range(n_questions):
        questions.append(Question(
            id=str(i + 1),
            original_id=100 + i + 1,
            text=f"Question {i + 1}?",
            options=tuple(Option(id=label, text=f"option {label}", is_correct=label == "A") for label in "ABCD"),
            points=10,
        ))
    return Quiz(id=quiz_id, title="Protocol basics", description="warm-up", duration_seconds=duration,
                difficulty="Easy", reward=5.0, questions=tuple(questions))


@pytest.fixture
def quiz():
    return build_quiz()


@pytest.fixture
def wallet():
    return FakeWallet()


@pytest.fixture
def chain():
    return FakeChain()


@pytest.fixture
def backend():
    return FakeBackend()
