class QuizSessionError(Exception):
    """Base error for the quiz session core. `kind` is a stable label for callers."""

    kind = "quiz_session_error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.kind)
        self.message = message or self.kind


class NotConnected(QuizSessionError):
    kind = "not_connected"


class LoadFailure(QuizSessionError):
    kind = "load_failure"


class ChainRejected(QuizSessionError):
    kind = "chain_rejected"


class BackendRejected(QuizSessionError):
    """The plaintext leg failed after the commitment was accepted on chain.

    Keeps the submission and the chain receipt so the backend leg can be retried
    on its own.
    """

    kind = "backend_rejected"

    def __init__(self, message: str | None = None, submission=None, tx=None):
        super().__init__(message)
        self.submission = submission
        self.tx = tx


class InvalidPhase(QuizSessionError):
    kind = "invalid_phase"


class UnknownQuestion(QuizSessionError):
    kind = "unknown_question"
