import logging
from typing import Any, Iterable, Mapping, Tuple

from Crypto.Hash import keccak

from ..errors import BackendRejected, ChainRejected, NotConnected
from ..schemas.answer_schema import Answer
from ..schemas.quiz_schema import Question
from ..schemas.submission_schema import CommitOrder, Submission, SubmissionAnswer, SubmissionOutcome, TxResult
from .answer_store import AnswerStore

logger = logging.getLogger(__name__)


def keccak256(data: bytes) -> bytes:
    k = keccak.new(digest_bits=256)
    k.update(data)
    return k.digest()


def select_answers(store: AnswerStore, order: CommitOrder) -> Tuple[Answer, ...]:
    if order == CommitOrder.question:
        return store.all()
    return store.in_recorded_order()


def build_submission(quiz_id: str, answers: Iterable[Answer], questions_by_id: Mapping[str, Question]) -> Submission:
    """Map answers to (original question id, uppercase label) pairs, keeping the given order."""
    pairs = []
    for answer in answers:
        question = questions_by_id.get(answer.question_id)
        if question is None:
            # answers are validated on record, so this only happens with a foreign store
            raise KeyError(answer.question_id)
        pairs.append(SubmissionAnswer(question_id=question.original_id, answer=answer.value.as_text()))
    return Submission(quiz_id=quiz_id, answers=tuple(pairs))


def commitment_for(submission: Submission) -> bytes:
    return keccak256(submission.canonical_json().encode("utf-8"))


class CommitProtocol:
    """
    Drives one submit attempt: a keccak-256 commitment written on chain, then the
    plaintext answers posted to the backend.

    The chain write is irreversible once accepted. If the backend leg then fails
    the two channels disagree; `BackendRejected` carries what is needed to resend
    only the backend leg, and the ledger (when configured) keeps a record that the
    reconciliation query can find.

    Collaborators are passed in:
    - wallet: `is_connected` boolean property
    - chain: `await submit_commitment(commitment: bytes, contract_address: str) -> TxResult`
    - backend: `await submit_quiz(quiz_id, answers: list, idempotency_key=None) -> ack`
    - ledger (optional): `await record(submission, commitment_hex, stage, tx=None, error=None)`
    """

    def __init__(self, wallet, chain, backend, contract_address: str,
                 ledger=None, order: CommitOrder = CommitOrder.recorded) -> None:
        self.wallet = wallet
        self.chain = chain
        self.backend = backend
        self.contract_address = contract_address
        self.ledger = ledger
        self.order = CommitOrder(order)

    @property
    def is_ready(self) -> bool:
        return bool(self.wallet.is_connected)

    async def commit(self, quiz_id: str, answers: Iterable[Answer], questions_by_id: Mapping[str, Question]) -> SubmissionOutcome:
        if not self.is_ready:
            raise NotConnected("Please connect your wallet to submit the quiz")

        submission = build_submission(quiz_id, answers, questions_by_id)
        commitment = commitment_for(submission)
        commitment_hex = "0x" + commitment.hex()
        logger.info("committing quiz_id=%s answers=%d commitment=%s", quiz_id, len(submission.answers), commitment_hex)
        await self._record(submission, commitment_hex, "pending")

        try:
            tx = await self.chain.submit_commitment(commitment, self.contract_address)
        except ChainRejected as e:
            logger.warning("chain rejected commitment=%s: %s", commitment_hex, e.message)
            await self._record(submission, commitment_hex, "chain_rejected", error=e.message)
            raise
        if not tx.accepted:
            await self._record(submission, commitment_hex, "chain_rejected", tx=tx, error="transaction reverted")
            raise ChainRejected(f"transaction {tx.tx_hash} was not accepted")
        await self._record(submission, commitment_hex, "chain_accepted", tx=tx)

        ack = await self.send_backend(submission, commitment_hex, tx)
        return SubmissionOutcome(ok=True, submission=submission, commitment=commitment_hex, tx=tx, backend_ack=ack)

    async def send_backend(self, submission: Submission, commitment_hex: str, tx: TxResult | None) -> Any:
        """Backend leg alone. The commitment doubles as the idempotency key."""
        try:
            ack = await self.backend.submit_quiz(submission.quiz_id, submission.answers_payload(),
                                                 idempotency_key=commitment_hex)
        except BackendRejected as e:
            logger.error("backend rejected answers for commitment=%s after chain write: %s", commitment_hex, e.message)
            await self._record(submission, commitment_hex, "backend_rejected", tx=tx, error=e.message)
            raise BackendRejected(e.message, submission=submission, tx=tx) from e
        await self._record(submission, commitment_hex, "backend_accepted", tx=tx)
        return ack

    async def _record(self, submission, commitment_hex, stage, tx=None, error=None) -> None:
        if self.ledger is None:
            return
        try:
            await self.ledger.record(submission, commitment_hex, stage, tx=tx, error=error)
        except Exception:
            # the ledger is bookkeeping for reconciliation; a failing write must not change the submit result
            logger.exception("failed to write ledger stage=%s commitment=%s", stage, commitment_hex)
