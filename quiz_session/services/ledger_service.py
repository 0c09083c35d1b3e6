from typing import List
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
import logging

from ..models.submission_model import SubmissionRecord

logger = logging.getLogger(__name__)


# stage -> (chain_status, backend_status); None leaves the column as it is
STAGES = {
    "pending": (None, None),
    "chain_rejected": ("rejected", None),
    "chain_accepted": ("accepted", None),
    "backend_rejected": (None, "rejected"),
    "backend_accepted": (None, "accepted"),
}


async def record_stage(session: AsyncSession, submission, commitment_hex: str, stage: str, tx=None, error=None) -> SubmissionRecord:
    if stage not in STAGES:
        raise ValueError(f"unknown stage {stage}")
    res = await session.execute(select(SubmissionRecord).where(SubmissionRecord.commitment == commitment_hex))
    record = res.scalar_one_or_none()
    if record is None:
        record = SubmissionRecord(
            commitment=commitment_hex,
            quiz_id=submission.quiz_id,
            payload=submission.answers_payload(),
            chain_status="pending",
            backend_status="pending",
        )
        session.add(record)

    chain_status, backend_status = STAGES[stage]
    if chain_status is not None:
        record.chain_status = chain_status
    if backend_status is not None:
        record.backend_status = backend_status
    if tx is not None:
        record.tx_hash = tx.tx_hash
    record.error = error
    await session.commit()
    await session.refresh(record)
    return record


async def find_unreconciled(session: AsyncSession) -> List[SubmissionRecord]:
    """Commitments accepted on chain whose answers never reached the backend."""
    stmt = (
        select(SubmissionRecord)
        .where(SubmissionRecord.chain_status == "accepted", SubmissionRecord.backend_status != "accepted")
        .order_by(SubmissionRecord.created_at)
    )
    res = await session.execute(stmt)
    return res.scalars().all()


class SqlSubmissionLedger:
    """Ledger used by the commit protocol; opens a short session per stage."""

    def __init__(self, session_maker: async_sessionmaker) -> None:
        self._session_maker = session_maker

    async def record(self, submission, commitment_hex: str, stage: str, tx=None, error=None) -> None:
        async with self._session_maker() as session:
            record = await record_stage(session, submission, commitment_hex, stage, tx=tx, error=error)
        logger.debug("ledger %s chain=%s backend=%s", commitment_hex, record.chain_status, record.backend_status)
