from ..db import Base
from sqlalchemy import Column, DateTime, Integer, String, JSON
from datetime import datetime, timezone


def _utcnow():
    return datetime.now(timezone.utc)


"""
SubmissionRecord: one row per commitment, updated at each stage of the submit.
| Column | Type | Notes |
| :--- | :--- | :--- |
| `commitment` | VARCHAR | 0x-prefixed keccak-256 hex, unique |
| `quiz_id` | VARCHAR | |
| `payload` | JSON | plaintext answers sent to the backend |
| `chain_status` | VARCHAR | pending / accepted / rejected |
| `backend_status` | VARCHAR | pending / accepted / rejected |
"""


class SubmissionRecord(Base):
    __tablename__ = "submission_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    commitment = Column(String(66), nullable=False, unique=True, index=True)
    quiz_id = Column(String, nullable=False, index=True)
    payload = Column(JSON, nullable=False, default=list)
    chain_status = Column(String, nullable=False, default="pending")
    tx_hash = Column(String, nullable=True)
    backend_status = Column(String, nullable=False, default="pending")
    error = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)
