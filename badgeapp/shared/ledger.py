from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import func, insert, select
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, OperationalError
from tenacity import (
    RetryCallState,
    RetryError,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from ..config import RetryPolicy
from ..models import BadgeRecord
from .errors import LedgerUnavailableError
from .time import now_utc


logger = logging.getLogger("badgeapp.ledger")

OK = "ok"
RECORDED = "recorded"
ALREADY_ISSUED = "already-issued"

SUBJECT_INDEX_NAME = "uix_badges_subject_issued"


def _is_subject_conflict(error: IntegrityError) -> bool:
    if not isinstance(error, IntegrityError):
        return False
    details: str = ""
    if getattr(error, "orig", None) is not None:
        details = str(error.orig)
    if not details:
        details = str(error)
    lowered = details.lower()
    return SUBJECT_INDEX_NAME in lowered or "subject_id" in lowered


def _log_attempt(retry_state: RetryCallState) -> None:
    if retry_state.outcome is None or not retry_state.outcome.failed:
        return
    logger.warning(
        "[LEDGER-RETRY] connect attempt=%s failed: %s",
        retry_state.attempt_number,
        retry_state.outcome.exception(),
    )


class IssuanceLedger:
    """Durable record of issued badges, at most one issued row per subject."""

    def __init__(self, engine: Engine, retry: RetryPolicy | None = None):
        self.engine = engine
        self.retry = retry or RetryPolicy()
        self._schema_ready = False
        self._schema_lock = threading.Lock()

    def _connect(self) -> Connection:
        retrying = Retrying(
            stop=stop_after_attempt(self.retry.max_attempts),
            wait=wait_fixed(self.retry.delay_seconds),
            retry=retry_if_exception_type(OperationalError),
            after=_log_attempt,
        )
        try:
            return retrying(self.engine.connect)
        except RetryError as exc:
            logger.error(
                "[LEDGER-FAIL] giving up after %s attempts", self.retry.max_attempts
            )
            raise LedgerUnavailableError(
                "Failed to connect to the database after multiple attempts"
            ) from exc.last_attempt.exception()

    def _ensure_schema(self, conn: Connection) -> None:
        if self._schema_ready:
            return
        with self._schema_lock:
            if self._schema_ready:
                return
            with conn.begin():
                BadgeRecord.__table__.create(conn, checkfirst=True)
            self._schema_ready = True

    @contextmanager
    def connect(self) -> Iterator[Connection]:
        conn = self._connect()
        try:
            self._ensure_schema(conn)
            yield conn
        finally:
            conn.close()

    def ping(self):
        with self.connect() as conn:
            return conn.execute(select(func.current_timestamp())).scalar()

    def check_not_issued(self, subject_id: int) -> str:
        """Fast-path read; ``record`` remains the authoritative check."""
        with self.connect() as conn:
            row = conn.execute(
                select(BadgeRecord.id)
                .where(BadgeRecord.subject_id == subject_id)
                .where(BadgeRecord.issued.is_(True))
                .limit(1)
            ).first()
        return ALREADY_ISSUED if row else OK

    def find_issued(self, subject_id: int) -> BadgeRecord | None:
        table = BadgeRecord.__table__
        with self.connect() as conn:
            row = conn.execute(
                select(table)
                .where(table.c.subject_id == subject_id)
                .where(table.c.issued.is_(True))
                .limit(1)
            ).first()
        if row is None:
            return None
        return BadgeRecord(**dict(row._mapping))

    def record(self, record: BadgeRecord) -> str:
        if record.issued is None:
            record.issued = True
        if record.created_at is None:
            record.created_at = now_utc()
        table = BadgeRecord.__table__
        values = {
            column.name: getattr(record, column.key)
            for column in table.columns
            if not column.primary_key
        }
        with self.connect() as conn:
            try:
                with conn.begin():
                    result = conn.execute(insert(table).values(**values))
            except IntegrityError as exc:
                if not _is_subject_conflict(exc):
                    raise
                logger.info(
                    "[LEDGER] subject=%s already issued, insert rejected",
                    record.subject_id,
                )
                return ALREADY_ISSUED
        record.id = result.inserted_primary_key[0]
        logger.info(
            "[LEDGER] recorded id=%s subject=%s key=%s",
            record.id,
            record.subject_id,
            record.key_code,
        )
        return RECORDED
