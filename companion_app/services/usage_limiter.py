import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from companion_app.core.exceptions import StorageError
from companion_app.models.usage import UsageRecord
from companion_app.utils.time_utils import Clock, ensure_utc, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UsageDecision:
    allowed: bool
    used: int
    remaining: int
    window_resets_at: Optional[datetime]


class UsageLimiter:
    """
    Fixed-window message quota for callers without an active entitlement.

    Each caller gets ``quota`` messages per window of ``window_seconds``; the
    window starts at the first message after the previous one elapsed. The
    counter lives in the database so every worker process shares it, and the
    read-check-increment runs in one transaction on a row lock.
    """

    def __init__(self, db: Session, quota: int, window_seconds: int, clock: Clock = utcnow):
        """
        Args:
            db: SQLAlchemy session.
            quota: Maximum messages per window.
            window_seconds: Window length in seconds.
            clock: Source of the current time (UTC).
        """
        self.db = db
        self.quota = quota
        self.window = timedelta(seconds=window_seconds)
        self._clock = clock

    def check_and_increment(self, caller_id: str) -> UsageDecision:
        """
        Consumes one unit of quota if any is left.

        Not idempotent: every allowed call counts, so a caller retrying after an
        ambiguous failure spends another unit.
        """
        for attempt in (1, 2):
            try:
                now = self._clock()
                record = self.db.scalars(
                    select(UsageRecord).where(UsageRecord.caller_id == caller_id).with_for_update()
                ).first()

                if record is None:
                    record = UsageRecord(caller_id=caller_id, message_count=0, window_start=now)
                    self.db.add(record)
                elif self._window_elapsed(record, now):
                    logger.debug(f"Usage window elapsed for caller {caller_id}; resetting counter.")
                    record.message_count = 0
                    record.window_start = now

                resets_at = ensure_utc(record.window_start) + self.window
                used = record.message_count

                if used >= self.quota:
                    self.db.rollback()
                    logger.warning(f"Quota exceeded for caller {caller_id}: {used}/{self.quota} until {resets_at.isoformat()}")
                    return UsageDecision(allowed=False, used=used, remaining=0, window_resets_at=resets_at)

                record.message_count = used + 1
                self.db.commit()
                logger.debug(f"Caller {caller_id} used {used + 1}/{self.quota} free messages.")
                return UsageDecision(
                    allowed=True,
                    used=used + 1,
                    remaining=self.quota - used - 1,
                    window_resets_at=resets_at,
                )
            except IntegrityError as e:
                # Another request created the caller's record first; re-read it.
                self.db.rollback()
                if attempt == 2:
                    logger.error(f"Could not create usage record for caller {caller_id}: {e}", exc_info=True)
                    raise StorageError("usage increment", str(e)) from e
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(f"Database error updating usage for caller {caller_id}: {e}", exc_info=True)
                raise StorageError("usage increment", str(e)) from e

    def peek(self, caller_id: str) -> UsageDecision:
        """Reports the caller's standing without consuming quota."""
        try:
            record = self.db.get(UsageRecord, caller_id)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Database error reading usage for caller {caller_id}: {e}", exc_info=True)
            raise StorageError("usage read", str(e)) from e

        now = self._clock()
        if record is None or self._window_elapsed(record, now):
            return UsageDecision(allowed=self.quota > 0, used=0, remaining=self.quota, window_resets_at=None)
        used = record.message_count
        return UsageDecision(
            allowed=used < self.quota,
            used=used,
            remaining=max(0, self.quota - used),
            window_resets_at=ensure_utc(record.window_start) + self.window,
        )

    def _window_elapsed(self, record: UsageRecord, now: datetime) -> bool:
        return ensure_utc(record.window_start) + self.window <= now
