import logging
from typing import List

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from companion_app.core.exceptions import StorageError
from companion_app.models.message import Message
from companion_app.utils.time_utils import Clock, ensure_utc, utcnow

# Each conflict means another writer committed to the same pair, so the bound must
# cover the concurrent sends one conversation can see across all workers
DEFAULT_MAX_APPEND_ATTEMPTS = 10
VALID_ROLES = ("user", "assistant")

logger = logging.getLogger(__name__)

class ConversationStore:
    """
    Append-only message history, one ordered sequence per (companion, caller) pair.

    Appends for a pair are serialized through ``Message.seq``: the next value is
    computed from the last stored message and committed under a unique constraint,
    so a concurrent writer that raced to the same value fails and re-reads instead
    of interleaving. Pairs never block one another.
    """
    def __init__(self, db: Session, clock: Clock = utcnow, max_append_attempts: int = DEFAULT_MAX_APPEND_ATTEMPTS):
        self.db = db
        self._clock = clock
        self.max_append_attempts = max_append_attempts

    def append(self, companion_id: str, caller_id: str, role: str, content: str) -> Message:
        """
        Persists one message after the current tail of the pair's conversation.

        ``seq`` is strictly greater than every earlier message of the pair and
        ``created_at`` never goes backwards, even if the wall clock does.

        Raises:
            StorageError: The write failed or kept conflicting; nothing was persisted.
        """
        if role not in VALID_ROLES:
            raise ValueError(f"Unsupported message role '{role}'")

        last_error = None
        for attempt in range(1, self.max_append_attempts + 1):
            try:
                tail = self.db.execute(
                    select(Message.seq, Message.created_at)
                    .where(Message.companion_id == companion_id, Message.caller_id == caller_id)
                    .order_by(Message.seq.desc())
                    .limit(1)
                ).first()

                now = self._clock()
                if tail is None:
                    seq, created_at = 1, now
                else:
                    last_created = ensure_utc(tail.created_at)
                    seq = tail.seq + 1
                    created_at = now if now >= last_created else last_created

                db_message = Message(
                    companion_id=companion_id,
                    caller_id=caller_id,
                    seq=seq,
                    role=role,
                    content=content,
                    created_at=created_at,
                )
                self.db.add(db_message)
                self.db.commit()
                logger.info(f"Saved {role} message {db_message.id} (seq {seq}) for companion {companion_id}, caller {caller_id}")
                return db_message
            except IntegrityError as e:
                self.db.rollback()
                last_error = e
                logger.warning(
                    f"Sequence conflict appending to companion {companion_id}, caller {caller_id} "
                    f"(attempt {attempt}/{self.max_append_attempts})"
                )
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(f"Database error saving message for companion {companion_id}, caller {caller_id}: {e}", exc_info=True)
                raise StorageError("message append", str(e)) from e

        logger.error(f"Giving up appending to companion {companion_id}, caller {caller_id}: {last_error}")
        raise StorageError("message append", f"sequence conflict after {self.max_append_attempts} attempts")

    def list_messages(self, companion_id: str, caller_id: str) -> List[Message]:
        """Returns the pair's messages in ascending order; empty if none yet."""
        try:
            return list(self.db.scalars(
                select(Message)
                .where(Message.companion_id == companion_id, Message.caller_id == caller_id)
                .order_by(Message.seq.asc())
            ).all())
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Database error listing messages for companion {companion_id}, caller {caller_id}: {e}", exc_info=True)
            raise StorageError("message list", str(e)) from e

    def end_read(self) -> None:
        """Closes the session's open read transaction, returning its connection to the pool."""
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Database error ending read transaction: {e}", exc_info=True)
            raise StorageError("read release", str(e)) from e

    def reset(self, companion_id: str, caller_id: str) -> int:
        """Deletes the whole conversation of one pair. Returns the number of messages removed."""
        try:
            result = self.db.execute(
                delete(Message).where(Message.companion_id == companion_id, Message.caller_id == caller_id)
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Database error resetting conversation for companion {companion_id}, caller {caller_id}: {e}", exc_info=True)
            raise StorageError("conversation reset", str(e)) from e
        logger.info(f"Reset conversation for companion {companion_id}, caller {caller_id}: {result.rowcount} messages removed")
        return result.rowcount
