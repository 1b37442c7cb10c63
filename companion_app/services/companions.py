import logging
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from companion_app.core.exceptions import Forbidden, NotFound, StorageError, ValidationError
from companion_app.models.category import Category
from companion_app.models.companion import Companion
from companion_app.models.message import Message
from companion_app.schemas.companion import (
    CategorySchema,
    CompanionDefinition,
    CompanionResponseSchema,
    CompanionSummarySchema,
)

logger = logging.getLogger(__name__)

__all__ = ["CompanionService"]

class CompanionService:
    def __init__(self, db: Session):
        """
        Initializes the CompanionService with a database session.

        Args:
            db (Session): The SQLAlchemy database session.
        """
        self.db = db

    async def create_or_update(
        self,
        caller_id: str,
        definition: Union[CompanionDefinition, Mapping[str, Any]],
        existing_id: Optional[str] = None,
    ) -> CompanionResponseSchema:
        """
        Validates a companion definition and writes it in a single commit.

        Without ``existing_id`` a new companion owned by ``caller_id`` is created.
        With it, the stored companion is overwritten field by field while its id,
        owner and creation time are kept.

        Args:
            caller_id: The authenticated caller.
            definition: The six authoring fields, either already parsed or raw form data.
            existing_id: ID of the companion to update, if any.

        Returns:
            CompanionResponseSchema: The persisted companion.

        Raises:
            NotFound: ``existing_id`` does not exist.
            Forbidden: The caller does not own ``existing_id``.
            ValidationError: Any field is missing, too short or references an unknown category.
            StorageError: The write failed; nothing was persisted.
        """
        db_companion = None
        if existing_id is not None:
            db_companion = self._get_or_raise(existing_id)
            if db_companion.owner_id != caller_id:
                logger.warning(f"Caller {caller_id} attempted to edit companion {existing_id} owned by {db_companion.owner_id}.")
                raise Forbidden(caller_id=caller_id, companion_id=existing_id)

        validated = self._validate(definition)

        try:
            if db_companion is None:
                db_companion = Companion(owner_id=caller_id, **validated.model_dump())
                self.db.add(db_companion)
                action = "Created"
            else:
                for key, value in validated.model_dump().items():
                    setattr(db_companion, key, value)
                action = "Updated"
            self.db.commit()
            self.db.refresh(db_companion)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Database error writing companion for caller {caller_id}: {e}", exc_info=True)
            raise StorageError("companion write", str(e)) from e

        logger.info(f"{action} companion '{db_companion.name}' (ID: {db_companion.id}) for owner {db_companion.owner_id}")
        return CompanionResponseSchema.model_validate(db_companion)

    async def get_companion(self, companion_id: str) -> CompanionResponseSchema:
        """Retrieves a companion by ID, raising NotFound if it does not exist."""
        return CompanionResponseSchema.model_validate(self._get_or_raise(companion_id))

    async def list_companions(
        self,
        category_id: Optional[str] = None,
        name: Optional[str] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> List[CompanionSummarySchema]:
        """
        Lists companions newest first, optionally filtered by category and a
        case-insensitive name fragment. Each entry carries its total message count.
        """
        message_counts = (
            select(Message.companion_id, func.count(Message.id).label("message_count"))
            .group_by(Message.companion_id)
            .subquery()
        )
        stmt = (
            select(Companion, func.coalesce(message_counts.c.message_count, 0))
            .outerjoin(message_counts, message_counts.c.companion_id == Companion.id)
        )
        if category_id:
            stmt = stmt.where(Companion.category_id == category_id)
        if name:
            stmt = stmt.where(func.lower(Companion.name).contains(name.lower(), autoescape=True))
        stmt = stmt.order_by(Companion.created_at.desc()).offset(skip).limit(limit)

        try:
            rows = self.db.execute(stmt).all()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Database error listing companions: {e}", exc_info=True)
            raise StorageError("companion list", str(e)) from e

        logger.debug(f"Listed {len(rows)} companions (category={category_id}, name={name!r}, skip={skip}, limit={limit}).")
        return [
            CompanionSummarySchema.model_validate(companion).model_copy(update={"message_count": count})
            for companion, count in rows
        ]

    async def delete_companion(self, caller_id: str, companion_id: str) -> None:
        """Deletes an owned companion together with every conversation held with it."""
        db_companion = self._get_or_raise(companion_id)
        if db_companion.owner_id != caller_id:
            logger.warning(f"Caller {caller_id} attempted to delete companion {companion_id} owned by {db_companion.owner_id}.")
            raise Forbidden(caller_id=caller_id, companion_id=companion_id)

        try:
            result = self.db.execute(delete(Message).where(Message.companion_id == companion_id))
            self.db.delete(db_companion)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Database error deleting companion {companion_id}: {e}", exc_info=True)
            raise StorageError("companion delete", str(e)) from e
        logger.info(f"Deleted companion {companion_id} and {result.rowcount} messages.")

    async def list_categories(self) -> List[CategorySchema]:
        try:
            categories = self.db.scalars(select(Category).order_by(Category.name)).all()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Database error listing categories: {e}", exc_info=True)
            raise StorageError("category list", str(e)) from e
        return [CategorySchema.model_validate(c) for c in categories]

    # --- Helpers ---

    def _get_or_raise(self, companion_id: str) -> Companion:
        try:
            db_companion = self.db.get(Companion, companion_id)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Database error retrieving companion {companion_id}: {e}", exc_info=True)
            raise StorageError("companion read", str(e)) from e
        if db_companion is None:
            logger.warning(f"Companion with ID '{companion_id}' not found.")
            raise NotFound("Companion", companion_id)
        return db_companion

    def _validate(self, definition: Union[CompanionDefinition, Mapping[str, Any]]) -> CompanionDefinition:
        """
        Runs every field rule and the category lookup, collecting all failures
        so the caller can fix the whole form in one pass.
        """
        raw: Dict[str, Any] = definition.model_dump() if isinstance(definition, CompanionDefinition) else dict(definition)
        failures: Dict[str, str] = {}
        validated: Optional[CompanionDefinition] = None

        try:
            validated = CompanionDefinition.model_validate(raw)
        except PydanticValidationError as e:
            for error in e.errors():
                field = str(error["loc"][0]) if error["loc"] else "__root__"
                failures.setdefault(field, error["msg"])

        category_id = raw.get("category_id")
        if "category_id" not in failures and isinstance(category_id, str) and category_id.strip():
            try:
                category = self.db.get(Category, category_id)
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(f"Database error looking up category {category_id}: {e}", exc_info=True)
                raise StorageError("category read", str(e)) from e
            if category is None:
                failures["category_id"] = f"Category '{category_id}' does not exist"

        if failures:
            logger.info(f"Rejected companion definition; failing fields: {sorted(failures)}")
            raise ValidationError(fields=list(failures), details=failures)
        return validated
