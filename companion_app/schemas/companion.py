from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime

MIN_INSTRUCTIONS_LENGTH = 200
MIN_SEED_LENGTH = 200

# At least one non-whitespace character; the value itself is stored as submitted
NOT_BLANK = r"\S"

class CompanionDefinition(BaseModel):
    """
    The six authoring fields of a companion. Every constraint is checked before
    anything is written; unknown keys are rejected so a typo cannot silently drop a field.
    Text is stored exactly as submitted and lengths are measured on the raw value.
    """
    model_config = ConfigDict(extra="forbid")

    name: str = Field(
        ...,
        min_length=1,
        pattern=NOT_BLANK,
        examples=["Ada Lovelace"],
        description="Display name of the companion.",
    )
    description: str = Field(
        ...,
        min_length=1,
        pattern=NOT_BLANK,
        examples=["Mathematician and first programmer"],
        description="Short description shown in listings.",
    )
    instructions: str = Field(
        ...,
        min_length=MIN_INSTRUCTIONS_LENGTH,
        description="Persona directive handed to the model. At least 200 characters.",
    )
    seed: str = Field(
        ...,
        min_length=MIN_SEED_LENGTH,
        description="Example dialogue ('Human: ...' / '<Name>: ...' lines). At least 200 characters.",
    )
    image_ref: str = Field(
        ...,
        min_length=1,
        pattern=NOT_BLANK,
        examples=["https://res.cloudinary.com/demo/image/upload/ada.png"],
        description="Reference to the avatar asset.",
    )
    category_id: str = Field(..., min_length=1, pattern=NOT_BLANK, description="ID of an existing category.")

class CompanionResponseSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    owner_id: str
    name: str
    description: str
    instructions: str
    seed: str
    image_ref: str
    category_id: str
    created_at: datetime
    updated_at: datetime

class CompanionSummarySchema(BaseModel):
    """Listing entry; persona text omitted."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    owner_id: str
    name: str
    description: str
    image_ref: str
    category_id: str
    created_at: datetime
    message_count: int = 0

class CategorySchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str

class CompanionCreateUpdateResponseSchema(BaseModel):
    status: str
    message: str
    companion_id: str
