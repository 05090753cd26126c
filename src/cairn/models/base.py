"""
Base models and common mixins.
"""

from pydantic import BaseModel, ConfigDict, Field

from cairn.core.id_generator import generate_id


class CairnBaseModel(BaseModel):
    """
    Base model for all of CAIRN.
    Common configuration and stricter validation.
    """

    model_config = ConfigDict(
        # Validate values on assignment
        validate_assignment=True,
        # Prevent extra fields
        extra="forbid",
    )


class FrozenModel(CairnBaseModel):
    """Immutable variant; instances are safe to share between threads."""

    model_config = ConfigDict(frozen=True, extra="forbid")


class StandardIdMixin(BaseModel):
    """Standard 'id' field with a generated hex32 default."""

    id: str = Field(default_factory=generate_id, min_length=1, description="Unique identifier")
