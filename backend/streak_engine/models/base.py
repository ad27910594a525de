"""
Base Models for Domain Snapshots and API Request/Response Validation

Usage:
    # For request bodies (strictest validation)
    class RatingCreate(StrictRequest):
        item_id: str
        rating: int

    # For response bodies (allows extra fields from DB)
    class StackResponse(StrictResponse):
        stack_id: str

    # For state snapshots handed to the streak core
    class UserStreakState(DomainModel):
        current_streak: int

Architecture:
    API Request → StrictRequest (extra="forbid") → Service
    DB Row → DomainModel (from_attributes) → Streak core → DomainModel → DB Row
    Service result → StrictResponse → API Response
"""

from pydantic import BaseModel, ConfigDict


class StrictRequest(BaseModel):
    """
    Base model for API request bodies with strict validation.

    Rejects any fields not explicitly declared in the model, catching
    client typos and mismatches at request time rather than runtime.

    Features:
        - extra="forbid": Unknown fields raise 422 Unprocessable Entity
        - validate_default=True: Validates default values
        - str_strip_whitespace=True: Trims whitespace from strings
    """

    model_config = ConfigDict(
        extra="forbid",
        validate_default=True,
        str_strip_whitespace=True,
    )


class StrictResponse(BaseModel):
    """
    Base model for API response bodies.

    Still enforces type validation but ignores extra fields.
    """

    model_config = ConfigDict(
        extra="ignore",
        validate_default=True,
        from_attributes=True,
    )


class DomainModel(BaseModel):
    """
    Base model for the snapshots the streak core operates on.

    Snapshots are validated when they cross the boundary (built from a DB
    row or a request) and then treated as values: the core never mutates a
    snapshot in place, it returns an updated copy via model_copy().

    Features:
        - from_attributes=True: Build directly from SQLAlchemy rows
        - extra="ignore": Tolerates computed fields in round-tripped dumps
    """

    model_config = ConfigDict(
        extra="ignore",
        from_attributes=True,
    )
