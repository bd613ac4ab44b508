"""
Pydantic schemas for the EcoTrack FastAPI backend.
"""

from __future__ import annotations

from typing import Any, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictFloat,
    StrictInt,
    model_validator,
)

# BSON stores integers as signed 64-bit values.
INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1


def _check_value(value: Any, path: str) -> None:
    if isinstance(value, dict):
        for key, item in value.items():
            key = str(key)
            if key.startswith("$") or "." in key:
                raise ValueError(f"field {path}{key!r} is not allowed")
            _check_value(item, f"{path}{key}.")
    elif isinstance(value, list):
        for item in value:
            _check_value(item, path)
    elif isinstance(value, int) and not isinstance(value, bool):
        if not INT64_MIN <= value <= INT64_MAX:
            raise ValueError(f"integer in {path.rstrip('.') or 'body'} is out of range")


class DocumentPayload(BaseModel):
    """
    Base for free-form documents: declared fields are type-checked, anything
    else is stored verbatim.

    Keys may not start with ``$`` or contain ``.`` at any depth, ``_id`` may
    not be supplied, and integers must fit in 64 bits.
    """

    model_config = ConfigDict(extra="allow")

    @model_validator(mode="before")
    @classmethod
    def reject_reserved_keys(cls, data: Any) -> Any:
        if isinstance(data, dict):
            if "_id" in data:
                raise ValueError("field '_id' is not allowed")
            _check_value(data, "")
        return data

    def to_document(self) -> dict:
        document = self.model_dump(exclude_unset=True)
        document.update(self.model_extra or {})
        return document


class ChallengeCreate(DocumentPayload):
    title: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None
    imageUrl: Optional[str] = None
    duration: Optional[Union[StrictInt, StrictFloat]] = None
    target: Optional[str] = None
    impactMetric: Optional[str] = None
    participants: Optional[StrictInt] = Field(default=None, ge=0)
    startDate: Optional[str] = None
    endDate: Optional[str] = None


class EventCreate(DocumentPayload):
    title: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    organizer: Optional[str] = None
    date: Optional[str] = None
    maxParticipants: Optional[StrictInt] = Field(default=None, ge=0)


class EventUpdate(EventCreate):
    """Partial event update; only the supplied fields are changed."""


class JoinChallengeRequest(BaseModel):
    userId: Optional[str] = None
    challengeId: Optional[str] = None


class InsertAckResponse(BaseModel):
    acknowledged: bool
    insertedId: str


class UpdateAckResponse(BaseModel):
    acknowledged: bool
    matchedCount: int
    modifiedCount: int
    upsertedId: Optional[str] = None
    upsertedCount: int = 0


class DeleteAckResponse(BaseModel):
    acknowledged: bool
    deletedCount: int


class JoinChallengeResponse(BaseModel):
    success: Literal[True]
    message: str
    result: InsertAckResponse
