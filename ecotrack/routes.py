"""
HTTP routes for the EcoTrack backend API.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from ecotrack.db import DbClient, parse_object_id
from ecotrack.dependencies import get_db_client
from ecotrack.errors import ValidationError
from ecotrack.schemas import (
    ChallengeCreate,
    DeleteAckResponse,
    EventCreate,
    EventUpdate,
    InsertAckResponse,
    JoinChallengeRequest,
    JoinChallengeResponse,
    UpdateAckResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()

LIVENESS_MESSAGE = "EcoTrack Server is Running"


@router.get("/", response_class=PlainTextResponse, include_in_schema=False)
def root():
    return LIVENESS_MESSAGE


# Challenges


@router.get("/Challenges", response_model=list[dict])
def list_challenges(db: DbClient = Depends(get_db_client)):
    return db.list_challenges()


@router.get("/Challenges/{challenge_id}", response_model=Optional[dict])
def get_challenge(challenge_id: str, db: DbClient = Depends(get_db_client)):
    return db.get_challenge(parse_object_id(challenge_id))


@router.post("/Challenges", response_model=InsertAckResponse)
def create_challenge(
    payload: ChallengeCreate, db: DbClient = Depends(get_db_client)
):
    ack = db.create_challenge(payload.to_document())
    logger.info("Created challenge %s", ack.inserted_id)
    return ack.as_dict()


# User challenges


@router.get("/UserChallenges", response_model=list[dict])
def list_user_challenges(db: DbClient = Depends(get_db_client)):
    return db.list_user_challenges()


@router.post("/JoinChallenge", response_model=JoinChallengeResponse)
def join_challenge(
    payload: Optional[JoinChallengeRequest] = None,
    db: DbClient = Depends(get_db_client),
):
    """
    Record that a user joined a challenge. Neither id is checked against
    existing documents and repeated joins create repeated records.
    """
    payload = payload or JoinChallengeRequest()
    if not payload.userId or not payload.challengeId:
        raise ValidationError("userId and challengeId required")
    ack = db.join_challenge(payload.userId, payload.challengeId)
    logger.info(
        "User %s joined challenge %s", payload.userId, payload.challengeId
    )
    return {"success": True, "message": "Joined successfully!", "result": ack.as_dict()}


# Events


@router.get("/event", response_model=list[dict])
def list_events(db: DbClient = Depends(get_db_client)):
    return db.list_events()


@router.get("/event/{event_id}", response_model=Optional[dict])
def get_event(event_id: str, db: DbClient = Depends(get_db_client)):
    return db.get_event(parse_object_id(event_id))


@router.post("/event", response_model=InsertAckResponse)
def create_event(payload: EventCreate, db: DbClient = Depends(get_db_client)):
    ack = db.create_event(payload.to_document())
    logger.info("Created event %s", ack.inserted_id)
    return ack.as_dict()


@router.put("/event/{event_id}", response_model=UpdateAckResponse)
def update_event(
    event_id: str, payload: EventUpdate, db: DbClient = Depends(get_db_client)
):
    oid = parse_object_id(event_id)
    fields = payload.to_document()
    if not fields:
        raise ValidationError("Update body must contain at least one field")
    return db.update_event(oid, fields).as_dict()


@router.delete("/event/{event_id}", response_model=DeleteAckResponse)
def delete_event(event_id: str, db: DbClient = Depends(get_db_client)):
    return db.delete_event(parse_object_id(event_id)).as_dict()
