"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from fastapi import Request

from ecotrack.config import Settings
from ecotrack.db import DbClient, InMemoryDbClient, MongoDbClient
from ecotrack.errors import (
    ConfigurationError,
    DatabaseNotReadyError,
    StorageUnavailableError,
)

logger = logging.getLogger(__name__)


def connect_db_client(
    settings: Settings, *, sleep: Callable[[float], None] = time.sleep
) -> DbClient:
    """
    Build the database client for this process.

    MongoDB is pinged up to ``db_connect_retries`` times with exponential
    backoff; if it never answers, StorageUnavailableError is raised and
    application startup aborts.
    """
    if settings.use_in_memory_backends:
        logger.warning("Using in-memory database; data will not persist")
        return InMemoryDbClient()

    if not settings.mongodb_uri:
        raise ConfigurationError("MONGODB_URI is not set")

    client = MongoDbClient(
        settings.mongodb_uri,
        db_name=settings.mongodb_db_name,
        challenges_collection=settings.challenges_collection,
        user_challenges_collection=settings.user_challenges_collection,
        events_collection=settings.events_collection,
        server_selection_timeout_ms=settings.db_server_selection_timeout_ms,
    )

    attempts = settings.db_connect_retries
    for attempt in range(attempts):
        try:
            client.ping()
        except StorageUnavailableError:
            if attempt == attempts - 1:
                break
            delay = settings.db_connect_backoff_seconds * (2**attempt)
            logger.warning(
                "MongoDB connection attempt %d/%d failed; retrying in %.1fs",
                attempt + 1,
                attempts,
                delay,
            )
            sleep(delay)
        else:
            logger.info("Connected to MongoDB database %s", settings.mongodb_db_name)
            return client

    client.close()
    logger.error("Could not connect to MongoDB after %d attempts", attempts)
    raise StorageUnavailableError(
        f"Could not connect to MongoDB after {attempts} attempts"
    )


def get_db_client(request: Request) -> DbClient:
    """
    Return the process-wide DB client, refusing requests until it exists.
    """
    db_client = getattr(request.app.state, "db_client", None)
    if db_client is None:
        raise DatabaseNotReadyError()
    return db_client
