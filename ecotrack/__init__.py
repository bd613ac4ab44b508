"""
EcoTrack backend package.

This package provides a FastAPI application exposing challenges, user
challenge join records and community events, backed by MongoDB with an
in-memory database for development and tests.
"""
