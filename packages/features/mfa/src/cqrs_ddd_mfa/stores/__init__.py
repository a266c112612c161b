"""Collaborator implementations: in-memory (tests) and SQLAlchemy."""

from .memory import (
    InMemoryAttemptStorage,
    InMemoryFactorStore,
    InMemoryRecoveryTokenStore,
    InMemorySessionGateway,
)
from .sqlalchemy import (
    SQLAlchemyFactorStore,
    SQLAlchemyRecoveryTokenStore,
    create_engine_and_sessions,
    create_schema,
)

__all__ = [
    "InMemoryAttemptStorage",
    "InMemoryFactorStore",
    "InMemoryRecoveryTokenStore",
    "InMemorySessionGateway",
    "SQLAlchemyFactorStore",
    "SQLAlchemyRecoveryTokenStore",
    "create_engine_and_sessions",
    "create_schema",
]
