"""Database utilities for the ingestion service."""

from .models import (  # noqa: F401
    AuthStatus,
    Base,
    Content,
    JobRun,
    JobStage,
    JobStatus,
    Platform,
    PlatformAuth,
    ReplyTemplate,
)
from .session import get_engine, get_sessionmaker, session_scope  # noqa: F401

__all__ = [
    "AuthStatus",
    "Base",
    "Content",
    "JobRun",
    "JobStage",
    "JobStatus",
    "Platform",
    "PlatformAuth",
    "ReplyTemplate",
    "get_engine",
    "get_sessionmaker",
    "session_scope",
]
