"""
Error taxonomy shared by services and store adapters.

Routers map these onto HTTP status codes in resetai/main.py:
  InvalidInputError      → 400
  NotFoundError          → 404
  InvalidTransitionError → 409
  StoreError             → 503
"""
from __future__ import annotations


class ResetAIError(Exception):
    """Base class for every error raised deliberately by the core."""


class InvalidInputError(ResetAIError, ValueError):
    """A required identifier or field is missing or malformed. Nothing was written."""


class NotFoundError(ResetAIError, LookupError):
    """The targeted record does not exist (or is not owned by the caller)."""


class InvalidTransitionError(ResetAIError):
    """A status change that the record's lifecycle does not allow."""


class StoreError(ResetAIError):
    """Transient read/write failure in the backing store. Not retried here."""
