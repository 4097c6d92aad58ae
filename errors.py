"""Error taxonomy shared by the lookup and gamification pipelines.

Provider-level failures (rate limits, overload, safety blocks) live in
ai_resilience.py next to the client that raises them; this module holds the
errors that cross the service boundary.
"""

from __future__ import annotations


class EtymologyError(Exception):
    """Base class for errors surfaced by the service layer."""


class InvalidInput(EtymologyError):
    """A required parameter is empty or missing."""


class ConfigurationError(EtymologyError):
    """The server is misconfigured. Never retried, never masked as degraded."""


class NoCredentialsConfigured(ConfigurationError):
    def __init__(self, message: str = "No Gemini API keys configured") -> None:
        super().__init__(message)


class QuotaExceeded(EtymologyError):
    """Every configured credential reported quota exhaustion for this call."""


class PersistenceUnavailable(EtymologyError):
    """A user-state read-modify-write could not be completed."""
