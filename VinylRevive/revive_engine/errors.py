"""
Engine Errors - Exception taxonomy for the restoration engine

Decode and render failures are surfaced to the caller. Suggestion service
failures never leave the suggestion client: they are recovered with the
fallback profile.
"""


class ReviveError(Exception):
    """Base class for all restoration engine errors."""


class DecodeError(ReviveError):
    """Audio blob is malformed or in an unsupported format."""


class InvalidFilterParameter(ReviveError, ValueError):
    """Filter design was asked for an impossible frequency."""

    def __init__(self, message: str, freq_hz: float = None, sample_rate: int = None):
        super().__init__(message)
        self.freq_hz = freq_hz
        self.sample_rate = sample_rate


class SuggestionServiceError(ReviveError):
    """The suggestion collaborator timed out or returned garbage."""


class RenderFailure(ReviveError):
    """Offline render or export aborted. No output file is written."""
