"""
Suggestion Client - Timeout-bounded wrapper around the AI profile service

The provider is any callable taking a track name and returning a partial
settings mapping (or its JSON text), optionally with an "aiInsight" note.
Every failure mode (timeout, exception, unusable output) is recovered here
with the fixed fallback profile; callers never see the error.
"""

import json
import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from .config import EngineConfig
from .errors import SuggestionServiceError
from .settings import RestorationSettings, normalize_keys

logger = logging.getLogger(__name__)

FALLBACK_INSIGHT = "Standard vinyl restoration profile applied."

FALLBACK_PROFILE = {
    "hiss_suppression": 20,
    "crackle_suppression": 15,
    "transient_recovery": 30,
    "bass_boost": 2,
    "air_gain": 4,
}

INSIGHT_KEYS = ("aiInsight", "ai_insight")


@dataclass(frozen=True)
class Suggestion:
    """Partial settings patch proposed for one track."""
    patch: Dict[str, Any] = field(default_factory=dict)
    insight: str = ""
    used_fallback: bool = False


def fallback_suggestion() -> Suggestion:
    return Suggestion(patch=dict(FALLBACK_PROFILE), insight=FALLBACK_INSIGHT, used_fallback=True)


def _strip_code_fence(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]
    return text.strip()


def parse_suggestion(raw: Any) -> Suggestion:
    """
    Turn provider output into a Suggestion.

    Raises:
        SuggestionServiceError: If the output is not a mapping with at least
            one known settings field
    """
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")

    if isinstance(raw, str):
        try:
            raw = json.loads(_strip_code_fence(raw))
        except json.JSONDecodeError as e:
            raise SuggestionServiceError(f"Unparseable suggestion: {e}") from e

    if not isinstance(raw, dict):
        raise SuggestionServiceError(f"Suggestion is not an object: {type(raw).__name__}")

    insight = ""
    for key in INSIGHT_KEYS:
        if raw.get(key):
            insight = str(raw[key])
            break

    patch = normalize_keys({k: v for k, v in raw.items() if k not in INSIGHT_KEYS})
    if not patch:
        raise SuggestionServiceError("Suggestion contains no settings")

    return Suggestion(patch=patch, insight=insight)


class SuggestionClient:
    """
    Runs the provider on a worker thread and waits at most timeout_s.

    A provider call that overruns keeps running on its worker; its result
    is discarded.
    """

    def __init__(self, provider: Optional[Callable[[str], Any]] = None,
                 timeout_s: Optional[float] = None, config: EngineConfig = None):
        """
        Initialize the client.

        Args:
            provider: Callable returning a partial settings mapping or JSON text
            timeout_s: Wait limit in seconds (config default if None)
            config: Engine configuration (uses defaults if None)
        """
        self.config = config or EngineConfig()
        self.provider = provider
        self.timeout_s = timeout_s if timeout_s is not None else self.config.suggestion_timeout_s
        self._executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="suggest")

    def suggest(self, track_name: str) -> Suggestion:
        """
        Ask the provider for a restoration profile.

        Returns:
            Provider suggestion, or the fallback profile on any failure
        """
        try:
            suggestion = self._request(track_name)
        except SuggestionServiceError as e:
            logger.warning(f"Suggestion failed for '{track_name}': {e}; using fallback profile")
            return fallback_suggestion()

        logger.info(f"Suggestion for '{track_name}': {len(suggestion.patch)} fields")
        return suggestion

    def _request(self, track_name: str) -> Suggestion:
        if self.provider is None:
            raise SuggestionServiceError("No suggestion provider configured")

        future = self._executor.submit(self.provider, track_name)
        try:
            raw = future.result(timeout=self.timeout_s)
        except FuturesTimeoutError:
            future.cancel()
            raise SuggestionServiceError(f"Timed out after {self.timeout_s}s") from None
        except Exception as e:
            raise SuggestionServiceError(f"Provider error: {e}") from e

        return parse_suggestion(raw)

    def close(self):
        self._executor.shutdown(wait=False)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


def apply_suggestion(settings: RestorationSettings, suggestion: Suggestion) -> RestorationSettings:
    """Merge a suggestion onto settings (clamped)."""
    return settings.merged(suggestion.patch)
