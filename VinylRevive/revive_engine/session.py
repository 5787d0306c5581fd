"""
Restoration Session - Headless track list, presets, playback and export

Ties the engines together the way the desktop app drives them: a list of
loaded tracks with a status each, one active track, one live settings
snapshot shared by playback and export.
"""

import logging
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from .buffer import SampleBuffer
from .config import EngineConfig
from .errors import DecodeError, RenderFailure
from .ingest import decode_audio
from .realtime import RealtimeEngine
from .render import OfflineRenderEngine, RenderResult
from .settings import DEFAULT_SETTINGS, RestorationSettings, get_preset, list_presets, merge_settings
from .suggestion import Suggestion, SuggestionClient, apply_suggestion

logger = logging.getLogger(__name__)

EXPORT_PREFIX = "VinylRevive_"


class TrackStatus(Enum):
    IDLE = "idle"
    ANALYZING = "analyzing"
    PROCESSING = "processing"
    DONE = "done"
    ERROR = "error"


@dataclass
class Track:
    """One imported file and what the session knows about it."""
    name: str
    blob: bytes = field(repr=False)
    track_id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    status: TrackStatus = TrackStatus.IDLE
    buffer: Optional[SampleBuffer] = field(default=None, repr=False)
    ai_profile: Optional[Dict[str, Any]] = None
    ai_insight: str = ""
    error: Optional[str] = None
    output_path: Optional[str] = None

    @property
    def loaded(self) -> bool:
        return self.buffer is not None

    @property
    def export_name(self) -> str:
        return f"{EXPORT_PREFIX}{Path(self.name).stem}.wav"


class RestorationSession:
    """Session controller over the realtime and offline engines."""

    def __init__(self, config: EngineConfig = None,
                 suggestion_client: SuggestionClient = None,
                 settings: RestorationSettings = DEFAULT_SETTINGS):
        self.config = config or EngineConfig()
        self.realtime = RealtimeEngine(self.config, settings)
        self.renderer = OfflineRenderEngine(self.config)
        self.suggestions = suggestion_client or SuggestionClient(config=self.config)

        self._settings = settings
        self._tracks: Dict[str, Track] = {}
        self._active_id: Optional[str] = None
        self._user_presets: Dict[str, Tuple[str, RestorationSettings]] = {}
        self._executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="decode")

    # === Settings & presets ===

    @property
    def settings(self) -> RestorationSettings:
        return self._settings

    def set_settings(self, settings: RestorationSettings):
        self._settings = settings
        self.realtime.update_settings(settings)

    def update_settings(self, partial: Mapping[str, Any]) -> RestorationSettings:
        """Merge a partial mapping onto the current settings."""
        self.set_settings(merge_settings(partial, base=self._settings))
        return self._settings

    def list_presets(self) -> Dict[str, str]:
        presets = list_presets()
        presets.update({pid: name for pid, (name, _) in self._user_presets.items()})
        return presets

    def apply_preset(self, preset_id: str) -> RestorationSettings:
        """
        Switch to a factory or saved preset.

        Raises:
            KeyError: If the preset id is unknown
        """
        if preset_id in self._user_presets:
            settings = self._user_presets[preset_id][1]
        else:
            settings = get_preset(preset_id)
        self.set_settings(settings)
        logger.info(f"Applied preset: {preset_id}")
        return settings

    def save_preset(self, name: str) -> str:
        """Store the current settings under a new preset id (in memory)."""
        preset_id = uuid.uuid4().hex[:8]
        self._user_presets[preset_id] = (name, self._settings)
        return preset_id

    def delete_preset(self, preset_id: str):
        self._user_presets.pop(preset_id, None)

    # === Tracks ===

    @property
    def tracks(self) -> List[Track]:
        return list(self._tracks.values())

    @property
    def active_track(self) -> Optional[Track]:
        return self._tracks.get(self._active_id) if self._active_id else None

    def get_track(self, track_id: str) -> Track:
        if track_id not in self._tracks:
            raise KeyError(f"Unknown track: {track_id}")
        return self._tracks[track_id]

    def add_track(self, name: str, blob: bytes) -> Track:
        track = Track(name=name, blob=blob)
        self._tracks[track.track_id] = track
        if self._active_id is None:
            self._active_id = track.track_id
        logger.info(f"Added track {track.track_id}: {name}")
        return track

    def add_file(self, file_path: Union[str, Path]) -> Track:
        file_path = Path(file_path)
        return self.add_track(file_path.name, file_path.read_bytes())

    def remove_track(self, track_id: str):
        track = self._tracks.pop(track_id, None)
        if track is not None and track_id == self._active_id:
            self.realtime.stop()
            self._active_id = next(iter(self._tracks), None)

    def clear_tracks(self):
        self.realtime.stop()
        self._tracks.clear()
        self._active_id = None

    def select_track(self, track_id: str) -> Track:
        track = self.get_track(track_id)
        if track_id != self._active_id:
            self.realtime.stop()
            self._active_id = track_id
        return track

    def load_track(self, track_id: str) -> Track:
        """
        Decode a track's blob.

        Raises:
            DecodeError: If the audio can't be decoded (track marked as error)
        """
        track = self.get_track(track_id)
        if track.loaded:
            return track

        track.status = TrackStatus.PROCESSING
        try:
            track.buffer = decode_audio(track.blob)
        except DecodeError as e:
            track.status = TrackStatus.ERROR
            track.error = str(e)
            logger.error(f"Failed to decode {track.name}: {e}")
            raise

        track.status = TrackStatus.IDLE
        return track

    def load_track_async(self, track_id: str) -> 'Future[Track]':
        return self._executor.submit(self.load_track, track_id)

    def _require_active(self) -> Track:
        track = self.active_track
        if track is None:
            raise RuntimeError("No active track")
        return self.load_track(track.track_id)

    # === Transport ===

    def play(self, offset_seconds: float = 0.0):
        track = self._require_active()
        self.realtime.play(track.buffer, offset_seconds)

    def stop(self):
        self.realtime.stop()

    def set_monitor_mode(self, mode: str):
        self.realtime.set_monitor_mode(mode)

    # === AI revive ===

    def ai_revive(self) -> Suggestion:
        """Ask the suggestion service for a profile and apply it."""
        track = self.active_track
        if track is None:
            raise RuntimeError("No active track")

        track.status = TrackStatus.ANALYZING
        suggestion = self.suggestions.suggest(track.name)
        self.set_settings(apply_suggestion(self._settings, suggestion))

        track.ai_profile = dict(suggestion.patch)
        track.ai_insight = suggestion.insight
        track.status = TrackStatus.IDLE
        return suggestion

    # === Export ===

    def export(self, output_dir: Union[str, Path]) -> RenderResult:
        """
        Master the active track into output_dir.

        Raises:
            RenderFailure: If rendering or writing fails (track marked as error)
        """
        track = self._require_active()
        output_path = Path(output_dir) / track.export_name

        track.status = TrackStatus.PROCESSING
        try:
            result = self.renderer.export(track.buffer, self._settings, output_path)
        except RenderFailure as e:
            track.status = TrackStatus.ERROR
            track.error = str(e)
            raise

        track.status = TrackStatus.DONE
        track.output_path = result.output_path
        return result

    def close(self):
        self.realtime.close_output()
        self.suggestions.close()
        self._executor.shutdown(wait=True)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
