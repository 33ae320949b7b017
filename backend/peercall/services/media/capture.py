"""
Media Capture

Opens local camera/microphone sources through aiortc's MediaPlayer
(ffmpeg devices configured in settings) and wraps each source in a
ToggleableTrack.
"""
import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from aiortc.contrib.media import MediaPlayer

from peercall.config.constants import MEDIA_KIND_AUDIO, MEDIA_KIND_VIDEO
from peercall.config.settings import Settings, settings
from peercall.services.call.exceptions import MediaUnavailableError

from .tracks import ToggleableTrack

logger = logging.getLogger(__name__)


@dataclass
class MediaConstraints:
    """Which local kinds to capture."""
    audio: bool = True
    video: bool = True

    def kinds(self) -> Tuple[str, ...]:
        kinds = []
        if self.audio:
            kinds.append(MEDIA_KIND_AUDIO)
        if self.video:
            kinds.append(MEDIA_KIND_VIDEO)
        return tuple(kinds)


class LocalStream:
    """A captured set of local tracks, one per kind."""

    def __init__(self):
        self.stream_id = uuid.uuid4().hex
        self.tracks: Dict[str, ToggleableTrack] = {}
        self.players: List[Any] = []
        self.released = False

    def get_track(self, kind: str) -> Optional[ToggleableTrack]:
        return self.tracks.get(kind)

    @property
    def kinds(self) -> Tuple[str, ...]:
        return tuple(self.tracks)

    def __repr__(self) -> str:
        return f"LocalStream(id={self.stream_id[:8]}, kinds={list(self.tracks)}, released={self.released})"


class MediaCapture:
    """
    Acquires and releases local capture devices.

    A player factory can be injected for tests; it is called as
    factory(file, format=..., options=...) and must return an object
    exposing `.audio` and `.video` tracks.
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        player_factory: Optional[Callable[..., Any]] = None,
    ):
        self._settings = config or settings
        self._player_factory = player_factory or MediaPlayer

    # === Acquire ===

    async def acquire(self, constraints: Optional[MediaConstraints] = None) -> LocalStream:
        """
        Open one source per requested kind.

        Raises:
            MediaUnavailableError: nothing requested, device unconfigured,
                denied or absent. Sources opened before the failure are released.
        """
        constraints = constraints or MediaConstraints()
        kinds = constraints.kinds()
        if not kinds:
            raise MediaUnavailableError("No media kind requested")

        loop = asyncio.get_running_loop()
        stream = LocalStream()
        try:
            for kind in kinds:
                # Opening an ffmpeg device blocks
                player = await loop.run_in_executor(None, self._open_player, kind)
                stream.players.append(player)

                source = getattr(player, kind, None)
                if source is None:
                    raise MediaUnavailableError(f"Device produced no {kind} track")
                stream.tracks[kind] = ToggleableTrack(source, kind)

        except MediaUnavailableError:
            self.release(stream)
            raise
        except Exception as e:
            self.release(stream)
            raise MediaUnavailableError(f"Failed to open {kind} device: {e}") from e

        logger.info(f"[Media] Acquired {stream}")
        return stream

    def _source_for(self, kind: str) -> Tuple[Optional[str], Optional[str], Dict[str, str]]:
        if kind == MEDIA_KIND_VIDEO:
            options = {
                "video_size": self._settings.MEDIA_VIDEO_SIZE,
                "framerate": str(self._settings.MEDIA_VIDEO_FRAMERATE),
            }
            return self._settings.MEDIA_VIDEO_DEVICE, self._settings.MEDIA_VIDEO_FORMAT, options
        return self._settings.MEDIA_AUDIO_DEVICE, self._settings.MEDIA_AUDIO_FORMAT, {}

    def _open_player(self, kind: str):
        device, fmt, options = self._source_for(kind)
        if not device:
            raise MediaUnavailableError(f"No {kind} device configured")
        logger.debug(f"[Media] Opening {kind} device {device} (format={fmt})")
        return self._player_factory(device, format=fmt, options=options)

    # === Release ===

    def release(self, stream: Optional[LocalStream]) -> None:
        """Stop every track of the stream. Idempotent."""
        if stream is None or stream.released:
            return
        stream.released = True

        for track in stream.tracks.values():
            try:
                track.stop()
            except Exception as e:
                logger.warning(f"[Media] Error stopping {track.kind} track: {e}")

        # Sources not wrapped in a ToggleableTrack still hold the device
        wrapped = {id(track.source) for track in stream.tracks.values()}
        for player in stream.players:
            for source in (getattr(player, "audio", None), getattr(player, "video", None)):
                if source is None or id(source) in wrapped:
                    continue
                try:
                    source.stop()
                except Exception as e:
                    logger.warning(f"[Media] Error stopping {source.kind} source: {e}")

        logger.info(f"[Media] Released stream {stream.stream_id[:8]}")

    # === Mute ===

    def set_track_enabled(self, stream: Optional[LocalStream], kind: str, enabled: bool) -> bool:
        """Enable/disable one kind. Returns False if the stream has no such track."""
        if stream is None or stream.released:
            return False
        track = stream.get_track(kind)
        if track is None:
            return False
        track.enabled = enabled
        logger.info(f"[Media] {kind} {'enabled' if enabled else 'disabled'}")
        return True
