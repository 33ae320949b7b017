"""
Toggleable Track

MediaStreamTrack wrapper that can be muted without renegotiation. While
disabled it keeps the frame cadence of its source but emits silence or
black frames, so the remote side sees a live but empty track.
"""
import logging

from aiortc import MediaStreamTrack
from av import AudioFrame, VideoFrame

from peercall.config.constants import MEDIA_KIND_AUDIO

logger = logging.getLogger(__name__)


def blank_frame(frame):
    """Return a silent/black frame with the timing of `frame`."""
    if isinstance(frame, AudioFrame):
        blank = AudioFrame(format=frame.format.name, layout=frame.layout.name, samples=frame.samples)
        for plane in blank.planes:
            plane.update(bytes(plane.buffer_size))
        blank.sample_rate = frame.sample_rate
    elif isinstance(frame, VideoFrame):
        blank = VideoFrame(width=frame.width, height=frame.height, format="yuv420p")
        # Y=0, U=V=128 is black in yuv420p
        luma, *chroma = blank.planes
        luma.update(bytes(luma.buffer_size))
        for plane in chroma:
            plane.update(bytes([128]) * plane.buffer_size)
    else:
        return frame

    blank.pts = frame.pts
    blank.time_base = frame.time_base
    return blank


class ToggleableTrack(MediaStreamTrack):
    """
    Local capture track that can be enabled/disabled in place.

    Attributes:
        kind (str): "audio" or "video", taken from the source
        source (MediaStreamTrack): device track being wrapped
        enabled (bool): when False, recv() returns blank frames
    """

    def __init__(self, source: MediaStreamTrack, kind: str = MEDIA_KIND_AUDIO):
        super().__init__()
        self.kind = kind
        self.source = source
        self.enabled = True

    async def recv(self):
        frame = await self.source.recv()
        if self.enabled:
            return frame
        return blank_frame(frame)

    def stop(self) -> None:
        super().stop()
        self.source.stop()
