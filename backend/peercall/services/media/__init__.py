"""
Media Module

Local capture devices and mutable tracks.
"""
from .capture import LocalStream, MediaCapture, MediaConstraints
from .tracks import ToggleableTrack, blank_frame

__all__ = [
    "LocalStream",
    "MediaCapture",
    "MediaConstraints",
    "ToggleableTrack",
    "blank_frame",
]
