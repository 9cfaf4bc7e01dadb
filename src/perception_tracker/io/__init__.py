"""
I/O module for Perception Tracker.

This module provides detection-log reading and track export.

Example:
    >>> from perception_tracker.io import load_detections, TrackExporter
    >>> frames = load_detections("detections.json")
    >>> exporter = TrackExporter(class_map=["object"])
"""

from .detections import (
    FrameDetections,
    load_detections,
)
from .export import (
    TrackExporter,
    TrackEntry,
    FrameEntry,
)

__all__ = [
    # Detection input
    "FrameDetections",
    "load_detections",
    # Export
    "TrackExporter",
    "TrackEntry",
    "FrameEntry",
]
