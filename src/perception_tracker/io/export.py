"""
Export utilities for tracking results.

This module serializes per-frame track states to JSON for downstream
consumers (publishers, visualizers, offline evaluation).
"""

import json
import logging
from dataclasses import dataclass, asdict, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..tracking import TrackingResult

logger = logging.getLogger(__name__)


@dataclass
class TrackEntry:
    """State of one track in one frame."""
    class_id: int
    class_name: str
    track_id: int
    state: List[float]


@dataclass
class FrameEntry:
    """All track states of one frame."""
    frame_idx: int
    tracks: List[TrackEntry] = field(default_factory=list)


class TrackExporter:
    """
    Export tracking results to JSON.

    Example:
        >>> exporter = TrackExporter(class_map=["drone"])
        >>> exporter.add_tracking_result(result)
        >>> exporter.save("tracks.json")
    """

    def __init__(self, class_map: Optional[List[str]] = None):
        """
        Initialize the exporter.

        Args:
            class_map: Class names indexed by class id
        """
        self._class_map = list(class_map or [])
        self._frames: List[FrameEntry] = []

    def _class_name(self, class_id: int) -> str:
        if 0 <= class_id < len(self._class_map):
            return self._class_map[class_id]
        return f"class_{class_id}"

    def add_tracking_result(self, result: TrackingResult) -> None:
        """Add all tracks from a TrackingResult."""
        frame = FrameEntry(frame_idx=result.frame_idx)
        for class_id, track_id, state in result.get_all_tracks():
            frame.tracks.append(TrackEntry(
                class_id=int(class_id),
                class_name=self._class_name(class_id),
                track_id=int(track_id),
                state=[float(v) for v in state],
            ))
        self._frames.append(frame)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        return {
            "classes": list(self._class_map),
            "frames": [asdict(frame) for frame in self._frames],
        }

    def save(self, path: Union[str, Path], indent: int = 2) -> None:
        """
        Save to JSON file.

        Args:
            path: Output file path
            indent: JSON indentation level
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=indent)

        n_tracks = sum(len(frame.tracks) for frame in self._frames)
        logger.info(
            f"Saved tracks: {path} "
            f"({len(self._frames)} frames, {n_tracks} track states)"
        )

    def reset(self) -> None:
        """Clear all frames."""
        self._frames.clear()

    def __len__(self) -> int:
        return len(self._frames)
