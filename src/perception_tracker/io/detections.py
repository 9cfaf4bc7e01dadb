"""
Recorded detection input.

This module reads detection logs, i.e. detector output recorded frame by
frame, so sequences can be replayed through the tracker offline.

File format (JSON):
    {
      "frames": [
        {"frame_idx": 0, "dt": 0.033,
         "detections": [{"x": 100, "y": 100, "w": 20, "h": 20,
                         "class_id": 0, "confidence": 0.9}]}
      ]
    }

``frame_idx``, ``dt`` and every detection field other than x, y, w, h are
optional.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

from ..detection import Detection, DetectionResult

logger = logging.getLogger(__name__)

_DETECTION_FIELDS = (
    "x", "y", "w", "h", "class_id", "confidence", "valid", "z", "depth")


@dataclass
class FrameDetections:
    """Detections recorded for one frame."""
    frame_idx: int
    detections: DetectionResult
    dt: Optional[float] = None

    def __str__(self) -> str:
        return f"Frame({self.frame_idx}: {len(self.detections)} detections)"


def _parse_detection(data: dict) -> Detection:
    missing = [k for k in ("x", "y", "w", "h") if k not in data]
    if missing:
        raise ValueError(f"Detection is missing fields: {missing}")
    return Detection(**{k: v for k, v in data.items() if k in _DETECTION_FIELDS})


def load_detections(path: Union[str, Path]) -> List[FrameDetections]:
    """
    Load a detection log.

    Args:
        path: Path to the JSON detection log

    Returns:
        List of FrameDetections in file order
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Detection file not found: {path}")

    with open(path, 'r') as f:
        data = json.load(f)

    frames = []
    for i, frame in enumerate(data.get("frames", [])):
        detections = [_parse_detection(d) for d in frame.get("detections", [])]
        frames.append(FrameDetections(
            frame_idx=frame.get("frame_idx", i),
            detections=DetectionResult(detections=detections),
            dt=frame.get("dt"),
        ))

    logger.info(f"Loaded {len(frames)} frames from {path}")
    return frames
