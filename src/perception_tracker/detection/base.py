"""
Detection types and the interfaces of the stages that produce them.

Detectors turn an image into bounding boxes; locators add a 3D position to
each box from a depth image. Both are external to the tracking core, which
only consumes the resulting detections.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import List, Optional

import numpy as np


@dataclass
class Detection:
    """
    Represents a single object detection.

    Attributes:
        x: Bounding box center x
        y: Bounding box center y
        w: Bounding box width
        h: Bounding box height
        class_id: Index of the object class
        confidence: Detection confidence score [0, 1]
        valid: False for placeholder or rejected detections
        z: Optional 3D position along the third axis
        depth: Optional object depth (extent along the third axis)
    """
    x: float
    y: float
    w: float
    h: float
    class_id: int = 0
    confidence: float = 1.0
    valid: bool = True
    z: Optional[float] = None
    depth: Optional[float] = None


@dataclass
class DetectionResult:
    """
    Container for all detections in a single frame.

    Attributes:
        detections: List of Detection objects
        frame_shape: Original frame shape as (H, W, C), if known
    """
    detections: List[Detection]
    frame_shape: Optional[tuple] = None

    def __len__(self) -> int:
        return len(self.detections)

    def __iter__(self):
        return iter(self.detections)

    def group_by_class(self, num_classes: int) -> List[List[Detection]]:
        """
        Split the detections into one list per class.

        Detections whose class_id is outside [0, num_classes) are dropped.

        Args:
            num_classes: Number of classes

        Returns:
            List of length num_classes with the detections of each class
        """
        grouped: List[List[Detection]] = [[] for _ in range(num_classes)]
        for det in self.detections:
            if 0 <= det.class_id < num_classes:
                grouped[det.class_id].append(det)
        return grouped

    def with_positions(
        self,
        positions: List[Optional[float]],
        depths: List[Optional[float]]
    ) -> "DetectionResult":
        """Return a copy with the z position and depth of each detection set."""
        located = [
            replace(det, z=z, depth=d)
            for det, z, d in zip(self.detections, positions, depths)
        ]
        return DetectionResult(detections=located, frame_shape=self.frame_shape)


class BaseDetector(ABC):
    """
    Abstract base class for object detectors.

    All detector implementations must inherit from this class; the
    tracking pipeline only relies on ``detect``.
    """

    @abstractmethod
    def detect(self, frame: np.ndarray) -> DetectionResult:
        """
        Run detection on a single frame.

        Args:
            frame: RGB image as numpy array, shape (H, W, 3)

        Returns:
            DetectionResult containing all detections
        """
        pass

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Return the model name/identifier."""
        pass


class BaseLocator(ABC):
    """
    Abstract base class for 3D localization of detections.

    A locator back-projects each bounding box using a depth image and
    returns detections with ``z`` and ``depth`` filled in. Boxes whose
    depth cannot be measured keep ``None``.
    """

    @abstractmethod
    def locate(
        self,
        depth_image: np.ndarray,
        detections: DetectionResult
    ) -> DetectionResult:
        """
        Estimate the 3D position of every detection.

        Args:
            depth_image: Depth map aligned with the detection image
            detections: Detections found in the image

        Returns:
            Detections with z and depth set where available
        """
        pass
