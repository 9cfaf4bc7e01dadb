"""
Detection module for Perception Tracker.

This module defines the detection types consumed by the tracker and the
interfaces of the stages that produce them. Concrete detectors (neural
network inference) and locators (depth back-projection) live outside
this package and plug in through these interfaces.

Example:
    >>> from perception_tracker.detection import Detection, DetectionResult
    >>> result = DetectionResult([Detection(x=100, y=100, w=20, h=20)])
    >>> per_class = result.group_by_class(num_classes=1)
"""

from .base import BaseDetector, BaseLocator, Detection, DetectionResult

__all__ = [
    "BaseDetector",
    "BaseLocator",
    "Detection",
    "DetectionResult",
]
