"""
Perception Tracker - Multi-Object State Estimation and Tracking.

Kalman-filter motion models and a per-class multi-object tracker for
robotic perception pipelines. Detections come in as bounding boxes (with
an optional 3D position), tracks go out as stable identity -> state maps.

Example:
    >>> from perception_tracker import TrackingFacade, Detection
    >>> facade = TrackingFacade()
    >>> result = facade.track([[Detection(x=100, y=100, w=20, h=20)]])

For replaying a recorded detection log:
    >>> from perception_tracker import run_pipeline
    >>> results = run_pipeline("detections.json", output_path="tracks.json")
"""

__version__ = "0.1.0"

from .config import (
    PipelineConfig,
    KalmanConfig,
    TrackerConfig,
    AdmissionConfig,
    ConfigurationError,
    get_default_config,
)
from .detection import Detection, DetectionResult, BaseDetector, BaseLocator
from .tracking import Tracker, TrackingFacade, TrackingResult, MotionModel
from .pipeline import DetectionTrackingPipeline, run_pipeline

__all__ = [
    # Version info
    "__version__",
    # Configuration
    "PipelineConfig",
    "KalmanConfig",
    "TrackerConfig",
    "AdmissionConfig",
    "ConfigurationError",
    "get_default_config",
    # Detection
    "Detection",
    "DetectionResult",
    "BaseDetector",
    "BaseLocator",
    # Tracking
    "Tracker",
    "TrackingFacade",
    "TrackingResult",
    "MotionModel",
    # Pipeline
    "DetectionTrackingPipeline",
    "run_pipeline",
]
