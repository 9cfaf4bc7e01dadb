"""
Centralized configuration management for Perception Tracker.

This module provides typed, validated configuration using dataclasses.
Configuration can be loaded from YAML files or constructed programmatically.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional
import yaml


# =============================================================================
# Supported Options
# =============================================================================

MOTION_MODELS = ("2d", "2d_heading", "3d", "3d_fixed")
ASSIGNMENT_METHODS = ("greedy", "hungarian")

# State dimension of each motion model, used to validate noise vectors
STATE_DIMENSIONS = {
    "2d": 6,
    "2d_heading": 8,
    "3d": 9,
    "3d_fixed": 5,
}


class ConfigurationError(ValueError):
    """Raised when a configuration cannot produce a working tracker."""


# =============================================================================
# Configuration Dataclasses
# =============================================================================

@dataclass
class KalmanConfig:
    """Configuration for the per-track Kalman filters."""

    # Per-state-component noise vectors, None selects the model defaults
    process_noise: Optional[List[float]] = None  # Q
    measurement_noise: Optional[List[float]] = None  # R

    use_dim: bool = True  # Observe width/height (and depth)
    use_vel: bool = False  # Observe velocity
    initial_uncertainty: float = 10.0


@dataclass
class TrackerConfig:
    """Configuration for the per-class multi-object tracker."""

    motion_model: str = "2d"
    dt: float = 0.02  # Default time step in seconds
    max_frames_to_skip: int = 15  # Missed frames before a track is deleted

    # Association gates
    dist_threshold: float = 150.0
    center_threshold: float = 80.0
    area_threshold: float = 3.0
    body_ratio: float = 0.5

    assignment: str = "greedy"  # "greedy" or "hungarian"
    reseed_after: Optional[int] = None  # Coasted frames before re-seeding


@dataclass
class AdmissionConfig:
    """Bounding box admission filter applied before tracking."""

    min_bbox_width: float = 10.0
    min_bbox_height: float = 10.0
    max_bbox_width: float = 400.0
    max_bbox_height: float = 300.0
    min_confidence: float = 0.0


@dataclass
class PipelineConfig:
    """Master configuration combining all sub-configs."""

    kalman: KalmanConfig = field(default_factory=KalmanConfig)
    tracker: TrackerConfig = field(default_factory=TrackerConfig)
    admission: AdmissionConfig = field(default_factory=AdmissionConfig)
    class_map: List[str] = field(default_factory=lambda: ["object"])

    # Runtime behaviour
    use_wall_clock_dt: bool = False
    frame_deadline_ms: Optional[float] = None

    # Logging configuration
    log_level: str = "INFO"
    log_file: Optional[Path] = None

    @property
    def num_classes(self) -> int:
        """Number of object classes tracked independently."""
        return len(self.class_map)

    def validate(self) -> None:
        """
        Check the configuration for values no tracker can work with.

        Raises:
            ConfigurationError: If any value is invalid
        """
        tracker = self.tracker
        admission = self.admission

        if not self.class_map:
            raise ConfigurationError("At least one object class is required")
        if tracker.motion_model not in MOTION_MODELS:
            raise ConfigurationError(
                f"Unknown motion model: {tracker.motion_model}. "
                f"Supported: {MOTION_MODELS}"
            )
        if tracker.assignment not in ASSIGNMENT_METHODS:
            raise ConfigurationError(
                f"Unknown assignment method: {tracker.assignment}. "
                f"Supported: {ASSIGNMENT_METHODS}"
            )
        if tracker.dt <= 0:
            raise ConfigurationError(f"dt must be positive, got {tracker.dt}")
        if tracker.max_frames_to_skip < 0:
            raise ConfigurationError("max_frames_to_skip must be >= 0")
        for name in ("dist_threshold", "center_threshold",
                     "area_threshold", "body_ratio"):
            if getattr(tracker, name) <= 0:
                raise ConfigurationError(f"{name} must be positive")
        if tracker.reseed_after is not None and tracker.reseed_after < 1:
            raise ConfigurationError("reseed_after must be >= 1 when set")

        if admission.min_bbox_width > admission.max_bbox_width:
            raise ConfigurationError("min_bbox_width exceeds max_bbox_width")
        if admission.min_bbox_height > admission.max_bbox_height:
            raise ConfigurationError("min_bbox_height exceeds max_bbox_height")

        dim_x = STATE_DIMENSIONS[tracker.motion_model]
        for name in ("process_noise", "measurement_noise"):
            noise = getattr(self.kalman, name)
            if noise is not None and len(noise) != dim_x:
                raise ConfigurationError(
                    f"{name} has {len(noise)} components, motion model "
                    f"'{tracker.motion_model}' needs {dim_x}"
                )
        if self.kalman.initial_uncertainty <= 0:
            raise ConfigurationError("initial_uncertainty must be positive")

    @classmethod
    def from_yaml(cls, path: Path) -> "PipelineConfig":
        """Load configuration from a YAML file."""
        with open(path, 'r') as f:
            data = yaml.safe_load(f) or {}

        return cls(
            kalman=KalmanConfig(**data.get('kalman', {})),
            tracker=TrackerConfig(**data.get('tracker', {})),
            admission=AdmissionConfig(**data.get('admission', {})),
            class_map=list(data.get('class_map', ["object"])),
            use_wall_clock_dt=data.get('use_wall_clock_dt', False),
            frame_deadline_ms=data.get('frame_deadline_ms'),
            log_level=data.get('log_level', 'INFO'),
            log_file=Path(data['log_file']) if data.get('log_file') else None,
        )

    def to_dict(self) -> dict:
        """Convert to a plain dictionary suitable for YAML."""
        return {
            'kalman': {
                'process_noise': self.kalman.process_noise,
                'measurement_noise': self.kalman.measurement_noise,
                'use_dim': self.kalman.use_dim,
                'use_vel': self.kalman.use_vel,
                'initial_uncertainty': self.kalman.initial_uncertainty,
            },
            'tracker': {
                'motion_model': self.tracker.motion_model,
                'dt': self.tracker.dt,
                'max_frames_to_skip': self.tracker.max_frames_to_skip,
                'dist_threshold': self.tracker.dist_threshold,
                'center_threshold': self.tracker.center_threshold,
                'area_threshold': self.tracker.area_threshold,
                'body_ratio': self.tracker.body_ratio,
                'assignment': self.tracker.assignment,
                'reseed_after': self.tracker.reseed_after,
            },
            'admission': {
                'min_bbox_width': self.admission.min_bbox_width,
                'min_bbox_height': self.admission.min_bbox_height,
                'max_bbox_width': self.admission.max_bbox_width,
                'max_bbox_height': self.admission.max_bbox_height,
                'min_confidence': self.admission.min_confidence,
            },
            'class_map': list(self.class_map),
            'use_wall_clock_dt': self.use_wall_clock_dt,
            'frame_deadline_ms': self.frame_deadline_ms,
            'log_level': self.log_level,
            'log_file': str(self.log_file) if self.log_file else None,
        }

    def to_yaml(self, path: Path) -> None:
        """Save configuration to a YAML file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)


# =============================================================================
# Default Configuration Factory
# =============================================================================

def get_default_config() -> PipelineConfig:
    """Create default configuration suitable for most use cases."""
    return PipelineConfig()
