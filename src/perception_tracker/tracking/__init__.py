"""
Tracking module for Perception Tracker.

This module provides Kalman-filter motion models, gated detection-to-track
association, the per-class Tracker and the multi-class TrackingFacade.

Example:
    >>> from perception_tracker.tracking import TrackingFacade
    >>> facade = TrackingFacade()
    >>> result = facade.track(detections_per_class, dt=0.033)
"""

from .kalman import BaseKalmanFilter, BaseExtendedKalmanFilter
from .models import (
    KalmanFilter2D,
    KalmanFilter2DHeading,
    KalmanFilter3D,
    KalmanFilter3DFixed,
    MotionModel,
    create_filter,
    filter_factory,
)
from .association import (
    compute_distance_matrix,
    compute_gate_mask,
    greedy_assignment,
    linear_assignment,
    associate_detections_to_tracks,
)
from .tracker import Tracker, Track, TrackState, TrackingResult
from .facade import TrackingFacade

__all__ = [
    # Kalman filters
    "BaseKalmanFilter",
    "BaseExtendedKalmanFilter",
    "KalmanFilter2D",
    "KalmanFilter2DHeading",
    "KalmanFilter3D",
    "KalmanFilter3DFixed",
    "MotionModel",
    "create_filter",
    "filter_factory",
    # Association
    "compute_distance_matrix",
    "compute_gate_mask",
    "greedy_assignment",
    "linear_assignment",
    "associate_detections_to_tracks",
    # Tracking
    "Tracker",
    "Track",
    "TrackState",
    "TrackingResult",
    "TrackingFacade",
]
