"""
Multi-class tracking facade.

One Tracker runs per object class. The facade converts raw detections into
the vectors the trackers consume, rejecting invalid or badly sized boxes
before they reach association, and gathers the per-class track states.
"""

import logging
from typing import List, Optional, Sequence, Union

import numpy as np

from .models import MotionModel, filter_factory
from .tracker import Tracker, TrackingResult
from ..config import PipelineConfig, get_default_config
from ..detection import Detection, DetectionResult

logger = logging.getLogger(__name__)

DetectionsPerClass = Sequence[Sequence[Detection]]


class TrackingFacade:
    """
    Track every object class with its own Tracker.

    Args:
        config: Pipeline configuration. Uses defaults if None.

    Example:
        >>> facade = TrackingFacade()
        >>> detections = [[Detection(x=100, y=100, w=20, h=20)]]
        >>> result = facade.track(detections)
        >>> for class_id, track_id, state in result.get_all_tracks():
        ...     print(f"{class_id}/{track_id}: {state[:2]}")
    """

    def __init__(self, config: Optional[PipelineConfig] = None):
        self._config = config or get_default_config()
        self._config.validate()

        self._model = MotionModel(self._config.tracker.motion_model)
        self._frame_idx = 0

        kalman = self._config.kalman
        make_filter = filter_factory(
            self._model,
            dt=self._config.tracker.dt,
            use_dim=kalman.use_dim,
            use_vel=kalman.use_vel,
            process_noise=kalman.process_noise,
            measurement_noise=kalman.measurement_noise,
            initial_uncertainty=kalman.initial_uncertainty,
        )

        self._trackers: List[Tracker] = [
            Tracker(
                make_filter,
                self._config.tracker,
                class_id=class_id,
                class_name=class_name
            )
            for class_id, class_name in enumerate(self._config.class_map)
        ]

        logger.info(
            f"Initialized TrackingFacade ({self._model.value}, "
            f"{len(self._trackers)} classes: {self._config.class_map})"
        )

    def _admit(self, det: Detection) -> bool:
        """Admission filter applied before association."""
        admission = self._config.admission
        if not det.valid:
            return False
        if det.confidence < admission.min_confidence:
            return False
        if not admission.min_bbox_width <= det.w <= admission.max_bbox_width:
            return False
        if not admission.min_bbox_height <= det.h <= admission.max_bbox_height:
            return False
        return True

    def _to_vector(self, det: Detection) -> np.ndarray:
        if self._model.is_3d:
            z = np.nan if det.z is None else det.z
            depth = np.nan if det.depth is None else det.depth
            return np.array([det.x, det.y, z, det.w, det.h, depth],
                            dtype=np.float64)
        return np.array([det.x, det.y, det.w, det.h], dtype=np.float64)

    def cast2states(
        self,
        detections: DetectionsPerClass
    ) -> List[List[np.ndarray]]:
        """
        Convert per-class detections into tracker input vectors.

        Layout is [x, y, w, h] for planar models and [x, y, z, w, h, d] for
        volumetric ones, with a missing z or depth cast to NaN. Rejected
        detections are dropped silently.

        Args:
            detections: One list of detections per class

        Returns:
            One list of vectors per class
        """
        states = []
        for class_dets in detections:
            vectors = [self._to_vector(d) for d in class_dets if self._admit(d)]
            states.append(vectors)

        rejected = sum(len(c) for c in detections) - sum(len(s) for s in states)
        if rejected:
            logger.debug(f"Admission filter rejected {rejected} detections")
        return states

    def track(
        self,
        detections: Union[DetectionsPerClass, DetectionResult],
        dt: Optional[float] = None,
        frame_idx: Optional[int] = None
    ) -> TrackingResult:
        """
        Update every class tracker with one frame of detections.

        Args:
            detections: One list of detections per class, or a flat
                DetectionResult that is grouped by class id
            dt: Measured time step. Uses the configured dt if None.
            frame_idx: Frame index reported in the result. Counts frames
                if None.

        Returns:
            TrackingResult with the states of all live tracks
        """
        if isinstance(detections, DetectionResult):
            detections = detections.group_by_class(self.num_classes)
        if len(detections) > self.num_classes:
            logger.warning(
                f"Got detections for {len(detections)} classes, "
                f"tracking the first {self.num_classes}"
            )

        dt = self._config.tracker.dt if dt is None else dt
        if frame_idx is None:
            frame_idx = self._frame_idx
        self._frame_idx = frame_idx + 1

        states = self.cast2states(detections)
        states.extend([] for _ in range(self.num_classes - len(states)))

        tracks = {}
        for tracker, class_states in zip(self._trackers, states):
            tracks[tracker.class_id] = tracker.update(dt, class_states)

        return TrackingResult(tracks=tracks, frame_idx=frame_idx)

    def reset(self) -> None:
        """Reset every class tracker."""
        for tracker in self._trackers:
            tracker.reset()
        self._frame_idx = 0

    def get_track_count(self) -> dict:
        """Get number of live tracks per class."""
        return {t.class_id: len(t) for t in self._trackers}

    @property
    def trackers(self) -> List[Tracker]:
        return list(self._trackers)

    @property
    def motion_model(self) -> MotionModel:
        return self._model

    @property
    def num_classes(self) -> int:
        return len(self._trackers)

    @property
    def class_map(self) -> List[str]:
        return list(self._config.class_map)
