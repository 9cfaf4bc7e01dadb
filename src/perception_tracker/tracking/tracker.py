"""
Per-class multi-object tracker.

This module owns a bank of Kalman filters for one object class. Every
frame, tracks are predicted, detections are associated to them through
gated nearest-neighbour association, matched tracks are corrected, and the
track lifecycle (creation, coasting, deletion) is updated.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from .kalman import BaseKalmanFilter
from .association import associate_detections_to_tracks
from ..config import ConfigurationError, TrackerConfig

logger = logging.getLogger(__name__)


class TrackState(Enum):
    """Lifecycle state of a track."""
    ACTIVE = auto()    # Created or corrected this frame
    COASTING = auto()  # Predicted only, miss counter in 1..max
    DELETED = auto()   # Terminal


@dataclass
class Track:
    """
    Represents a tracked object.

    Attributes:
        track_id: Unique identifier within the owning tracker
        class_id: Class of the tracked object
        kalman: Filter estimating the object state
        misses: Consecutive frames without a correction
        state: Current lifecycle state
        hits: Number of successful corrections
        age: Number of frames the track has been predicted
    """
    track_id: int
    class_id: int
    kalman: BaseKalmanFilter
    misses: int = 0
    state: TrackState = TrackState.ACTIVE
    hits: int = 1
    age: int = 0
    last_position: Optional[np.ndarray] = field(default=None, repr=False)

    @property
    def position(self) -> np.ndarray:
        return self.kalman.position

    @property
    def box(self) -> np.ndarray:
        """Planar box [cx, cy, w, h] used by the association gates."""
        position = self.kalman.position
        size = self.kalman.size
        return np.array([position[0], position[1], size[0], size[1]])


@dataclass
class TrackingResult:
    """
    Container for tracking results from a single frame.

    Attributes:
        tracks: Dictionary mapping class_id to {track_id: state vector}
        frame_idx: Index of the processed frame
    """
    tracks: Dict[int, Dict[int, np.ndarray]]
    frame_idx: int

    def get_all_tracks(self) -> List[Tuple[int, int, np.ndarray]]:
        """
        Get all tracks as flat list.

        Returns:
            List of (class_id, track_id, state) tuples
        """
        result = []
        for class_id, states in self.tracks.items():
            for track_id, state in sorted(states.items()):
                result.append((class_id, track_id, state))
        return result

    @property
    def num_tracks(self) -> int:
        return sum(len(states) for states in self.tracks.values())


class Tracker:
    """
    Multi-object tracker for a single object class.

    Detections are given as vectors laid out as the filter position
    followed by the size (e.g. [x, y, w, h] or [x, y, z, w, h, d]).
    Non-finite components mark a partial detection: it can still claim a
    track, but the track is only predicted that frame if a component its
    filter measures is missing. Components the filter does not use (e.g.
    depth for a model without depth, or size with ``use_dim`` off) are
    ignored.

    Args:
        filter_factory: Callable returning a new, uninitialized filter
        config: Tracker configuration
        class_id: Class handled by this tracker
        class_name: Human readable class name for logging

    Example:
        >>> tracker = Tracker(filter_factory("2d"), TrackerConfig())
        >>> tracker.update(0.02, [np.array([100, 100, 20, 20])])
        >>> for track_id, state in tracker.get_states().items():
        ...     print(f"Track {track_id}: {state}")
    """

    def __init__(
        self,
        filter_factory: Callable[[], BaseKalmanFilter],
        config: Optional[TrackerConfig] = None,
        class_id: int = 0,
        class_name: Optional[str] = None
    ):
        self._config = config or TrackerConfig()
        if self._config.dt <= 0:
            raise ConfigurationError(
                f"dt must be positive, got {self._config.dt}")
        if self._config.max_frames_to_skip < 0:
            raise ConfigurationError("max_frames_to_skip must be >= 0")

        self._filter_factory = filter_factory
        self._class_id = class_id
        self._class_name = class_name or f"class_{class_id}"
        self._tracks: Dict[int, Track] = {}
        self._next_id = 0

        # Building one filter up front surfaces configuration errors now
        prototype = filter_factory()
        self._position_dims = len(prototype.position_indices)
        self._size_dims = len(prototype.size_indices)

        logger.info(
            f"Initialized Tracker for {self._class_name} "
            f"({type(prototype).__name__}, "
            f"max_frames_to_skip={self._config.max_frames_to_skip}, "
            f"assignment={self._config.assignment})"
        )

    def _get_next_id(self) -> int:
        """Allocate the next track identity. Identities are never reused."""
        track_id = self._next_id
        self._next_id += 1
        return track_id

    def _split(self, detection: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Split a detection vector into position and size."""
        position = detection[:self._position_dims]
        size = detection[self._position_dims:]
        return position, size

    def _can_seed(self, detection: np.ndarray) -> bool:
        """True if every component a new filter is seeded from is finite."""
        position, size = self._split(detection)
        return bool(
            np.all(np.isfinite(position))
            and np.all(np.isfinite(size[:self._size_dims]))
        )

    def _create_track(self, detection: np.ndarray) -> Track:
        """Create a new track from a detection."""
        position, size = self._split(detection)
        kalman = self._filter_factory()
        kalman.initialize(position, size)

        track = Track(
            track_id=self._get_next_id(),
            class_id=self._class_id,
            kalman=kalman,
            last_position=kalman.position
        )
        logger.debug(f"Created track {track.track_id} for {self._class_name}")
        return track

    def _delete_track(self, track: Track, reason: str) -> None:
        track.state = TrackState.DELETED
        del self._tracks[track.track_id]
        logger.debug(
            f"Deleted track {track.track_id} of {self._class_name}: {reason}")

    def _measurement(
        self,
        track: Track,
        detection: np.ndarray,
        dt: float
    ) -> np.ndarray:
        """Build the measurement vector for the track's observation model."""
        position, size = self._split(detection)
        velocity = None
        if track.kalman.use_vel:
            velocity = (position - track.last_position) / dt
        return track.kalman.measurement_from(position, size, velocity)

    def _mark_missed(self, track: Track) -> None:
        track.misses += 1
        track.state = TrackState.COASTING

    def update(
        self,
        dt: float,
        detections: Sequence[np.ndarray]
    ) -> Dict[int, np.ndarray]:
        """
        Run one full tracking cycle.

        Args:
            dt: Time elapsed since the previous frame, in seconds
            detections: Detection vectors for this class

        Returns:
            Mapping of track_id to state vector after the update
        """
        if dt <= 0:
            raise ValueError(f"dt must be positive, got {dt}")

        detections = [np.asarray(d, dtype=np.float64).ravel() for d in detections]

        # Predict all existing tracks
        for track in list(self._tracks.values()):
            track.last_position = track.kalman.position
            track.kalman.predict(dt)
            track.age += 1
            if track.kalman.diverged:
                self._delete_track(track, "filter diverged during prediction")

        # Associate in increasing identity order so ties favour older tracks
        track_ids = sorted(self._tracks)
        tracks = [self._tracks[i] for i in track_ids]

        if tracks:
            track_positions = np.array([t.position for t in tracks])
            track_boxes = np.array([t.box for t in tracks])
        else:
            track_positions = np.empty((0, self._position_dims))
            track_boxes = np.empty((0, 4))

        if detections:
            det_positions = np.array([d[:self._position_dims] for d in detections])
            det_boxes = np.array([
                [d[0], d[1], d[self._position_dims], d[self._position_dims + 1]]
                for d in detections
            ])
        else:
            det_positions = np.empty((0, self._position_dims))
            det_boxes = np.empty((0, 4))

        matches, unmatched_tracks, unmatched_dets = associate_detections_to_tracks(
            track_positions=track_positions,
            track_boxes=track_boxes,
            det_positions=det_positions,
            det_boxes=det_boxes,
            dist_threshold=self._config.dist_threshold,
            center_threshold=self._config.center_threshold,
            area_threshold=self._config.area_threshold,
            body_ratio=self._config.body_ratio,
            method=self._config.assignment
        )

        # Update matched tracks
        for track_idx, det_idx in matches:
            track = tracks[track_idx]
            measurement = self._measurement(track, detections[det_idx], dt)

            if not np.all(np.isfinite(measurement)):
                logger.debug(
                    f"Track {track.track_id} matched a detection missing "
                    f"observed components, predicting only"
                )
                self._mark_missed(track)
                continue

            reseed_after = self._config.reseed_after
            if reseed_after is not None and track.misses >= reseed_after:
                track.kalman.reset_filter(measurement)
                logger.debug(
                    f"Re-seeded track {track.track_id} after "
                    f"{track.misses} missed frames"
                )
            else:
                track.kalman.correct(measurement)

            if track.kalman.diverged:
                self._delete_track(track, "filter diverged during correction")
                continue

            track.misses = 0
            track.hits += 1
            track.state = TrackState.ACTIVE

        for track_idx in unmatched_tracks:
            self._mark_missed(tracks[track_idx])

        # Delete tracks that exceeded the miss limit
        for track in tracks:
            if track.state is TrackState.DELETED:
                continue
            if track.misses > self._config.max_frames_to_skip:
                self._delete_track(
                    track, f"missed {track.misses} consecutive frames")

        # Create new tracks for unmatched detections
        for det_idx in unmatched_dets:
            detection = detections[det_idx]
            if not self._can_seed(detection):
                logger.debug("Dropped partial detection without a track")
                continue
            track = self._create_track(detection)
            if track.kalman.diverged:
                logger.warning(
                    f"Could not seed a track for {self._class_name} "
                    f"from {detection}"
                )
                continue
            self._tracks[track.track_id] = track

        return self.get_states()

    def get_states(self) -> Dict[int, np.ndarray]:
        """
        Current state of every live track, coasting tracks included.

        Returns:
            Mapping of track_id to state vector
        """
        states = {}
        for track_id in sorted(self._tracks):
            state = self._tracks[track_id].kalman.get_state()
            if np.all(np.isfinite(state)):
                states[track_id] = state
        return states

    def get_track(self, track_id: int) -> Optional[Track]:
        """Look up a live track by identity."""
        return self._tracks.get(track_id)

    @property
    def tracks(self) -> List[Track]:
        """Live tracks in increasing identity order."""
        return [self._tracks[i] for i in sorted(self._tracks)]

    @property
    def class_id(self) -> int:
        return self._class_id

    @property
    def class_name(self) -> str:
        return self._class_name

    def __len__(self) -> int:
        return len(self._tracks)

    def reset(self) -> None:
        """Drop all tracks and restart identities for a new sequence."""
        self._tracks.clear()
        self._next_id = 0
        logger.info(f"Tracker for {self._class_name} reset")
