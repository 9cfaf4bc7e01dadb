"""
Main pipeline for detection, localization and tracking.

This module composes the optional detector and locator stages with the
tracking facade, and replays recorded detection logs through the tracker.
"""

import logging
import time
from pathlib import Path
from typing import Iterable, List, Optional, Union

import numpy as np
from tqdm import tqdm

from .config import PipelineConfig, get_default_config
from .detection import BaseDetector, BaseLocator, DetectionResult
from .tracking import TrackingFacade, TrackingResult
from .io import FrameDetections, TrackExporter, load_detections

logger = logging.getLogger(__name__)


class DetectionTrackingPipeline:
    """
    Frame-driven pipeline: detect, locate, then track.

    Each stage is optional. Without a detector, detections are passed in
    directly; without a locator (or without a depth image), detections keep
    whatever 3D position they carry.

    Args:
        config: Pipeline configuration. Uses defaults if None.
        detector: Stage turning an image into detections
        locator: Stage adding a 3D position to detections from depth

    Example:
        >>> pipeline = DetectionTrackingPipeline(detector=my_detector)
        >>> result = pipeline.process_frame(rgb_frame)
        >>>
        >>> # Or replay recorded detections
        >>> results = pipeline.process_detections(load_detections("log.json"))
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        detector: Optional[BaseDetector] = None,
        locator: Optional[BaseLocator] = None
    ):
        """Initialize the pipeline with configuration and stages."""
        self._config = config or get_default_config()
        self._setup_logging()

        self._detector = detector
        self._locator = locator
        self._tracking: Optional[TrackingFacade] = None
        self._last_frame_time: Optional[float] = None

    def _setup_logging(self) -> None:
        """Configure logging based on config."""
        logging.basicConfig(
            level=getattr(logging, self._config.log_level.upper()),
            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            handlers=[
                logging.StreamHandler(),
                *(
                    [logging.FileHandler(self._config.log_file)]
                    if self._config.log_file else []
                )
            ]
        )

    @property
    def tracking(self) -> TrackingFacade:
        """Get or create the tracking facade (lazy initialization)."""
        if self._tracking is None:
            logger.info("Initializing tracking...")
            self._tracking = TrackingFacade(self._config)
        return self._tracking

    @property
    def detector(self) -> Optional[BaseDetector]:
        return self._detector

    @property
    def locator(self) -> Optional[BaseLocator]:
        return self._locator

    def _frame_dt(self, dt: Optional[float]) -> Optional[float]:
        """Pick the time step: explicit, measured wall-clock, or default."""
        now = time.monotonic()
        previous, self._last_frame_time = self._last_frame_time, now
        if dt is not None:
            return dt
        if self._config.use_wall_clock_dt and previous is not None:
            elapsed = now - previous
            if elapsed > 0:
                return elapsed
        return None

    def process_frame(
        self,
        frame: Optional[np.ndarray] = None,
        depth_image: Optional[np.ndarray] = None,
        detections: Optional[DetectionResult] = None,
        dt: Optional[float] = None,
        frame_idx: Optional[int] = None
    ) -> TrackingResult:
        """
        Run all configured stages on one frame.

        Args:
            frame: RGB image, required when detections are not given
            depth_image: Depth map for the locator stage
            detections: Precomputed detections, skips the detector
            dt: Time step override in seconds
            frame_idx: Frame index reported in the result

        Returns:
            TrackingResult for this frame
        """
        start = time.perf_counter()
        dt = self._frame_dt(dt)

        if detections is None:
            if self._detector is None:
                raise ValueError("No detector configured and no detections given")
            if frame is None:
                raise ValueError("A frame is required to run the detector")
            detections = self._detector.detect(frame)

        if self._locator is not None and depth_image is not None:
            detections = self._locator.locate(depth_image, detections)

        result = self.tracking.track(detections, dt=dt, frame_idx=frame_idx)

        elapsed_ms = (time.perf_counter() - start) * 1000.0
        logger.debug(
            f"Frame {result.frame_idx}: {len(detections)} detections, "
            f"{result.num_tracks} tracks in {elapsed_ms:.2f} ms"
        )
        deadline = self._config.frame_deadline_ms
        if deadline is not None and elapsed_ms > deadline:
            logger.warning(
                f"Frame {result.frame_idx} took {elapsed_ms:.2f} ms "
                f"(deadline {deadline:.2f} ms)"
            )

        return result

    def process_detections(
        self,
        frames: Iterable[FrameDetections],
        show_progress: bool = True
    ) -> List[TrackingResult]:
        """
        Replay recorded detections through the tracker.

        Args:
            frames: Recorded detections, one entry per frame
            show_progress: Whether to show a progress bar

        Returns:
            List of TrackingResult, one per frame
        """
        # Reset tracker for new sequence
        self.tracking.reset()

        frames = list(frames)
        iterator = tqdm(frames, desc="Tracking") if show_progress else frames

        results = []
        for frame in iterator:
            result = self.tracking.track(
                frame.detections,
                dt=frame.dt,
                frame_idx=frame.frame_idx
            )
            results.append(result)

        track_counts = self.tracking.get_track_count()
        logger.info(
            f"Tracking complete: {len(results)} frames, "
            f"{sum(track_counts.values())} live tracks"
        )
        return results

    def reset(self) -> None:
        """Reset tracking state and the wall clock."""
        self.tracking.reset()
        self._last_frame_time = None


def run_pipeline(
    input_path: Union[str, Path],
    output_path: Optional[Union[str, Path]] = None,
    config: Optional[PipelineConfig] = None,
    show_progress: bool = True
) -> List[TrackingResult]:
    """
    Convenience function to track a recorded detection log.

    Args:
        input_path: Detection log (JSON)
        output_path: Where to write the track export. Skipped if None.
        config: Pipeline configuration
        show_progress: Whether to show a progress bar

    Returns:
        List of TrackingResult, one per frame
    """
    pipeline = DetectionTrackingPipeline(config)
    frames = load_detections(input_path)
    results = pipeline.process_detections(frames, show_progress=show_progress)

    if output_path is not None:
        exporter = TrackExporter(class_map=pipeline.tracking.class_map)
        for result in results:
            exporter.add_tracking_result(result)
        exporter.save(output_path)

    return results
