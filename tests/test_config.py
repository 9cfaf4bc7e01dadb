"""
Unit tests for configuration module.
"""

import tempfile
from pathlib import Path

import pytest

from perception_tracker.config import (
    AdmissionConfig,
    ConfigurationError,
    KalmanConfig,
    TrackerConfig,
    PipelineConfig,
    STATE_DIMENSIONS,
    get_default_config,
)


class TestKalmanConfig:
    """Tests for KalmanConfig."""

    def test_default_values(self):
        config = KalmanConfig()
        assert config.process_noise is None
        assert config.measurement_noise is None
        assert config.use_dim is True
        assert config.use_vel is False


class TestTrackerConfig:
    """Tests for TrackerConfig."""

    def test_default_values(self):
        config = TrackerConfig()
        assert config.motion_model == "2d"
        assert config.dt == 0.02
        assert config.max_frames_to_skip == 15
        assert config.dist_threshold == 150
        assert config.center_threshold == 80
        assert config.area_threshold == 3
        assert config.body_ratio == 0.5
        assert config.assignment == "greedy"
        assert config.reseed_after is None


class TestAdmissionConfig:
    """Tests for AdmissionConfig."""

    def test_default_bounds(self):
        config = AdmissionConfig()
        assert config.max_bbox_width == 400
        assert config.max_bbox_height == 300
        assert config.min_bbox_width <= config.max_bbox_width


class TestPipelineConfig:
    """Tests for PipelineConfig."""

    def test_nested_configs(self):
        config = get_default_config()
        assert isinstance(config.kalman, KalmanConfig)
        assert isinstance(config.tracker, TrackerConfig)
        assert isinstance(config.admission, AdmissionConfig)
        assert config.num_classes == 1

    def test_default_config_is_valid(self):
        get_default_config().validate()

    def test_state_dimensions(self):
        assert STATE_DIMENSIONS == {"2d": 6, "2d_heading": 8, "3d": 9, "3d_fixed": 5}

    def test_yaml_roundtrip(self):
        """Test saving and loading config from YAML."""
        config = get_default_config()
        config.tracker.motion_model = "3d"
        config.tracker.max_frames_to_skip = 10
        config.kalman.process_noise = [1.0] * 9
        config.class_map = ["drone", "person"]
        config.frame_deadline_ms = 20.0

        with tempfile.TemporaryDirectory() as tmpdir:
            yaml_path = Path(tmpdir) / "config.yaml"

            # Save
            config.to_yaml(yaml_path)
            assert yaml_path.exists()

            # Load
            loaded = PipelineConfig.from_yaml(yaml_path)
            assert loaded.tracker.motion_model == "3d"
            assert loaded.tracker.max_frames_to_skip == 10
            assert loaded.kalman.process_noise == [1.0] * 9
            assert loaded.class_map == ["drone", "person"]
            assert loaded.frame_deadline_ms == 20.0
            loaded.validate()

    def test_partial_yaml(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            yaml_path = Path(tmpdir) / "config.yaml"
            yaml_path.write_text("tracker:\n  dist_threshold: 50\n")

            loaded = PipelineConfig.from_yaml(yaml_path)
            assert loaded.tracker.dist_threshold == 50
            assert loaded.tracker.max_frames_to_skip == 15
            assert loaded.class_map == ["object"]


class TestValidation:
    """Tests for PipelineConfig.validate."""

    @pytest.mark.parametrize("config", [
        PipelineConfig(class_map=[]),
        PipelineConfig(tracker=TrackerConfig(motion_model="polar")),
        PipelineConfig(tracker=TrackerConfig(assignment="auction")),
        PipelineConfig(tracker=TrackerConfig(dt=0)),
        PipelineConfig(tracker=TrackerConfig(max_frames_to_skip=-1)),
        PipelineConfig(tracker=TrackerConfig(dist_threshold=0)),
        PipelineConfig(tracker=TrackerConfig(reseed_after=0)),
        PipelineConfig(admission=AdmissionConfig(min_bbox_width=500)),
        PipelineConfig(kalman=KalmanConfig(measurement_noise=[1.0] * 9)),
        PipelineConfig(kalman=KalmanConfig(initial_uncertainty=0)),
    ])
    def test_invalid(self, config):
        with pytest.raises(ConfigurationError):
            config.validate()

    def test_noise_matching_motion_model(self):
        config = PipelineConfig(
            tracker=TrackerConfig(motion_model="2d_heading"),
            kalman=KalmanConfig(process_noise=[1.0] * 8),
        )
        config.validate()

    def test_configuration_error_is_value_error(self):
        assert issubclass(ConfigurationError, ValueError)
