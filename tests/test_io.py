"""
Unit tests for detection logs, track export and the command-line interface.
"""

import json

import numpy as np
import pytest

from perception_tracker.cli import main
from perception_tracker.io import TrackExporter, load_detections
from perception_tracker.pipeline import run_pipeline
from perception_tracker.tracking import TrackingResult


@pytest.fixture
def detection_log(tmp_path):
    frames = [
        {
            "frame_idx": i,
            "dt": 0.05,
            "detections": [
                {"x": 100 + i, "y": 100, "w": 20, "h": 20, "confidence": 0.9},
                {"x": 300, "y": 200 + i, "w": 30, "h": 40, "class_id": 1},
            ],
        }
        for i in range(5)
    ]
    path = tmp_path / "detections.json"
    path.write_text(json.dumps({"frames": frames}))
    return path


class TestLoadDetections:
    """Tests for reading detection logs."""

    def test_load(self, detection_log):
        frames = load_detections(detection_log)

        assert len(frames) == 5
        assert frames[2].frame_idx == 2
        assert frames[2].dt == 0.05
        assert len(frames[2].detections) == 2

        det = frames[2].detections.detections[1]
        assert (det.x, det.y, det.w, det.h) == (300, 202, 30, 40)
        assert det.class_id == 1
        assert det.z is None

    def test_defaults(self, tmp_path):
        path = tmp_path / "log.json"
        path.write_text(json.dumps({"frames": [
            {"detections": [{"x": 1, "y": 2, "w": 3, "h": 4}]},
            {},
        ]}))

        frames = load_detections(path)
        assert [f.frame_idx for f in frames] == [0, 1]
        assert frames[0].dt is None
        assert len(frames[1].detections) == 0

    def test_missing_field(self, tmp_path):
        path = tmp_path / "log.json"
        path.write_text(json.dumps({"frames": [
            {"detections": [{"x": 1, "y": 2, "w": 3}]},
        ]}))

        with pytest.raises(ValueError):
            load_detections(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_detections(tmp_path / "missing.json")


class TestTrackExporter:
    """Tests for JSON track export."""

    def make_result(self, frame_idx):
        return TrackingResult(
            tracks={0: {0: np.array([1.0, 2.0, 0.0, 0.0, 3.0, 4.0])}, 1: {}},
            frame_idx=frame_idx
        )

    def test_to_dict(self):
        exporter = TrackExporter(class_map=["drone", "person"])
        exporter.add_tracking_result(self.make_result(0))
        exporter.add_tracking_result(self.make_result(1))

        data = exporter.to_dict()
        assert len(exporter) == 2
        assert data["classes"] == ["drone", "person"]
        assert data["frames"][1]["frame_idx"] == 1
        assert data["frames"][0]["tracks"] == [{
            "class_id": 0,
            "class_name": "drone",
            "track_id": 0,
            "state": [1.0, 2.0, 0.0, 0.0, 3.0, 4.0],
        }]

    def test_unknown_class_name(self):
        exporter = TrackExporter()
        exporter.add_tracking_result(self.make_result(0))

        assert exporter.to_dict()["frames"][0]["tracks"][0]["class_name"] == "class_0"

    def test_save(self, tmp_path):
        exporter = TrackExporter(class_map=["drone"])
        exporter.add_tracking_result(self.make_result(0))

        path = tmp_path / "out" / "tracks.json"
        exporter.save(path)

        with open(path) as f:
            assert json.load(f) == exporter.to_dict()

    def test_reset(self):
        exporter = TrackExporter()
        exporter.add_tracking_result(self.make_result(0))
        exporter.reset()
        assert len(exporter) == 0


class TestRunPipeline:
    """End-to-end replay of a detection log."""

    def test_run_pipeline(self, detection_log, tmp_path):
        output = tmp_path / "tracks.json"
        results = run_pipeline(detection_log, output_path=output, show_progress=False)

        assert len(results) == 5
        # Default config tracks a single class, class 1 is ignored
        assert all(list(r.tracks) == [0] for r in results)
        assert all(list(r.tracks[0]) == [0] for r in results)

        with open(output) as f:
            data = json.load(f)
        assert data["classes"] == ["object"]
        assert len(data["frames"]) == 5
        assert data["frames"][4]["tracks"][0]["track_id"] == 0


class TestCLI:
    """Tests for the command-line interface."""

    def test_no_command(self, capsys):
        assert main([]) == 0
        assert "usage" in capsys.readouterr().out.lower()

    def test_config_show(self, capsys):
        assert main(["config", "--show"]) == 0
        assert "max_frames_to_skip: 15" in capsys.readouterr().out

    def test_config_generate(self, tmp_path):
        path = tmp_path / "config.yaml"
        assert main(["config", "--generate", str(path)]) == 0
        assert path.exists()

    def test_track(self, detection_log, tmp_path):
        config_path = tmp_path / "config.yaml"
        config_path.write_text("class_map: [drone, person]\n")
        output = tmp_path / "tracks.json"

        code = main([
            "track", str(detection_log),
            "-o", str(output),
            "-c", str(config_path),
            "--no-progress",
        ])
        assert code == 0

        with open(output) as f:
            data = json.load(f)
        assert data["classes"] == ["drone", "person"]
        assert len(data["frames"][0]["tracks"]) == 2

    def test_track_overrides(self, detection_log, tmp_path):
        output = tmp_path / "tracks.json"

        code = main([
            "track", str(detection_log),
            "-o", str(output),
            "--classes", "drone", "person",
            "--assignment", "hungarian",
            "--max-frames-to-skip", "3",
            "--no-progress",
        ])
        assert code == 0

        with open(output) as f:
            data = json.load(f)
        assert data["classes"] == ["drone", "person"]
        assert [t["class_name"] for t in data["frames"][0]["tracks"]] == [
            "drone", "person"]

    def test_track_rejects_unknown_motion_model(self, detection_log):
        with pytest.raises(SystemExit):
            main(["track", str(detection_log), "--motion-model", "polar"])

    def test_config_validate(self, tmp_path, capsys):
        good = tmp_path / "good.yaml"
        main(["config", "--generate", str(good)])
        assert main(["config", "--validate", str(good)]) == 0
        assert "OK" in capsys.readouterr().out

        bad = tmp_path / "bad.yaml"
        bad.write_text("kalman:\n  process_noise: [1, 2, 3]\n")
        assert main(["config", "--validate", str(bad)]) == 1

    def test_track_missing_input(self, tmp_path):
        assert main(["track", str(tmp_path / "missing.json"), "--no-progress"]) == 1

    def test_track_missing_config(self, detection_log, tmp_path):
        code = main([
            "track", str(detection_log),
            "-c", str(tmp_path / "missing.yaml"),
        ])
        assert code == 1

    def test_track_invalid_config(self, detection_log, tmp_path):
        config_path = tmp_path / "config.yaml"
        config_path.write_text("tracker:\n  motion_model: polar\n")

        code = main([
            "track", str(detection_log),
            "-o", str(tmp_path / "tracks.json"),
            "-c", str(config_path),
            "--no-progress",
        ])
        assert code == 1
