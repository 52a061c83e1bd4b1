# Copyright (c) Syntropy Systems
"""Tests for configuration loading."""

from pathlib import Path

import pytest
import yaml

from bakeoff.config import DEFAULT_WEIGHTS, find_bakeoff_dir, get_db_path, load_config


def write_config(bakeoff_dir: Path, data: dict) -> None:
    bakeoff_dir.mkdir(exist_ok=True)
    with (bakeoff_dir / "config.yaml").open("w") as f:
        yaml.dump(data, f)


class TestLoadConfig:
    """Tests for reading .bakeoff/config.yaml."""

    def test_defaults(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("BAKEOFF_ADMIN_TOKEN", raising=False)
        (tmp_path / ".bakeoff").mkdir()

        config = load_config(tmp_path / ".bakeoff")

        assert config.lease_duration_ms == 120_000
        assert config.consensus_threshold == 0.66
        assert config.weights == DEFAULT_WEIGHTS
        assert config.task_command == []
        assert config.admin_token is None

    def test_values_from_file(self, tmp_path: Path) -> None:
        bakeoff_dir = tmp_path / ".bakeoff"
        write_config(bakeoff_dir, {
            "lease_duration_ms": 30_000,
            "step_delay": 2,
            "task_command": ["python", "evaluate.py"],
            "daily_call_volume": 250,
            "weights": {"quality": 0.4, "speed": 0.15},
        })

        config = load_config(bakeoff_dir)

        assert config.lease_duration_ms == 30_000
        assert config.step_delay == 2.0
        assert config.task_command == ["python", "evaluate.py"]
        assert config.daily_call_volume == 250
        assert config.weights["quality"] == 0.4
        assert config.weights["speed"] == 0.15
        assert config.weights["reasoning"] == DEFAULT_WEIGHTS["reasoning"]

    def test_task_command_string(self, tmp_path: Path) -> None:
        bakeoff_dir = tmp_path / ".bakeoff"
        write_config(bakeoff_dir, {"task_command": "python evaluate.py --fast"})

        assert load_config(bakeoff_dir).task_command == ["python", "evaluate.py", "--fast"]

    def test_unknown_weight_rejected(self, tmp_path: Path) -> None:
        bakeoff_dir = tmp_path / ".bakeoff"
        write_config(bakeoff_dir, {"weights": {"vibes": 1.0}})

        with pytest.raises(ValueError, match="vibes"):
            _ = load_config(bakeoff_dir)

    def test_non_numeric_values_ignored(self, tmp_path: Path) -> None:
        bakeoff_dir = tmp_path / ".bakeoff"
        write_config(bakeoff_dir, {"lease_duration_ms": "soon", "busy_backoff": True})

        config = load_config(bakeoff_dir)

        assert config.lease_duration_ms == 120_000
        assert config.busy_backoff == 3.0

    def test_token_from_environment(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        bakeoff_dir = tmp_path / ".bakeoff"
        write_config(bakeoff_dir, {"admin_token": "from-file"})
        monkeypatch.setenv("BAKEOFF_ADMIN_TOKEN", "from-env")

        assert load_config(bakeoff_dir).admin_token == "from-env"

    def test_defaults_do_not_share_weights(self, tmp_path: Path) -> None:
        bakeoff_dir = tmp_path / ".bakeoff"
        write_config(bakeoff_dir, {"weights": {"quality": 0.1}})

        _ = load_config(bakeoff_dir)

        assert DEFAULT_WEIGHTS["quality"] == 0.50


class TestProjectDiscovery:
    """Tests for locating the .bakeoff directory."""

    def test_walks_up(self, tmp_path: Path) -> None:
        (tmp_path / ".bakeoff").mkdir()
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)

        assert find_bakeoff_dir(nested) == (tmp_path / ".bakeoff").resolve()

    def test_db_path(self, tmp_path: Path) -> None:
        assert get_db_path(tmp_path / ".bakeoff") == tmp_path / ".bakeoff" / "bakeoff.db"
