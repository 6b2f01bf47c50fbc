from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml

from carereach.cli import main


@pytest.fixture
def config_path(tmp_path: Path) -> Path:
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    base = {
        "project": {"store_dir": "data/store", "raw_dir": "data/raw", "cache_dir": "cache", "logs_dir": "logs"},
        "providers": {"hdx": {"kind": "hdx", "enabled": True, "url": "https://example.invalid/hdx"}},
        "chains": {"facilities": ["hdx"]},
        "discovery": {"language": "en"},
        "api": {"host": "0.0.0.0", "port": 9000},
    }
    path = config_dir / "default.yaml"
    path.write_text(yaml.safe_dump(base), encoding="utf-8")
    return path


def test_offline_ingest_then_nearest(config_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    main(["ingest", "--config", str(config_path), "--offline"])
    results = json.loads(capsys.readouterr().out)
    assert results["facilities"] == 4
    assert results["workers"] == 2

    main(["nearest", "--config", str(config_path), "--lon", "90.4087", "--lat", "23.7329", "--limit", "2", "--explain"])
    out = capsys.readouterr().out.splitlines()
    assert out[0].startswith(" 1. Dhaka Medical College Hospital [hospital] 0 m")
    assert "combined" in out[1]


def test_directions_prints_json(config_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    main(["directions", "--config", str(config_path), "--from", "90.0,23.0", "--to", "91.0,23.0"])
    body = json.loads(capsys.readouterr().out)
    assert body["bearing"] == "E"
    assert body["instructions"][1] == "Head east"


def test_api_info(config_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    main(["api-info", "--config", str(config_path)])
    assert "--host 0.0.0.0 --port 9000" in capsys.readouterr().out


def test_unknown_category_is_rejected_by_argparse(config_path: Path) -> None:
    with pytest.raises(SystemExit):
        main(["ingest", "--config", str(config_path), "--only", "libraries"])
