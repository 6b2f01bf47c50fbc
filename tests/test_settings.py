from __future__ import annotations

import os
from pathlib import Path

import pytest
import yaml

from carereach.settings import check_chains, load_settings, read_dotenv, settings_from_env

REPO_ROOT = Path(__file__).resolve().parents[1]


def _write_config(root: Path) -> Path:
    config_dir = root / "config"
    (config_dir / "profiles").mkdir(parents=True)
    base = {
        "project": {"store_dir": "data/store", "log_level": "INFO"},
        "providers": {"hdx": {"kind": "hdx", "enabled": True, "url": "https://example.org/hdx"}},
        "chains": {"facilities": ["hdx"]},
        "discovery": {"language": "bn"},
    }
    (config_dir / "default.yaml").write_text(yaml.safe_dump(base), encoding="utf-8")
    profile = {"providers": {"hdx": {"enabled": False}}, "discovery": {"language": "en"}}
    (config_dir / "profiles" / "offline.yaml").write_text(yaml.safe_dump(profile), encoding="utf-8")
    return config_dir / "default.yaml"


def test_profile_overrides_only_named_keys(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path)

    settings = load_settings(config_path, profile="offline")

    hdx = settings["providers"]["hdx"]
    assert hdx["enabled"] is False
    assert hdx["url"] == "https://example.org/hdx"
    assert settings["chains"] == {"facilities": ["hdx"]}
    assert settings["discovery"]["language"] == "en"
    assert settings["_meta"]["profile"] == "offline"

    # Runtime directories are resolved under the project root and created.
    assert Path(settings["paths"]["store_dir"]) == tmp_path / "data" / "store"
    assert Path(settings["paths"]["raw_dir"]).is_dir()


def test_missing_profile_means_no_overrides(tmp_path: Path) -> None:
    settings = load_settings(_write_config(tmp_path), profile="nope")
    assert settings["providers"]["hdx"]["enabled"] is True


def test_non_mapping_yaml_is_rejected(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path)
    config_path.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_settings(config_path)


def test_real_environment_beats_dotenv(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_path = _write_config(tmp_path)
    (tmp_path / ".env").write_text(
        "# provider keys\nCAREREACH_TEST_KEY=from-dotenv\nCAREREACH_TEST_OTHER='quoted'\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("CAREREACH_TEST_KEY", "from-env")
    # Registered with monkeypatch so the value `.env` sets is removed after the test.
    monkeypatch.setenv("CAREREACH_TEST_OTHER", "")
    monkeypatch.delenv("CAREREACH_TEST_OTHER")

    load_settings(config_path)

    assert os.environ["CAREREACH_TEST_KEY"] == "from-env"
    assert os.environ["CAREREACH_TEST_OTHER"] == "quoted"


def test_chains_must_reference_declared_providers(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path)
    profile = {"chains": {"facilities": ["hdx", "ghost"]}}
    (tmp_path / "config" / "profiles" / "broken.yaml").write_text(yaml.safe_dump(profile), encoding="utf-8")
    with pytest.raises(ValueError, match="ghost"):
        load_settings(config_path, profile="broken")

    with pytest.raises(ValueError, match="libraries"):
        check_chains({"providers": {}, "chains": {"libraries": []}})


def test_read_dotenv(tmp_path: Path) -> None:
    path = tmp_path / ".env"
    path.write_text('# comment\n\nA=1\nB = "two"\nnot a pair\n=orphan\n', encoding="utf-8")
    assert read_dotenv(path) == {"A": "1", "B": "two"}
    assert read_dotenv(tmp_path / "missing.env") == {}


def test_settings_from_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CAREREACH_CONFIG", str(_write_config(tmp_path)))
    monkeypatch.setenv("CAREREACH_PROFILE", "offline")
    assert settings_from_env()["_meta"]["profile"] == "offline"


def test_shipped_config_wires_every_chain_to_known_providers() -> None:
    base = yaml.safe_load((REPO_ROOT / "config" / "default.yaml").read_text(encoding="utf-8"))
    offline = yaml.safe_load((REPO_ROOT / "config" / "profiles" / "offline.yaml").read_text(encoding="utf-8"))

    assert set(base["chains"]) == {"facilities", "osm_facilities", "boundaries", "workers"}
    for provider_ids in base["chains"].values():
        assert set(provider_ids) <= set(base["providers"])
    assert set(offline["providers"]) == set(base["providers"])
