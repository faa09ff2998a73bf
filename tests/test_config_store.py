"""Brief: Tests for mutombo.config (models, ConfigStore, ServiceStore).

Inputs:
  - None

Outputs:
  - None
"""

from __future__ import annotations

import json

import pytest
import yaml

from mutombo.config.models import BlocklistSource, GatewayConfig, Service
from mutombo.config.store import ConfigStore, ServiceStore
from mutombo.errors import ConfigLoadError, PersistenceError


def test_config_defaults() -> None:
    cfg = GatewayConfig()
    assert cfg.reload_interval_seconds == 10.0
    assert cfg.stats.top_n == 50
    assert cfg.stats.refresh_interval_seconds == 5.0
    assert cfg.resolver.trace_command == "dig"
    assert cfg.blocking.blocklists == []


def test_config_store_roundtrip_preserves_unknown_keys(tmp_path) -> None:
    """Brief: save() then load() yields an equal model, keeping extra keys.

    Inputs:
      - tmp_path: pytest temporary directory.

    Outputs:
      - None.
    """

    path = tmp_path / "config.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "dashboard": {"theme": "dark"},
                "blocking": {
                    "blocklists": [
                        {"name": "ads", "url": "https://lists.example/ads.txt", "label": "ads"}
                    ]
                },
            }
        ),
        encoding="utf-8",
    )
    store = ConfigStore(str(path))
    cfg = store.load()
    assert cfg.blocking.blocklists[0].name == "ads"
    assert cfg.blocking.blocklists[0].active is True

    store.save(cfg)
    reloaded = store.load()
    assert reloaded == cfg
    assert yaml.safe_load(path.read_text())["dashboard"] == {"theme": "dark"}


def test_config_store_missing_file_raises_file_not_found(tmp_path) -> None:
    store = ConfigStore(str(tmp_path / "nope.yaml"))
    assert store.exists() is False
    with pytest.raises(FileNotFoundError):
        store.load()


@pytest.mark.parametrize(
    "text",
    [
        b"blocking: [unclosed",
        b"- just\n- a list\n",
        b"reload_interval_seconds: -5\n",
        b"blocking:\n  blocklists:\n    - name: missing-url\n",
        b"logging: \xff\xfe\n",
    ],
)
def test_config_store_invalid_content_raises_config_load_error(tmp_path, text) -> None:
    path = tmp_path / "config.yaml"
    path.write_bytes(text)
    with pytest.raises(ConfigLoadError):
        ConfigStore(str(path)).load()


def test_config_store_save_failure_raises_persistence_error(tmp_path) -> None:
    blocker = tmp_path / "file"
    blocker.write_text("not a directory", encoding="utf-8")
    store = ConfigStore(str(blocker / "config.yaml"))
    with pytest.raises(PersistenceError):
        store.save(GatewayConfig())


def test_config_store_save_leaves_no_temp_files(tmp_path) -> None:
    store = ConfigStore(str(tmp_path / "config.yaml"))
    cfg = GatewayConfig()
    cfg.blocking.blocklists.append(BlocklistSource(name="x", url="https://x.example/list"))
    store.save(cfg)
    store.save(cfg)
    assert sorted(p.name for p in tmp_path.iterdir()) == ["config.yaml"]


def test_service_store_missing_file_is_empty(tmp_path) -> None:
    assert ServiceStore(str(tmp_path / "services.json")).load() == {}
    assert ServiceStore(None).load() == {}


def test_service_store_roundtrip(tmp_path) -> None:
    path = tmp_path / "services.json"
    store = ServiceStore(str(path))
    store.save({"youtube.com": Service(blocked=True, endpoints=["youtube.com", "ytimg.com"])})
    raw = json.loads(path.read_text())
    assert raw == {"youtube.com": {"blocked": True, "endpoints": ["youtube.com", "ytimg.com"]}}
    assert store.load()["youtube.com"].endpoints == ["youtube.com", "ytimg.com"]


def test_service_store_invalid_json(tmp_path) -> None:
    path = tmp_path / "services.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(ConfigLoadError):
        ServiceStore(str(path)).load()


def test_service_store_non_utf8_bytes(tmp_path) -> None:
    path = tmp_path / "services.json"
    path.write_bytes(b'{"youtube.com": \xff}')
    with pytest.raises(ConfigLoadError):
        ServiceStore(str(path)).load()
