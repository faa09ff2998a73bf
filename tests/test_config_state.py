"""Brief: Tests for mutombo.config.state (StateContainer, ConfigReconciler).

Inputs:
  - None

Outputs:
  - None
"""

from __future__ import annotations

import asyncio
import os

from mutombo.config.models import BlocklistSource, GatewayConfig
from mutombo.config.state import ConfigReconciler, StateContainer, persist_state
from mutombo.config.store import ConfigStore


def _saved_store(tmp_path, cfg: GatewayConfig) -> ConfigStore:
    store = ConfigStore(str(tmp_path / "config.yaml"))
    store.save(cfg)
    return store


def test_update_copies_mutates_and_swaps() -> None:
    """Brief: update() never mutates the previously published config.

    Inputs:
      - None.

    Outputs:
      - None.
    """

    state = StateContainer(GatewayConfig())
    before = state.current
    after = state.update(lambda cfg: cfg.blocking.blocklists.append(
        BlocklistSource(name="ads", url="https://lists.example/ads.txt")
    ))
    assert before.blocking.blocklists == []
    assert state.current is after
    assert [s.name for s in after.blocking.blocklists] == ["ads"]
    assert state.version == 1

    state.replace(GatewayConfig())
    assert state.version == 2
    assert state.current.blocking.blocklists == []


def test_reconcile_unchanged_disk_does_not_write(tmp_path) -> None:
    cfg = GatewayConfig()
    store = _saved_store(tmp_path, cfg)
    path = tmp_path / "config.yaml"
    os.utime(path, (1_000_000, 1_000_000))
    state = StateContainer(store.load())

    changed = asyncio.run(ConfigReconciler(state, store).reconcile())

    assert changed is False
    assert state.version == 0
    assert os.stat(path).st_mtime == 1_000_000


def test_reconcile_adopts_disk_changes_and_notifies(tmp_path) -> None:
    """Brief: A changed file replaces the in-memory state and fires listeners.

    Inputs:
      - tmp_path: pytest temporary directory.

    Outputs:
      - None.
    """

    store = _saved_store(tmp_path, GatewayConfig())
    state = StateContainer(store.load())

    edited = store.load()
    edited.blocking.blocklists.append(BlocklistSource(name="ads", url="https://lists.example/ads.txt"))
    store.save(edited)

    seen = []

    async def listener(old, new):
        seen.append(([s.name for s in old.blocking.blocklists], [s.name for s in new.blocking.blocklists]))

    reconciler = ConfigReconciler(state, store)
    reconciler.add_listener(listener)
    reconciler.add_listener(lambda old, new: seen.append("sync"))

    assert asyncio.run(reconciler.reconcile()) is True
    assert [s.name for s in state.current.blocking.blocklists] == ["ads"]
    assert state.version == 1
    assert seen == [([], ["ads"]), "sync"]

    assert asyncio.run(reconciler.reconcile()) is False


def test_reconcile_rewrites_unreadable_file(tmp_path) -> None:
    cfg = GatewayConfig()
    cfg.blocking.blocklists.append(BlocklistSource(name="ads", url="https://lists.example/ads.txt"))
    store = _saved_store(tmp_path, cfg)
    state = StateContainer(store.load())
    (tmp_path / "config.yaml").write_text("blocking: [broken", encoding="utf-8")

    assert asyncio.run(ConfigReconciler(state, store).reconcile()) is False
    assert store.load() == state.current


def test_reconcile_rewrites_non_utf8_file(tmp_path) -> None:
    store = _saved_store(tmp_path, GatewayConfig())
    state = StateContainer(store.load())
    (tmp_path / "config.yaml").write_bytes(b"logging: \xff\xfe\n")

    assert asyncio.run(ConfigReconciler(state, store).reconcile()) is False
    assert store.load() == state.current


def test_reconcile_recreates_missing_file(tmp_path) -> None:
    store = ConfigStore(str(tmp_path / "config.yaml"))
    state = StateContainer(GatewayConfig())
    assert asyncio.run(ConfigReconciler(state, store).reconcile()) is False
    assert store.exists()


def test_persist_state_logs_instead_of_raising(tmp_path, caplog) -> None:
    blocker = tmp_path / "file"
    blocker.write_text("x", encoding="utf-8")
    store = ConfigStore(str(blocker / "config.yaml"))
    state = StateContainer(GatewayConfig())

    assert asyncio.run(persist_state(state, store)) is False
    assert asyncio.run(persist_state(state, None)) is True
    assert "Failed to save config" in caplog.text


def test_reconcile_skips_adoption_when_state_changed_during_load(tmp_path) -> None:
    """Brief: A mutation published mid-load wins over the stale disk copy.

    Inputs:
      - tmp_path: pytest temporary directory.

    Outputs:
      - None.
    """

    store = _saved_store(tmp_path, GatewayConfig())
    state = StateContainer(store.load())
    on_disk = store.load()
    on_disk.reload_interval_seconds = 99.0
    store.save(on_disk)

    class _RacingStore(ConfigStore):
        def load(self) -> GatewayConfig:
            cfg = super().load()
            state.update(
                lambda c: c.blocking.blocklists.append(
                    BlocklistSource(name="new", url="https://lists.example/new.txt")
                )
            )
            return cfg

    notified = []
    reconciler = ConfigReconciler(state, _RacingStore(store.path))
    reconciler.add_listener(lambda old, new: notified.append(new))

    assert asyncio.run(reconciler.reconcile()) is False
    assert [s.name for s in state.current.blocking.blocklists] == ["new"]
    assert notified == []
