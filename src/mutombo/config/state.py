"""Versioned configuration state and its on-disk reconciler.

Brief:
  StateContainer owns the in-memory GatewayConfig shared by the blocklist
  engine, the background tasks and the CLI. Every mutation goes through
  ``update()`` (copy, mutate, swap) or ``replace()`` and bumps ``version``,
  so readers always see a whole configuration and can cheaply detect change.

  ConfigReconciler compares the in-memory state with the file on disk:
    - same content: nothing happens (no write-back);
    - disk unreadable: the file is rewritten from memory;
    - disk changed: the disk copy is adopted and listeners are notified.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Awaitable, Callable, List, Optional, Union

from ..errors import ConfigLoadError, PersistenceError
from .models import GatewayConfig
from .store import ConfigStore

logger = logging.getLogger(__name__)

ChangeListener = Callable[
    [GatewayConfig, GatewayConfig], Union[None, Awaitable[None]]
]


class StateContainer:
    """Brief: Explicitly owned, versioned holder of the gateway configuration.

    Inputs (constructor):
      - config: Initial GatewayConfig.

    Outputs:
      - StateContainer instance.

    Example:
      >>> state = StateContainer(GatewayConfig())
      >>> state.version
      0
      >>> _ = state.update(lambda cfg: setattr(cfg, "reload_interval_seconds", 30.0))
      >>> state.version, state.current.reload_interval_seconds
      (1, 30.0)
    """

    def __init__(self, config: GatewayConfig) -> None:
        self._config = config
        self.version = 0

    @property
    def current(self) -> GatewayConfig:
        return self._config

    def update(self, mutator: Callable[[GatewayConfig], None]) -> GatewayConfig:
        """Brief: Apply ``mutator`` to a deep copy and swap it in.

        Inputs:
          - mutator: Callable receiving the copy; its return value is ignored.

        Outputs:
          - GatewayConfig: The newly published configuration.
        """

        draft = self._config.model_copy(deep=True)
        mutator(draft)
        self._config = draft
        self.version += 1
        return draft

    def replace(self, config: GatewayConfig) -> GatewayConfig:
        self._config = config
        self.version += 1
        return config


class ConfigReconciler:
    """Brief: Keep the in-memory state and the config file converged.

    Inputs (constructor):
      - state: StateContainer to reconcile.
      - store: ConfigStore backing the state.

    Outputs:
      - ConfigReconciler instance; call ``reconcile()`` directly or from a
        periodic task.
    """

    def __init__(self, state: StateContainer, store: ConfigStore) -> None:
        self.state = state
        self.store = store
        self._listeners: List[ChangeListener] = []

    def add_listener(self, listener: ChangeListener) -> None:
        """Brief: Register a callable notified with (old, new) after adoption."""

        self._listeners.append(listener)

    async def reconcile(self) -> bool:
        """Brief: Run one reconciliation pass.

        Inputs:
          - None.

        Outputs:
          - bool: True when a changed disk copy was adopted.
        """

        loop = asyncio.get_running_loop()
        version = self.state.version
        try:
            disk = await loop.run_in_executor(None, self.store.load)
        except FileNotFoundError:
            logger.warning("Config %s missing; writing current state", self.store.path)
            await self._write_back()
            return False
        except ConfigLoadError as exc:
            logger.warning("Config unreadable, rectifying from memory: %s", exc)
            await self._write_back()
            return False

        if disk == self.state.current:
            return False
        if self.state.version != version:
            logger.debug("State changed while reading %s; skipping adoption", self.store.path)
            return False

        old = self.state.current
        self.state.replace(disk)
        logger.info("Adopted changed config from %s (version %d)", self.store.path, self.state.version)
        for listener in list(self._listeners):
            try:
                result = listener(old, disk)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:  # pragma: no cover - listener bugs are logged only
                logger.error("Config change listener failed: %s", exc, exc_info=True)
        return True

    async def _write_back(self) -> None:
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self.store.save, self.state.current)
        except PersistenceError as exc:
            logger.error("%s", exc)


async def persist_state(state: StateContainer, store: Optional[ConfigStore]) -> bool:
    """Brief: Write the current state to disk, logging instead of raising.

    Inputs:
      - state: StateContainer to persist.
      - store: ConfigStore or None (in-memory only).

    Outputs:
      - bool: True on success or when there is no store.
    """

    if store is None:
        return True
    loop = asyncio.get_running_loop()
    try:
        await loop.run_in_executor(None, store.save, state.current)
    except PersistenceError as exc:
        logger.error("%s; the reconciler will retry on its next pass", exc)
        return False
    return True
