"""File-backed collaborators that persist configuration and services.

Brief:
  ConfigStore reads and writes the YAML gateway configuration; ServiceStore
  reads and writes the JSON services catalog. Both expose the same
  ``load()`` / ``save(obj)`` pair and write atomically (temp file in the
  same directory followed by ``os.replace``) so a crash mid-write never
  leaves a truncated file behind.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from typing import Any, Dict

import yaml
from pydantic import ValidationError as PydanticValidationError

from ..errors import ConfigLoadError, PersistenceError
from .models import GatewayConfig, Service, ServiceMap

logger = logging.getLogger(__name__)


def _atomic_write_text(path: str, content: str) -> None:
    """Brief: Atomically replace ``path`` with UTF-8 ``content``.

    Inputs:
      - path: Destination file.
      - content: Text to write.

    Outputs:
      - None; raises OSError on failure.
    """

    path = os.path.abspath(os.path.expanduser(path))
    parent = os.path.dirname(path) or "."
    os.makedirs(parent, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(
        dir=parent, prefix=f".{os.path.basename(path)}.", suffix=".tmp"
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    finally:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)


class ConfigStore:
    """Brief: YAML persistence for GatewayConfig.

    Inputs (constructor):
      - path: Path to the YAML configuration file.

    Outputs:
      - ConfigStore instance.

    Example:
      >>> store = ConfigStore("./config/config.yaml")  # doctest: +SKIP
      >>> cfg = store.load()  # doctest: +SKIP
      >>> store.save(cfg)  # doctest: +SKIP
    """

    def __init__(self, path: str) -> None:
        self.path = os.path.abspath(os.path.expanduser(str(path)))

    def exists(self) -> bool:
        return os.path.isfile(self.path)

    def load(self) -> GatewayConfig:
        """Brief: Read and validate the configuration file.

        Inputs:
          - None.

        Outputs:
          - GatewayConfig.

        Raises:
          - FileNotFoundError: When the file does not exist.
          - ConfigLoadError: When the file is not valid YAML or fails validation.
        """

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                text = f.read()
        except UnicodeDecodeError as exc:
            raise ConfigLoadError(f"Config {self.path} is not valid UTF-8: {exc}") from exc
        try:
            raw = yaml.safe_load(text) or {}
        except yaml.YAMLError as exc:
            raise ConfigLoadError(f"Invalid YAML in {self.path}: {exc}") from exc
        if not isinstance(raw, dict):
            raise ConfigLoadError(f"Configuration root in {self.path} must be a mapping")
        try:
            return GatewayConfig.model_validate(raw)
        except PydanticValidationError as exc:
            raise ConfigLoadError(f"Invalid configuration in {self.path}: {exc}") from exc

    def save(self, config: GatewayConfig) -> None:
        """Brief: Write ``config`` as YAML.

        Raises:
          - PersistenceError: When the file cannot be written.
        """

        data: Dict[str, Any] = config.model_dump(mode="json")
        try:
            _atomic_write_text(self.path, yaml.safe_dump(data, sort_keys=False))
        except (OSError, yaml.YAMLError) as exc:
            raise PersistenceError(f"Failed to save config to {self.path}: {exc}") from exc
        logger.debug("Saved config to %s", self.path)


class ServiceStore:
    """Brief: JSON persistence for the services catalog.

    The file maps a service domain to ``{"blocked": bool, "endpoints": [...]}``.
    A missing file loads as an empty catalog.
    """

    def __init__(self, path: str | None) -> None:
        self.path = os.path.abspath(os.path.expanduser(str(path))) if path else None

    def load(self) -> ServiceMap:
        if not self.path or not os.path.isfile(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise ConfigLoadError(f"Invalid JSON in {self.path}: {exc}") from exc
        if not isinstance(raw, dict):
            raise ConfigLoadError(f"Services file {self.path} must contain an object")
        try:
            return {str(k): Service.model_validate(v) for k, v in raw.items()}
        except PydanticValidationError as exc:
            raise ConfigLoadError(f"Invalid service entry in {self.path}: {exc}") from exc

    def save(self, services: ServiceMap) -> None:
        if not self.path:
            return
        data = {k: v.model_dump(mode="json") for k, v in services.items()}
        try:
            _atomic_write_text(self.path, json.dumps(data, indent=2))
        except OSError as exc:
            raise PersistenceError(
                f"Failed to save services to {self.path}: {exc}"
            ) from exc
