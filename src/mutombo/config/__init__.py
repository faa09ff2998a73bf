"""Configuration models, stores and state for the gateway."""

from .models import (
    BlockingConfig,
    BlocklistSource,
    GatewayConfig,
    LoggingConfig,
    ResolverConfig,
    Service,
    StatsConfig,
)
from .state import ConfigReconciler, StateContainer, persist_state
from .store import ConfigStore, ServiceStore

__all__ = [
    "BlockingConfig",
    "BlocklistSource",
    "ConfigReconciler",
    "ConfigStore",
    "GatewayConfig",
    "LoggingConfig",
    "ResolverConfig",
    "Service",
    "ServiceStore",
    "StateContainer",
    "StatsConfig",
    "persist_state",
]
