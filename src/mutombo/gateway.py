"""Pipeline orchestrator: one call per incoming resolution request.

Brief:
  Gateway composes the domain normalizer, the blocklist engine, the resolver
  cache and the stats aggregator:

    query -> validate/canonicalize -> blocked? (short-circuit) -> resolve
          -> record stats -> QueryResult

  ``build_gateway()`` wires the components from a GatewayConfig, and
  ``start()``/``stop()`` manage the background tasks (stats refresh and the
  config reconciler) on the running event loop.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from .blocklist.engine import BlocklistEngine
from .blocklist.fetch import AsyncFetcher
from .config.models import GatewayConfig
from .config.state import ConfigReconciler, StateContainer
from .config.store import ConfigStore, ServiceStore
from .domain import canonicalize, is_valid_query
from .errors import QueryError
from .logging_config import AuditLog
from .resolver.cache import NULL_ADDRESS, ResolverCache
from .resolver.store import ResolverStore
from .resolver.trace import DigTraceResolver, Resolver
from .stats import StatsAggregator
from .tasks import PeriodicTask

logger = logging.getLogger(__name__)


@dataclass
class QueryResult:
    """Brief: Outcome of one pipeline run.

    Inputs:
      - domain: Canonical hostname derived from the query.
      - ip: Resolved address; NULL_ADDRESS when blocked or unresolvable.
      - blocked: True when the blocklist engine short-circuited.
      - reason: Name of the blocking list, the services panel, or None.
    """

    domain: str
    ip: str
    blocked: bool = False
    reason: Optional[str] = None

    @property
    def resolved(self) -> bool:
        return not self.blocked and self.ip != NULL_ADDRESS


class Gateway:
    """Brief: Resolution/blocking pipeline plus its background tasks.

    Inputs (constructor):
      - engine: BlocklistEngine answering block decisions.
      - cache: ResolverCache answering addresses.
      - stats: StatsAggregator observing every decision.
      - reconciler: Optional ConfigReconciler run periodically.
      - reload_interval_seconds: Reconciler period.
      - stats_interval_seconds: Stats refresh period.

    Outputs:
      - Gateway instance.

    Example:
      >>> result = asyncio.run(gateway.handle("https://www.example.com/"))  # doctest: +SKIP
      >>> result.domain
      'example.com'
    """

    def __init__(
        self,
        engine: BlocklistEngine,
        cache: ResolverCache,
        stats: StatsAggregator,
        reconciler: Optional[ConfigReconciler] = None,
        reload_interval_seconds: float = 10.0,
        stats_interval_seconds: float = 5.0,
    ) -> None:
        self.engine = engine
        self.cache = cache
        self.stats = stats
        self.reconciler = reconciler
        self.tasks: List[PeriodicTask] = [
            PeriodicTask("stats-refresh", stats_interval_seconds, stats.refresh)
        ]
        if reconciler is not None:
            reconciler.add_listener(engine.on_config_change)
            self.tasks.append(
                PeriodicTask("config-reconcile", reload_interval_seconds, reconciler.reconcile)
            )

    async def handle(self, query: str, client: str = "n/a", agent: str = "n/a") -> QueryResult:
        """Brief: Run one request through the pipeline.

        Inputs:
          - query: Raw URL or hostname.
          - client: Requesting client identifier (for stats).
          - agent: Requesting user agent (for stats).

        Outputs:
          - QueryResult.

        Raises QueryError when the query is empty or contains characters
        outside the URL alphabet. Nothing else escapes.
        """

        if not is_valid_query(query):
            raise QueryError("No valid URL format submitted!")
        domain = canonicalize(query)
        if not domain:
            raise QueryError(f"No domain in query {query!r}")

        reason = self.engine.match(domain)
        if reason is not None:
            logger.info("Blocked %s (%s)", domain, reason)
            self.stats.record_event(domain, "blocks", client=client, agent=agent)
            return QueryResult(domain=domain, ip=NULL_ADDRESS, blocked=True, reason=reason)

        ip = await self.cache.resolve(domain)
        if ip != NULL_ADDRESS:
            self.stats.record_event(domain, "resolutions", client=client, agent=agent)
        return QueryResult(domain=domain, ip=ip)

    async def start(self, load_lists: bool = True) -> None:
        """Brief: Load services and lists, then start the background tasks."""

        self.engine.load_services()
        if load_lists:
            counts = await self.engine.load_all()
            logger.info("Loaded %d blocklists (%d domains)", len(counts), sum(counts.values()))
        for task in self.tasks:
            task.start()

    async def stop(self) -> None:
        for task in self.tasks:
            await task.stop()
        self.stats.refresh()

    def close(self) -> None:
        self.cache.store.close()
        if self.cache.audit is not None:
            self.cache.audit.close()


def build_gateway(
    config: GatewayConfig,
    config_store: Optional[ConfigStore] = None,
    resolver: Optional[Resolver] = None,
    fetcher: Optional[AsyncFetcher] = None,
) -> Gateway:
    """Brief: Wire a Gateway from configuration.

    Inputs:
      - config: Loaded GatewayConfig.
      - config_store: Store the config came from; enables persistence and
        the reconciler.
      - resolver: Resolver override (defaults to DigTraceResolver).
      - fetcher: Blocklist fetcher override.

    Outputs:
      - Gateway (background tasks not started).
    """

    state = StateContainer(config)
    engine = BlocklistEngine(
        state,
        config_store=config_store,
        service_store=ServiceStore(config.blocking.services_file),
        fetcher=fetcher,
    )
    if resolver is None:
        resolver = DigTraceResolver(
            command=config.resolver.trace_command,
            timeout_seconds=config.resolver.trace_timeout_seconds,
        )
    cache = ResolverCache(
        ResolverStore(config.resolver.db_path),
        resolver,
        audit=AuditLog(config.audit_log),
    )
    reconciler = ConfigReconciler(state, config_store) if config_store is not None else None
    return Gateway(
        engine,
        cache,
        StatsAggregator(top_n=config.stats.top_n),
        reconciler=reconciler,
        reload_interval_seconds=config.reload_interval_seconds,
        stats_interval_seconds=config.stats.refresh_interval_seconds,
    )
