from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Dict, FrozenSet, List, Optional

from ..config.models import BlocklistSource, GatewayConfig, Service
from ..config.state import StateContainer, persist_state
from ..config.store import ConfigStore, ServiceStore
from ..domain import normalize_domain
from ..errors import (
    DuplicateError,
    FetchError,
    PersistenceError,
    UnknownServiceError,
    ValidationError,
)
from .fetch import AsyncFetcher, fetch_text_async
from .parser import extract_title, first_content_line, is_valid_source, parse_blocklist

logger = logging.getLogger(__name__)

# Reason reported for domains blocked through the services panel.
SERVICE_REASON = "service panel"


class BlocklistEngine:
    """
    Block/allow decisions over subscribed lists and blocked services.

    Sources live in the shared StateContainer (and thus the config file);
    their parsed domain sets live only in memory and are rebuilt from the
    source URLs on every start. Blocked services contribute their endpoints
    to a separate custom domain set that blocks regardless of list activity.

    Inputs (constructor):
      - state: StateContainer holding the configured sources.
      - config_store: Optional ConfigStore used to persist source changes.
      - service_store: Optional ServiceStore for the services catalog.
      - fetcher: Optional async callable url -> text (defaults to requests
        in the default executor).

    Example use:
        >>> engine = BlocklistEngine(StateContainer(GatewayConfig()))
        >>> engine.blocked("ads.example.com")
        False
    """

    def __init__(
        self,
        state: StateContainer,
        config_store: Optional[ConfigStore] = None,
        service_store: Optional[ServiceStore] = None,
        fetcher: Optional[AsyncFetcher] = None,
    ) -> None:
        self.state = state
        self.config_store = config_store
        self.service_store = service_store
        self._fetch: AsyncFetcher = fetcher or fetch_text_async

        self.blocklist_sets: Dict[str, FrozenSet[str]] = {}
        self.services: Dict[str, Service] = {}
        self.custom_domains: FrozenSet[str] = frozenset()

    @property
    def sources(self) -> List[BlocklistSource]:
        return self.state.current.blocking.blocklists

    # ---- lists ----

    async def load_source(
        self, source: BlocklistSource, payload: Optional[str] = None
    ) -> int:
        """
        Parse a source into its domain set and publish it under the source name.

        Inputs:
            source: BlocklistSource to load.
            payload: Already downloaded list text; fetched from source.url when None.
        Outputs:
            Number of domains in the new set.

        Raises FetchError when the list must be fetched and cannot be.
        """
        text = payload if payload is not None else await self._fetch(source.url)
        result = parse_blocklist(text)
        self.blocklist_sets[source.name] = frozenset(result.domains)
        logger.info(
            "Loaded blocklist '%s' (%d domains, %d lines dropped)",
            source.name,
            len(result.domains),
            result.dropped,
        )
        return len(result.domains)

    async def load_all(self) -> Dict[str, int]:
        """
        Load every configured source; a failing source is logged and skipped.

        Outputs:
            Mapping of source name to domain count for the lists that loaded.
        """
        counts: Dict[str, int] = {}
        for source in list(self.sources):
            try:
                counts[source.name] = await self.load_source(source)
            except FetchError as exc:
                logger.warning("Skipping blocklist '%s': %s", source.name, exc)
        return counts

    async def add_source(
        self, url: str, label: str = "", title: Optional[str] = None
    ) -> BlocklistSource:
        """
        Subscribe to a new list.

        Inputs:
            url: List URL; must not be registered yet (exact match).
            label: Category label.
            title: Display name; derived from the list when omitted.
        Outputs:
            The persisted BlocklistSource.

        Raises DuplicateError, FetchError or ValidationError.
        """
        try:
            if any(s.url == url for s in self.sources):
                raise DuplicateError(f"The blocklist {url} exists already!")

            payload = await self._fetch(url)
            if not is_valid_source(payload):
                raise ValidationError(f"The provided url {url} yields no block list!")

            name = title or extract_title(payload) or first_content_line(payload) or url
            source = BlocklistSource(
                name=name,
                url=url,
                label=label,
                created_at=datetime.now(timezone.utc),
                active=True,
            )
            await self.load_source(source, payload)
        except (DuplicateError, FetchError, ValidationError) as exc:
            logger.warning("Failed to add blocklist: %s", exc)
            raise

        self.state.update(lambda cfg: cfg.blocking.blocklists.append(source))
        await persist_state(self.state, self.config_store)
        logger.info("Successfully added new blocklist '%s'", source.name)
        return source

    async def remove_source(self, name: str) -> bool:
        """
        Drop every source named ``name`` together with its domain set.

        Outputs:
            True when at least one source was removed.
        """
        self.blocklist_sets.pop(name, None)
        if not any(s.name == name for s in self.sources):
            logger.warning("No blocklist named '%s' to remove", name)
            return False

        def _remove(cfg: GatewayConfig) -> None:
            cfg.blocking.blocklists = [s for s in cfg.blocking.blocklists if s.name != name]

        self.state.update(_remove)
        await persist_state(self.state, self.config_store)
        logger.info("Successfully removed blocklist '%s'", name)
        return True

    async def set_active(self, name: str, active: bool) -> bool:
        """
        Switch list participation without rebuilding its set.

        Outputs:
            True when at least one source carries ``name``.
        """
        if not any(s.name == name for s in self.sources):
            logger.warning("No blocklist named '%s'", name)
            return False

        def _toggle(cfg: GatewayConfig) -> None:
            for s in cfg.blocking.blocklists:
                if s.name == name:
                    s.active = bool(active)

        self.state.update(_toggle)
        await persist_state(self.state, self.config_store)
        logger.info("Switched blocklist '%s' active=%s", name, bool(active))
        return True

    # ---- decisions ----

    def match(self, domain: str) -> Optional[str]:
        """
        Return why ``domain`` is blocked, or None when it is allowed.

        Inputs:
            domain: Hostname in any case.
        Outputs:
            SERVICE_REASON, the name of the first active list containing the
            domain, or None.
        """
        domain = normalize_domain(domain)
        if domain in self.custom_domains:
            return SERVICE_REASON
        for source in self.sources:
            if not source.active:
                continue
            domains = self.blocklist_sets.get(source.name)
            if domains is not None and domain in domains:
                return source.name
        return None

    def blocked(self, domain: str) -> bool:
        reason = self.match(domain)
        if reason is not None:
            logger.debug("Domain '%s' blocked by %s", domain, reason)
            return True
        return False

    # ---- services ----

    def load_services(self) -> None:
        """Read the services catalog and rebuild the custom domain set."""
        if self.service_store is None:
            return
        self.services = self.service_store.load()
        self._rebuild_custom_domains()
        logger.info(
            "Loaded %d services (%d custom domains blocked)",
            len(self.services),
            len(self.custom_domains),
        )

    def _rebuild_custom_domains(self) -> None:
        domains = set()
        for service in self.services.values():
            if service.blocked:
                domains.update(normalize_domain(e) for e in service.endpoints)
        self.custom_domains = frozenset(domains)

    async def _set_service_blocked(self, domain: str, blocked: bool) -> None:
        service = self.services.get(domain)
        if service is None:
            raise UnknownServiceError(f"Unknown service '{domain}'")
        services = dict(self.services)
        services[domain] = service.model_copy(update={"blocked": blocked})
        self.services = services
        self._rebuild_custom_domains()
        logger.info("Service '%s' %s", domain, "blocked" if blocked else "unblocked")

        if self.service_store is None:
            return
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self.service_store.save, self.services)
        except PersistenceError as exc:
            logger.error("%s", exc)

    async def enable_service(self, domain: str) -> None:
        """Allow a service again: its endpoints leave the custom domain set."""
        await self._set_service_blocked(domain, False)

    async def disable_service(self, domain: str) -> None:
        """Block a service: its endpoints join the custom domain set."""
        await self._set_service_blocked(domain, True)

    # ---- reconciliation ----

    async def on_config_change(self, old: GatewayConfig, new: GatewayConfig) -> None:
        """Load sets for new or re-pointed sources and drop sets of removed ones."""
        old_urls = {s.name: s.url for s in old.blocking.blocklists}
        new_sources = {s.name: s for s in new.blocking.blocklists}
        for name in set(old_urls) - set(new_sources):
            self.blocklist_sets.pop(name, None)
        for name, source in new_sources.items():
            if old_urls.get(name) == source.url and name in self.blocklist_sets:
                continue
            try:
                await self.load_source(source)
            except FetchError as exc:
                logger.warning("Skipping blocklist '%s': %s", name, exc)
