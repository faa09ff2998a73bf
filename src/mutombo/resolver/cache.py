from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

from ..domain import normalize_domain
from ..errors import ResolutionError
from ..logging_config import AuditLog
from .store import ResolverStore
from .trace import Resolver

logger = logging.getLogger(__name__)

NULL_ADDRESS = "0.0.0.0"


def preferred_address(ipv4: List[str], ipv6: List[str]) -> Optional[str]:
    """
    Pick the address handed to clients: the first IPv4, else the first IPv6.

    Example:
        >>> preferred_address([], ["2606:2800::1"])
        '2606:2800::1'
        >>> preferred_address(["1.2.3.4"], ["2606:2800::1"])
        '1.2.3.4'
    """
    if ipv4:
        return ipv4[0]
    if ipv6:
        return ipv6[0]
    return None


class ResolverCache:
    """
    Persistent domain -> address cache with recursive fallback.

    A lookup first consults the store. A row with addresses is a hit: its
    counter is incremented and the preferred address returned. A missing or
    empty row falls through to one trace via the Resolver; the result is
    written back (insert, or repair of the empty row) and returned.

    Inputs (constructor):
        store: ResolverStore holding the rows.
        resolver: Resolver capability used on misses.
        audit: Optional AuditLog receiving one line per resolve() call.

    Example use:
        >>> import asyncio
        >>> cache = ResolverCache(ResolverStore(":memory:"), DigTraceResolver())  # doctest: +SKIP
        >>> asyncio.run(cache.resolve("example.com"))  # doctest: +SKIP
        '93.184.215.14'
    """

    def __init__(
        self,
        store: ResolverStore,
        resolver: Resolver,
        audit: Optional[AuditLog] = None,
    ) -> None:
        self.store = store
        self.resolver = resolver
        self.audit = audit

    async def _run(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func, *args)

    async def lookup(self, domain: str) -> str:
        """
        Resolve through the cache, raising on failure.

        Inputs:
            domain: Hostname to resolve.
        Outputs:
            The preferred address.

        Raises ResolutionError when the domain is empty or the trace yields
        no address; PersistenceError when the store fails.
        """
        domain = normalize_domain(domain or "")
        if not domain:
            raise ResolutionError("No domain defined!")

        row = await self._run(self.store.get, domain)
        repair_id: Optional[int] = None
        if row is not None:
            if not row.empty:
                await self._run(self.store.increment_hits, row.id)
                logger.debug("Cache hit for %s (hits=%d)", domain, row.hit_count + 1)
                return preferred_address(row.ipv4, row.ipv6)
            repair_id = row.id

        result = await self.resolver.trace(domain)
        address = preferred_address(result.ipv4, result.ipv6)
        if address is None:
            raise ResolutionError(f"Cannot resolve domain: {domain}")

        if repair_id is not None:
            await self._run(self.store.repair, repair_id, result.ipv4, result.ipv6)
            logger.debug("Repaired empty cache row for %s", domain)
        else:
            await self._run(self.store.insert, domain, result.ipv4, result.ipv6)
            logger.debug("Cached %s -> %s", domain, address)
        return address

    async def resolve(self, domain: str) -> str:
        """
        Like lookup() but never raises: failures yield NULL_ADDRESS.

        Inputs:
            domain: Hostname to resolve.
        Outputs:
            The preferred address or "0.0.0.0".
        """
        try:
            address = await self.lookup(domain)
        except Exception as exc:
            logger.warning("Failed to resolve %r: %s", domain, exc)
            self._audit(f'Failed to resolve "{domain}"')
            return NULL_ADDRESS
        self._audit(f'Resolved query "{domain}"')
        return address

    def _audit(self, message: str) -> None:
        if self.audit is None:
            return
        try:
            self.audit.log(message)
        except Exception:  # pragma: no cover - audit sink failures must not break resolve
            logger.debug("Audit log write failed", exc_info=True)

    async def reset_counts(self) -> int:
        """Set every row's hit counter to zero and return the number of rows."""
        await self._run(self.store.reset_counts)
        rows = await self._run(self.store.count_rows)
        logger.info("Reset resolver cache hit counts for %d domains", rows)
        return rows
