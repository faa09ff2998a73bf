"""Exception taxonomy shared by the gateway components.

Brief:
  Every error raised by the core derives from GatewayError so that outer
  surfaces (CLI, HTTP handlers) can catch one type and render ``str(exc)``
  as a human-readable message.

Inputs:
  - None.

Outputs:
  - Exception classes.
"""

from __future__ import annotations


class GatewayError(Exception):
    """Brief: Base class for all gateway errors."""


class DuplicateError(GatewayError):
    """Brief: A blocklist source with the same URL is already registered."""


class ValidationError(GatewayError):
    """Brief: A downloaded payload does not look like a block list."""


class FetchError(GatewayError):
    """Brief: A blocklist source could not be retrieved."""


class ResolutionError(GatewayError):
    """Brief: No address could be obtained for a domain."""


class PersistenceError(GatewayError):
    """Brief: Writing configuration or cache state to disk failed."""


class QueryError(GatewayError):
    """Brief: A raw request string is not an acceptable query."""


class UnknownServiceError(GatewayError, KeyError):
    """Brief: A service toggle referenced a service that is not registered."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep plain messages for callers.
        return str(self.args[0]) if self.args else ""


class ConfigLoadError(GatewayError):
    """Brief: The configuration file exists but cannot be parsed or validated."""
