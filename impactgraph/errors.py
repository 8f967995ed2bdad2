"""Exception hierarchy shared across ImpactGraph components."""

from __future__ import annotations


class ImpactGraphError(Exception):
    """Base class for ImpactGraph errors."""


class GraphStoreError(ImpactGraphError):
    """The project graph could not be loaded from or written to storage."""


class LLMError(ImpactGraphError):
    """A text-completion provider call failed."""


class RateLimitError(LLMError):
    """The provider rejected the call with a rate-limit response (HTTP 429)."""
