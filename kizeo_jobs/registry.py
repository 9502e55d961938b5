"""Registry of artifact fetch handlers, keyed by job kind."""

from collections.abc import Callable
from typing import Optional

from kizeo_jobs.models import JobKind


class FetcherRegistry:
    """Registry for artifact fetch handlers."""

    def __init__(self):
        self._handlers: dict[JobKind, Callable] = {}

    def handler(self, kind: JobKind):
        """
        Decorator to register the fetch handler of a job kind.

        Usage:
            @registry.handler(JobKind.PDF)
            async def fetch_pdf(ctx, job, media_ref):
                ...
        """

        def decorator(func: Callable):
            self._handlers[kind] = func
            return func

        return decorator

    def get_handler(self, kind: JobKind) -> Optional[Callable]:
        """Get a handler by job kind."""
        return self._handlers.get(kind)

    def all_handlers(self) -> dict[JobKind, Callable]:
        """Get all registered handlers."""
        return self._handlers.copy()


# Global registry instance
fetcher_registry = FetcherRegistry()
