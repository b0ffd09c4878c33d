"""
Baseline Fetcher
================
Reads the current state of a resource through the application itself.
"""

from typing import TYPE_CHECKING, Any, Dict, Protocol
import httpx
import structlog

from .config.settings import INJECTED_HEADER
from .exceptions import BaselineUnavailableError

if TYPE_CHECKING:
    from .pipeline.context import AuditContext

logger = structlog.get_logger(__name__)

# Headers that describe the original body or connection, not the session
_DROPPED_HEADERS = {
    "host",
    "content-length",
    "content-type",
    "transfer-encoding",
    "connection",
    "expect",
}


class BaselineFetcher(Protocol):
    async def fetch(self, ctx: "AuditContext") -> Any:
        ...


class InjectedReadFetcher:
    """
    Issues an in-process GET on the canonical read path.

    The call reuses the original request's credentials and carries the
    injection marker header, so the pipeline neither audits it nor caches
    its response. No timeout is imposed here.
    """

    def __init__(self, injected_header: str = INJECTED_HEADER):
        self.injected_header = injected_header.lower()

    def _headers(self, ctx: "AuditContext") -> Dict[str, str]:
        headers = {
            name: value for name, value in ctx.headers.items()
            if name.lower() not in _DROPPED_HEADERS
        }
        headers[self.injected_header] = "true"
        return headers

    async def fetch(self, ctx: "AuditContext") -> Any:
        if ctx.app is None:
            raise BaselineUnavailableError(
                "No application available for the baseline read",
                endpoint=ctx.endpoint,
            )

        host = ctx.headers.get("host", "audit.internal")
        transport = httpx.ASGITransport(app=ctx.app)
        try:
            async with httpx.AsyncClient(
                transport=transport,
                base_url=f"http://{host}",
            ) as client:
                response = await client.get(ctx.read_path, headers=self._headers(ctx))
        except httpx.HTTPError as e:
            raise BaselineUnavailableError(
                f"Baseline read failed: {e}", endpoint=ctx.endpoint
            )
        except Exception as e:
            raise BaselineUnavailableError(
                f"Unexpected error during baseline read: {e}", endpoint=ctx.endpoint
            )

        if not response.is_success:
            raise BaselineUnavailableError(
                f"Baseline read of {ctx.read_path} returned {response.status_code}",
                endpoint=ctx.endpoint,
            )

        try:
            data = response.json()
        except ValueError:
            raise BaselineUnavailableError(
                f"Baseline read of {ctx.read_path} returned unparsable content",
                endpoint=ctx.endpoint,
            )

        logger.debug("baseline_fetched", path=ctx.read_path, request_id=ctx.request_id)
        return data
