"""
Audit Trail Middleware
======================
Starlette / FastAPI integration of the audit pipeline.

Features:
- RESILIENT: business operations NEVER blocked by audit failures
- Before/after snapshots of updated and deleted resources
- Field-level diffs with per-route skip lists
- In-process publish/subscribe of completed records

Usage:
    from audit_rest import AuditPipeline, AuditTrailMiddleware, audit_route

    pipeline = AuditPipeline({"client_id": "crm"})
    app.add_middleware(AuditTrailMiddleware, pipeline=pipeline)

    @app.put("/api/users/{id}")
    @audit_route(entity="users", skip_diff=["updated_at"])
    async def update_user(id: int, body: dict): ...
"""

import json
import uuid
from typing import Any, Dict, List, Optional, Tuple
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.routing import Match
import structlog

from .classifier import Phase
from .config.route import route_config_of
from .pipeline.context import AuditContext, ObservedResponse, resolve_username
from .pipeline.pipeline import AuditPipeline
from .records.enums import HttpVerb

logger = structlog.get_logger(__name__)

_BODY_VERBS = (HttpVerb.CREATE, HttpVerb.UPDATE)


def is_json_content(content_type: Optional[str]) -> bool:
    """True for ``application/json`` and ``+json`` media types."""
    if not content_type:
        return False
    media_type = content_type.split(";")[0].strip().lower()
    return media_type == "application/json" or media_type.endswith("+json")


def match_route(scope: Dict[str, Any]) -> Tuple[Any, Dict[str, Any]]:
    """
    Find the route the router will dispatch ``scope`` to.

    Returns:
        Tuple of (route or None, path_params)
    """
    app = scope.get("app")
    partial: Optional[Tuple[Any, Dict[str, Any]]] = None

    for route in getattr(app, "routes", []):
        match, child_scope = route.matches(scope)
        if match is Match.FULL:
            return route, child_scope.get("path_params", {})
        if match is Match.PARTIAL and partial is None:
            partial = (route, child_scope.get("path_params", {}))

    return partial if partial else (None, {})


class AuditTrailMiddleware(BaseHTTPMiddleware):
    """
    Runs the pre-handler phase before ``call_next`` and the pre-response
    phase once the handler produced its response.
    """

    def __init__(self, app, pipeline: Optional[AuditPipeline] = None, settings: Any = None):
        super().__init__(app)
        self.pipeline = pipeline or AuditPipeline(settings)

    async def dispatch(self, request: Request, call_next):
        try:
            ctx = await self._build_context(request)
        except Exception as e:
            logger.error("audit_context_failed", path=request.url.path, error=str(e))
            return await call_next(request)

        try:
            await self.pipeline.pre_handler(ctx)

            # ALWAYS execute the request, audit NEVER blocks business
            response = await call_next(request)

            observed = await self._observe(ctx, response)
            await self.pipeline.pre_response(ctx, observed)
            return response
        finally:
            self.pipeline.discard(ctx)

    async def _build_context(self, request: Request) -> AuditContext:
        settings = self.pipeline.settings
        route, path_params = match_route(request.scope)

        ctx = AuditContext(
            method=request.method,
            path=request.url.path,
            username=resolve_username(request.scope, settings.sid_username_attribute),
            route=route_config_of(getattr(route, "endpoint", None)),
            route_path=getattr(route, "path", None),
            path_params=dict(path_params),
            query=dict(request.query_params),
            headers=dict(request.headers),
            injected=request.headers.get(settings.injected_header) == "true",
            app=request.scope.get("app"),
            request_id=str(uuid.uuid4()),
        )

        if ctx.verb in _BODY_VERBS and self.pipeline.allows(ctx, Phase.PRE_RESPONSE):
            await self._read_payload(ctx, request)

        return ctx

    async def _read_payload(self, ctx: AuditContext, request: Request) -> None:
        if not is_json_content(request.headers.get("content-type")):
            # proxied or binary body, left for the handler to stream
            ctx.payload_is_stream = True
            return

        body = await request.body()
        if not body:
            return
        try:
            ctx.payload = json.loads(body)
        except ValueError:
            logger.warning("audit_payload_unparsable", path=ctx.path, request_id=ctx.request_id)

    async def _observe(self, ctx: AuditContext, response: Response) -> ObservedResponse:
        """
        Materialize the response body when the pipeline needs it.

        The consumed chunks are replayed to the client unchanged.
        """
        status_code = response.status_code
        if not (
            self.pipeline.wants_response_body(ctx, status_code)
            and is_json_content(response.headers.get("content-type"))
            and hasattr(response, "body_iterator")
        ):
            return ObservedResponse(status_code=status_code)

        chunks: List[bytes] = [chunk async for chunk in response.body_iterator]
        response.body_iterator = _replay(chunks)

        raw = b"".join(
            chunk if isinstance(chunk, bytes) else chunk.encode() for chunk in chunks
        )
        try:
            body = json.loads(raw) if raw else None
        except ValueError:
            logger.warning("audit_response_unparsable", path=ctx.path, request_id=ctx.request_id)
            return ObservedResponse(status_code=status_code)

        return ObservedResponse(status_code=status_code, body=body, is_stream=False)


async def _replay(chunks: List[bytes]):
    for chunk in chunks:
        yield chunk
