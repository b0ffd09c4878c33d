"""
Audit Pipeline
==============
Orchestrates classification, baselines, diffing, record construction and
emission across the two interception points of a request.

Audit failures NEVER reach the caller: every phase catches, logs and
returns, and the business operation runs regardless.
"""

import copy
from typing import Any, Mapping, Optional, Union
import structlog

from ..baseline import BaselineFetcher, InjectedReadFetcher
from ..classifier import Phase, RequestClassifier
from ..config.settings import AuditSettings, load_settings
from ..diff import diff
from ..events import AuditEmitter, AuditEventBus, Handler
from ..exceptions import AuditError, BaselineUnavailableError
from ..metrics import record_baseline_lookup, record_error
from ..records.builder import create_action, create_mutation, resolve_entity_id
from ..records.enums import HttpVerb
from ..records.models import AuditRecord
from ..stores.base import KeyValueStore
from ..stores.cache import PreStateCache
from ..stores.pending import PendingMutationStore
from .context import AuditContext, ObservedResponse

logger = structlog.get_logger(__name__)


class AuditPipeline:
    """
    Owns the stores, the fetcher and the emitter of one application.

    Usage:
        pipeline = AuditPipeline({"client_id": "billing"})
        app.add_middleware(AuditTrailMiddleware, pipeline=pipeline)
    """

    def __init__(
        self,
        settings: Union[AuditSettings, Mapping[str, Any], None] = None,
        cache: Optional[PreStateCache] = None,
        pending: Optional[KeyValueStore] = None,
        fetcher: Optional[BaselineFetcher] = None,
        bus: Optional[AuditEventBus] = None,
    ):
        self.settings = load_settings(settings)
        self.cache = cache if cache is not None else PreStateCache(
            expires_in_ms=self.settings.cache_expires_in,
            enabled=not self.settings.disable_cache,
        )
        self.pending = pending if pending is not None else PendingMutationStore()
        self.fetcher = fetcher or InjectedReadFetcher(self.settings.injected_header)
        self.classifier = RequestClassifier(self.settings.is_auditable)
        self.emitter = AuditEmitter(
            self.pending,
            channel=self.settings.emit_event_name,
            handler=self.settings.event_handler,
            bus=bus,
        )

    def subscribe(self, handler: Handler) -> None:
        self.emitter.subscribe(handler)

    async def start(self) -> None:
        """Start the periodic cache sweep (call from the host lifespan)."""
        self.cache.start_sweeper()

    async def stop(self) -> None:
        await self.cache.stop_sweeper()
        await self.emitter.bus.drain()

    def pending_key(self, ctx: AuditContext) -> str:
        if self.settings.request_scoped_pending:
            return f"{ctx.endpoint}#{ctx.request_id}"
        return ctx.endpoint

    def discard(self, ctx: AuditContext) -> None:
        """Drop whatever the request left pending (request-scoped keys only)."""
        if self.settings.request_scoped_pending:
            self.pending.delete(self.pending_key(ctx))

    def allows(self, ctx: AuditContext, phase: Phase) -> bool:
        return self.classifier.allows(ctx.route, ctx.username, ctx.path, ctx.method, phase)

    def wants_response_body(self, ctx: AuditContext, status_code: int) -> bool:
        """Whether the pre-response phase will look at the response body."""
        return (
            200 <= status_code < 300
            and not (ctx.injected and ctx.verb is HttpVerb.READ)
            and ctx.verb in (HttpVerb.READ, HttpVerb.CREATE)
            and self.allows(ctx, Phase.PRE_RESPONSE)
        )

    # ------------------------------------------------------------------
    # Pre-handler phase
    # ------------------------------------------------------------------

    async def pre_handler(self, ctx: AuditContext) -> None:
        try:
            if not self.allows(ctx, Phase.PRE_HANDLER):
                return

            if ctx.verb is HttpVerb.UPDATE:
                await self._prepare_update(ctx)
            elif ctx.verb is HttpVerb.DELETE:
                await self._prepare_delete(ctx)
        except Exception as e:
            self._handle_error(ctx, Phase.PRE_HANDLER, e)

    async def _obtain_baseline(self, ctx: AuditContext) -> Any:
        baseline = None
        if not self.settings.disable_cache:
            baseline = self.cache.get(ctx.read_endpoint)

        if baseline is None:
            baseline = await self.fetcher.fetch(ctx)
            record_baseline_lookup("fetch")
        else:
            # consumed: the update invalidates the snapshot
            self.cache.delete(ctx.read_endpoint)
            record_baseline_lookup("cache")

        if baseline is None:
            raise BaselineUnavailableError(
                f"Cannot get data before update on {ctx.endpoint}",
                endpoint=ctx.endpoint,
            )
        return baseline

    async def _prepare_update(self, ctx: AuditContext) -> None:
        new_values = None if ctx.payload_is_stream else copy.deepcopy(ctx.payload)
        baseline = await self._obtain_baseline(ctx)

        if ctx.payload_is_stream:
            # proxied body: diff against the stored state after the handler
            ctx.baseline = baseline
            self.cache.set(ctx.read_endpoint, baseline)
            return

        original_values, new_values = diff(
            baseline, new_values, ctx.route.skip_diff, self.settings.diff_func
        )
        record = create_mutation(
            method=ctx.method,
            entity=ctx.entity,
            entity_id=resolve_entity_id(ctx.route.entity_keys, ctx.route_id, ctx.payload),
            username=ctx.username,
            original_values=original_values,
            new_values=new_values,
            client_id=self.settings.client_id,
        )
        self.pending.set(self.pending_key(ctx), record)

    async def _prepare_delete(self, ctx: AuditContext) -> None:
        # the entity is about to disappear, a cached snapshot is not trusted
        original_values = await self.fetcher.fetch(ctx)
        record_baseline_lookup("fetch")

        record = create_mutation(
            method=ctx.method,
            entity=ctx.entity,
            entity_id=resolve_entity_id(ctx.route.entity_keys, ctx.route_id, original_values),
            username=ctx.username,
            original_values=original_values,
            client_id=self.settings.client_id,
        )
        self.pending.set(self.pending_key(ctx), record)

    # ------------------------------------------------------------------
    # Pre-response phase
    # ------------------------------------------------------------------

    async def pre_response(self, ctx: AuditContext, response: ObservedResponse) -> None:
        try:
            if not self.allows(ctx, Phase.PRE_RESPONSE) or ctx.verb is HttpVerb.OTHER:
                return

            record = await self._finalize(ctx, response)

            if self._should_emit(ctx):
                self.emitter.emit(record, self.pending_key(ctx))
        except Exception as e:
            self._handle_error(ctx, Phase.PRE_RESPONSE, e)

    async def _finalize(self, ctx: AuditContext, response: ObservedResponse) -> Optional[AuditRecord]:
        verb = ctx.verb
        action = ctx.route.action
        record = None

        if not response.succeeded:
            return None

        if action and verb in (HttpVerb.CREATE, HttpVerb.UPDATE):
            record = self._custom_action(ctx)
        elif verb is HttpVerb.READ and not ctx.injected:
            record = self._read_action(ctx, response)
        elif verb is HttpVerb.UPDATE:
            record = await self._finish_update(ctx)
        elif verb is HttpVerb.DELETE:
            record = self.pending.get(self.pending_key(ctx))
        elif verb is HttpVerb.CREATE:
            record = self._created(ctx, response)

        return record

    def _should_emit(self, ctx: AuditContext) -> bool:
        # only baseline reads are marked, a marked mutation is still audited
        if ctx.verb is not HttpVerb.READ:
            return True
        return not ctx.injected and self.settings.audit_get_requests

    def _custom_action(self, ctx: AuditContext) -> AuditRecord:
        payload = ctx.payload if isinstance(ctx.payload, Mapping) else {}
        id_value = ctx.route_id
        if id_value is None:
            id_value = payload.get(ctx.route.id_param)

        return create_action(
            entity=ctx.entity,
            entity_id=resolve_entity_id(ctx.route.entity_keys, id_value, payload),
            username=ctx.username,
            data=payload,
            action=ctx.route.action,
            client_id=self.settings.client_id,
        )

    def _read_action(self, ctx: AuditContext, response: ObservedResponse) -> AuditRecord:
        id_value = ctx.route_id

        if (
            id_value is not None
            and not self.settings.disable_cache
            and not response.is_stream
            and response.body is not None
        ):
            self.cache.set(ctx.read_endpoint, response.body)

        action = ctx.route.action.upper() if ctx.route.action else None
        return create_action(
            entity=ctx.entity,
            entity_id=resolve_entity_id(ctx.route.entity_keys, id_value),
            username=ctx.username,
            data=dict(ctx.query),
            action=action,
            client_id=self.settings.client_id,
        )

    async def _finish_update(self, ctx: AuditContext) -> Optional[AuditRecord]:
        if not ctx.payload_is_stream:
            return self.pending.get(self.pending_key(ctx))

        baseline = ctx.baseline
        if baseline is None:
            raise BaselineUnavailableError(
                f"Cannot get data before update on {ctx.endpoint}",
                endpoint=ctx.endpoint,
            )
        current = await self.fetcher.fetch(ctx)

        original_values, new_values = diff(
            baseline, current, ctx.route.skip_diff, self.settings.diff_func
        )
        record = create_mutation(
            method=ctx.method,
            entity=ctx.entity,
            entity_id=resolve_entity_id(ctx.route.entity_keys, ctx.route_id, current),
            username=ctx.username,
            original_values=original_values,
            new_values=new_values,
            client_id=self.settings.client_id,
        )
        self.cache.delete(ctx.read_endpoint)
        return record

    def _created(self, ctx: AuditContext, response: ObservedResponse) -> AuditRecord:
        body = response.body
        from_response = not response.is_stream and isinstance(body, Mapping) and bool(body)
        data = body if from_response else ctx.payload

        id_value = data.get(ctx.route.id_param) if isinstance(data, Mapping) else None
        return create_mutation(
            method=ctx.method,
            entity=ctx.entity,
            entity_id=resolve_entity_id(ctx.route.entity_keys, id_value, data),
            username=ctx.username,
            new_values=data,
            client_id=self.settings.client_id,
        )

    # ------------------------------------------------------------------
    # Errors
    # ------------------------------------------------------------------

    def _handle_error(self, ctx: AuditContext, phase: Phase, error: Exception) -> None:
        kind = error.kind if isinstance(error, AuditError) else "internal"
        ctx.errors.append(str(error))
        record_error(phase.value, kind)

        log = logger.error if self.settings.show_errors_on_stderr else logger.debug
        log(
            "audit_error",
            phase=phase.value,
            kind=kind,
            endpoint=ctx.endpoint,
            request_id=ctx.request_id,
            error=str(error),
        )
