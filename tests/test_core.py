"""
Unit Tests for audit-rest Components
====================================
Diff engine, record builder, stores, classifier and settings.
"""

import asyncio
from datetime import datetime

import pytest


class TestDiff:
    """Tests for the diff engine."""

    def test_skip_fields_removed_from_both_sides(self):
        """Should drop skipped keys before comparing."""
        from audit_rest.diff import diff

        original, updated = diff(
            {"name": "A", "updated_at": 1},
            {"name": "B", "updated_at": 2},
            skip_fields=["updated_at"],
        )

        assert original == {"name": "A"}
        assert updated == {"name": "B"}

    def test_inputs_are_not_mutated(self):
        """Should work on copies of the inputs."""
        from audit_rest.diff import diff

        original = {"name": "A", "secret": "x"}
        diff(original, {"name": "B"}, skip_fields=["secret"])

        assert original == {"name": "A", "secret": "x"}

    def test_changed_fields_against_itself_is_empty(self):
        """Diffing a map against itself should yield no changes."""
        from audit_rest.diff import changed_fields, diff

        values = {"name": "A", "age": 30, "tags": ["x"], "updated_at": 5}

        original, updated = diff(values, dict(values), ["updated_at"], changed_fields)

        assert original == {}
        assert updated == {}

    def test_changed_fields_keeps_only_differences(self):
        """Should report changed, added and removed keys."""
        from audit_rest.diff import changed_fields, diff

        original, updated = diff(
            {"name": "A", "age": 30, "gone": True},
            {"name": "A", "age": 31, "new": 1},
            strategy=changed_fields,
        )

        assert original == {"age": 30, "gone": True}
        assert updated == {"age": 31, "new": 1}

    def test_missing_sides_become_empty(self):
        """None inputs should diff as empty maps."""
        from audit_rest.diff import diff

        assert diff(None, {"a": 1}) == ({}, {"a": 1})


class TestRecordBuilder:
    """Tests for mutation and action construction."""

    @pytest.mark.parametrize("method,action", [
        ("PUT", "UPDATE"),
        ("PATCH", "UPDATE"),
        ("POST", "CREATE"),
        ("DELETE", "DELETE"),
    ])
    def test_mutation_action_from_verb(self, method, action):
        """Should derive the default action from the HTTP verb."""
        from audit_rest import create_mutation

        record = create_mutation(method.lower(), "users", 1, "alice")

        assert record.action == action
        assert record.method == method

    def test_explicit_action_wins(self):
        """Should keep an overridden action."""
        from audit_rest import create_mutation

        record = create_mutation("PUT", "users", 1, "alice", action="RENAME")

        assert record.action == "RENAME"

    def test_action_defaults_to_search(self):
        """Should default actions to SEARCH with empty data."""
        from audit_rest import AuditOutcome, create_action

        record = create_action("users", None, "alice")

        assert record.action == "SEARCH"
        assert record.data == {}
        assert record.outcome is AuditOutcome.SUCCESS

    def test_mutation_schema_omits_unobserved_values(self):
        """A delete should carry only originalValues."""
        from audit_rest import create_mutation

        record = create_mutation(
            "DELETE", "users", 42, "alice",
            original_values={"name": "A"}, client_id="crm",
        )
        emitted = record.to_dict()

        assert emitted["application"] == "crm"
        assert emitted["type"] == "MUTATION"
        assert emitted["outcome"] == "SUCCESS"
        assert emitted["body"]["originalValues"] == {"name": "A"}
        assert "newValues" not in emitted["body"]
        assert datetime.fromisoformat(emitted["body"]["timestamp"])

    def test_action_schema(self):
        """Should serialize actions with their data."""
        from audit_rest import create_action

        emitted = create_action("users", 7, "bob", data={"q": "x"}).to_dict()

        assert emitted["type"] == "ACTION"
        assert emitted["body"]["entityId"] == 7
        assert emitted["body"]["data"] == {"q": "x"}

    def test_entity_from_route_template(self):
        """Should use the last literal segment of the template."""
        from audit_rest.records import resolve_entity

        assert resolve_entity(None, "/api/users/{id:int}", "/api/users/42") == "users"
        assert resolve_entity("people", "/api/users/{id}") == "people"
        assert resolve_entity(None, None, "/api/orders/17") == "orders"

    def test_entity_id_prefers_entity_keys(self):
        """Should extract key fields before falling back to the id param."""
        from audit_rest.records import resolve_entity_id

        data = {"code": "X1", "region": "eu", "name": "A"}

        assert resolve_entity_id(["code"], 42, data) == "X1"
        assert resolve_entity_id(["code", "region"], 42, data) == {"code": "X1", "region": "eu"}
        assert resolve_entity_id(["missing"], 42, data) == 42
        assert resolve_entity_id([], None, data) is None


class TestPreStateCache:
    """Tests for the baseline cache."""

    def test_put_get_delete(self):
        """Should overwrite, return and evict entries."""
        from audit_rest import PreStateCache

        cache = PreStateCache()
        cache.put("get:/api/users/1", {"name": "A"})
        cache.set("get:/api/users/1", {"name": "B"})

        assert cache.get("get:/api/users/1") == {"name": "B"}

        cache.delete("get:/api/users/1")
        assert cache.get("get:/api/users/1") is None

    def test_whole_cache_expires_at_once(self):
        """Entries of one generation should be dropped together."""
        from audit_rest import PreStateCache

        now = [0.0]
        cache = PreStateCache(expires_in_ms=1000, clock=lambda: now[0])

        cache.set("a", 1)
        now[0] = 0.9
        cache.set("b", 2)
        assert cache.get("a") == 1

        now[0] = 1.0
        assert cache.get("a") is None
        assert cache.get("b") is None
        assert len(cache) == 0

    def test_disabled_cache_is_inert(self):
        """A disabled cache should always miss."""
        from audit_rest import PreStateCache

        cache = PreStateCache(enabled=False)
        cache.set("a", 1)

        assert cache.get("a") is None
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_background_sweeper_clears(self):
        """The sweeper should empty the cache every interval."""
        from audit_rest import PreStateCache

        cache = PreStateCache(expires_in_ms=20)
        cache.start_sweeper()
        try:
            cache._entries["a"] = 1
            await asyncio.sleep(0.08)
            assert len(cache) == 0
            assert cache.sweeping
        finally:
            await cache.stop_sweeper()

        assert not cache.sweeping


class TestPendingMutationStore:
    """Tests for the pending record slot."""

    def test_last_write_wins(self):
        """A second write before consumption should overwrite."""
        from audit_rest import PendingMutationStore, create_mutation

        store = PendingMutationStore()
        first = create_mutation("PUT", "users", 1, "alice")
        second = create_mutation("PUT", "users", 1, "bob")

        store.set("put:/api/users/1", first)
        store.set("put:/api/users/1", second)

        assert len(store) == 1
        assert store.get("put:/api/users/1") is second

        store.delete("put:/api/users/1")
        assert "put:/api/users/1" not in store

    def test_satisfies_store_interface(self):
        """Both stores should implement the keyed-store capability."""
        from audit_rest import KeyValueStore, PendingMutationStore, PreStateCache

        assert isinstance(PendingMutationStore(), KeyValueStore)
        assert isinstance(PreStateCache(), KeyValueStore)

    def test_endpoint_key(self):
        from audit_rest import endpoint_key

        assert endpoint_key("PUT", "/api/users/42") == "put:/api/users/42"


class TestRequestClassifier:
    """Tests for the auditing gate."""

    def _classifier(self):
        from audit_rest import RequestClassifier
        from audit_rest.config import default_is_auditable

        return RequestClassifier(default_is_auditable)

    def test_allows_authenticated_api_request(self):
        from audit_rest import Phase, RouteAuditConfig

        assert self._classifier().allows(
            RouteAuditConfig(), "alice", "/api/users", "GET", Phase.PRE_RESPONSE
        )

    @pytest.mark.parametrize("route,username,path", [
        ({"disabled": True}, "alice", "/api/users"),
        ({}, None, "/api/users"),
        ({}, "", "/api/users"),
        ({}, "alice", "/internal/users"),
    ])
    def test_skips(self, route, username, path):
        """Should skip disabled routes, anonymous users and foreign paths."""
        from audit_rest import Phase, RouteAuditConfig

        for phase in Phase:
            assert not self._classifier().allows(
                RouteAuditConfig(**route), username, path, "PUT", phase
            )

    def test_action_override_deferred_to_response(self):
        """Custom actions should only be handled after the handler."""
        from audit_rest import Phase, RouteAuditConfig

        route = RouteAuditConfig(action="ACTIVATE")
        classifier = self._classifier()

        assert not classifier.allows(route, "alice", "/api/x", "POST", Phase.PRE_HANDLER)
        assert classifier.allows(route, "alice", "/api/x", "POST", Phase.PRE_RESPONSE)


class TestSettings:
    """Tests for configuration."""

    def test_defaults(self):
        from audit_rest import AuditSettings, passthrough

        settings = AuditSettings()

        assert settings.audit_get_requests is True
        assert settings.cache_expires_in == 300000
        assert settings.client_id == "client-app"
        assert settings.sid_username_attribute == "userName"
        assert settings.emit_event_name == "auditing"
        assert settings.diff_func is passthrough
        assert settings.is_auditable("/api/users", "GET")
        assert not settings.is_auditable("/health", "GET")

    def test_settings_are_frozen(self):
        from pydantic import ValidationError
        from audit_rest import AuditSettings

        settings = AuditSettings()
        with pytest.raises(ValidationError):
            settings.client_id = "other"

    def test_invalid_options_rejected(self):
        """Should raise AuditConfigError on bad or unknown options."""
        from audit_rest import AuditConfigError
        from audit_rest.config import load_settings

        with pytest.raises(AuditConfigError):
            load_settings({"cache_expires_in": 0})
        with pytest.raises(AuditConfigError):
            load_settings({"unknown_option": True})

    def test_from_env(self, monkeypatch):
        """Should read scalar options from AUDIT_* variables."""
        from audit_rest import AuditSettings

        monkeypatch.setenv("AUDIT_GET_REQUESTS", "false")
        monkeypatch.setenv("AUDIT_CLIENT_ID", "billing")
        monkeypatch.setenv("AUDIT_CACHE_EXPIRES_IN", "1000")

        settings = AuditSettings.from_env(emit_event_name="audit-events")

        assert settings.audit_get_requests is False
        assert settings.client_id == "billing"
        assert settings.cache_expires_in == 1000
        assert settings.emit_event_name == "audit-events"

    def test_route_read_path(self):
        """get_path should be formatted with the request path params."""
        from audit_rest import RouteAuditConfig

        plain = RouteAuditConfig()
        templated = RouteAuditConfig(get_path="/api/users/{id}", get_path_id="user_id")

        assert plain.read_path("/api/users/1", {"id": 1}) == "/api/users/1"
        assert templated.read_path("/api/teams/3/users/1", {"team": 3, "user_id": 1}) == "/api/users/1"

    def test_route_read_path_missing_param(self):
        from audit_rest import AuditConfigError, RouteAuditConfig

        route = RouteAuditConfig(get_path="/api/users/{uuid}")
        with pytest.raises(AuditConfigError):
            route.read_path("/api/users/1", {"id": 1})


class TestMetrics:
    """Tests for the audit counters."""

    def test_exposition_includes_emitted_records(self):
        from audit_rest import AuditEmitter, PendingMutationStore, create_action
        from audit_rest.metrics import get_metrics_text

        emitter = AuditEmitter(PendingMutationStore(), handler=lambda record: None)
        emitter.emit(create_action("users", 1, "alice"), "get:/api/users/1")

        text = get_metrics_text().decode()

        assert 'audit_records_emitted_total{type="ACTION"}' in text
        assert "audit_errors_total" in text


class TestEventBus:
    """Tests for publish/subscribe delivery."""

    def test_unsubscribed_handler_stops_receiving(self):
        from audit_rest import AuditEventBus, create_action

        bus = AuditEventBus()
        first, second = [], []
        bus.subscribe("auditing", first.append)
        bus.subscribe("auditing", second.append)

        bus.unsubscribe("auditing", first.append)
        bus.unsubscribe("auditing", first.append)
        delivered = bus.publish("auditing", create_action("users", 1, "alice"))

        assert delivered == 1
        assert first == []
        assert len(second) == 1

    def test_publish_to_all_subscribers(self):
        from audit_rest import AuditEventBus, create_action

        bus = AuditEventBus()
        first, second = [], []
        bus.subscribe("auditing", first.append)
        bus.subscribe("auditing", second.append)

        record = create_action("users", 1, "alice")

        assert bus.publish("auditing", record) == 2
        assert first == [record]
        assert second == [record]

    def test_failing_subscriber_does_not_stop_delivery(self):
        from audit_rest import AuditEventBus, create_action

        def broken(record):
            raise RuntimeError("sink down")

        bus = AuditEventBus()
        received = []
        bus.subscribe("auditing", broken)
        bus.subscribe("auditing", received.append)

        bus.publish("auditing", create_action("users", 1, "alice"))

        assert len(received) == 1

    @pytest.mark.asyncio
    async def test_coroutine_subscribers_are_scheduled(self):
        from audit_rest import AuditEventBus, create_action

        received = []

        async def sink(record):
            received.append(record)

        bus = AuditEventBus()
        bus.subscribe("auditing", sink)
        bus.publish("auditing", create_action("users", 1, "alice"))
        await bus.drain()

        assert len(received) == 1

    def test_emitter_registers_default_subscriber(self):
        """The channel should never be left without a subscriber."""
        from audit_rest import AuditEmitter, PendingMutationStore, log_audit_record

        emitter = AuditEmitter(PendingMutationStore(), channel="auditing")

        assert emitter.bus.subscribers("auditing") == [log_audit_record]

    def test_emit_clears_pending_and_rejects_none(self):
        from audit_rest import (
            AuditEmitter,
            NullRecordError,
            PendingMutationStore,
            create_mutation,
        )

        pending = PendingMutationStore()
        received = []
        emitter = AuditEmitter(pending, handler=received.append)
        record = create_mutation("PUT", "users", 1, "alice")
        pending.set("put:/api/users/1", record)

        emitter.emit(record, "put:/api/users/1")

        assert received == [record]
        assert "put:/api/users/1" not in pending

        with pytest.raises(NullRecordError):
            emitter.emit(None, "put:/api/users/1")


class TestLogging:
    """Tests for the structlog setup."""

    @pytest.fixture
    def restore_logging(self):
        import logging

        import structlog

        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield root
        root.handlers[:] = handlers
        root.setLevel(level)
        structlog.contextvars.clear_contextvars()
        structlog.reset_defaults()

    def test_errors_split_to_stderr(self, restore_logging):
        import logging
        import sys

        from audit_rest import configure_logging

        logger = configure_logging("crm-api", level="debug")

        streams = [handler.stream for handler in restore_logging.handlers]
        assert streams == [sys.stdout, sys.stderr]
        assert restore_logging.level == logging.DEBUG
        assert logger is not None

    def test_single_handler_without_stderr(self, restore_logging):
        from audit_rest import configure_logging

        configure_logging("crm-api", json_output=False, errors_to_stderr=False)

        assert len(restore_logging.handlers) == 1
