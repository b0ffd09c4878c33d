import copy
import json

import pytest
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response, StreamingResponse
from starlette.routing import Route
from starlette.testclient import TestClient

from audit_rest import AuditPipeline, AuditTrailMiddleware, audit_route

USER_HEADER = "x-test-user"


class HeaderSessionMiddleware:
    """Resolves the session username from a test header."""

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] == "http":
            headers = dict(scope["headers"])
            user = headers.get(USER_HEADER.encode())
            scope["session"] = {"userName": user.decode()} if user else {}
        await self.app(scope, receive, send)


class FakeFetcher:
    """Baseline fetcher returning canned data per read path."""

    def __init__(self, data=None):
        self.data = data if data is not None else {}
        self.calls = []

    async def fetch(self, ctx):
        self.calls.append(ctx.read_path)
        value = self.data.get(ctx.read_path)
        if isinstance(value, Exception):
            raise value
        return copy.deepcopy(value)


class UsersBackend:
    """In-memory resource the test routes operate on."""

    def __init__(self):
        self.users = {42: {"name": "A"}}
        self.reads = []

    def routes(self):
        async def read_user(request: Request):
            user_id = request.path_params["id"]
            self.reads.append(request.headers.get("x-audit-injected"))
            if user_id not in self.users:
                return JSONResponse({"error": "not_found"}, status_code=404)
            return JSONResponse(self.users[user_id])

        async def list_users(request: Request):
            return JSONResponse(list(self.users.values()))

        async def create_user(request: Request):
            body = await request.json()
            new_id = max(self.users, default=0) + 1
            self.users[new_id] = {"id": new_id, **body}
            return JSONResponse(self.users[new_id], status_code=201)

        @audit_route(skip_diff=["updated_at"])
        async def update_user(request: Request):
            user_id = request.path_params["id"]
            if user_id not in self.users:
                return JSONResponse({"error": "not_found"}, status_code=404)
            self.users[user_id] = await request.json()
            return JSONResponse(self.users[user_id])

        async def delete_user(request: Request):
            self.users.pop(request.path_params["id"], None)
            return Response(status_code=204)

        @audit_route(entity="users", get_path="/api/users/{id}")
        async def import_user(request: Request):
            # proxied body, never parsed by the middleware
            raw = await request.body()
            self.users[request.path_params["id"]] = json.loads(raw)
            return Response(status_code=204)

        @audit_route(entity="users", action="ACTIVATE")
        async def activate_user(request: Request):
            return JSONResponse({"activated": True})

        @audit_route(disabled=True)
        async def secret(request: Request):
            return JSONResponse({"secret": True})

        async def export_users(request: Request):
            async def rows():
                yield b'{"name": "A"}'
            return StreamingResponse(rows(), media_type="application/octet-stream")

        async def internal(request: Request):
            return JSONResponse({"ok": True})

        return [
            Route("/api/users", list_users, methods=["GET"]),
            Route("/api/users", create_user, methods=["POST"]),
            Route("/api/users/{id:int}", read_user, methods=["GET"]),
            Route("/api/users/{id:int}", update_user, methods=["PUT"]),
            Route("/api/users/{id:int}", delete_user, methods=["DELETE"]),
            Route("/api/users/{id:int}/import", import_user, methods=["PUT"]),
            Route("/api/users/{id:int}/activate", activate_user, methods=["POST"]),
            Route("/api/users/{id:int}/export", export_users, methods=["GET"]),
            Route("/api/secrets/{id:int}", secret, methods=["GET", "POST", "PUT", "DELETE"]),
            Route("/internal/users/{id:int}", internal, methods=["GET", "POST", "PUT", "DELETE"]),
        ]


def build_app(pipeline: AuditPipeline, backend: UsersBackend) -> Starlette:
    return Starlette(
        routes=backend.routes(),
        middleware=[
            Middleware(HeaderSessionMiddleware),
            Middleware(AuditTrailMiddleware, pipeline=pipeline),
        ],
    )


@pytest.fixture
def records():
    return []


@pytest.fixture
def backend():
    return UsersBackend()


@pytest.fixture
def make_client(records, backend):
    """Client factory taking settings overrides."""

    def factory(**settings):
        settings.setdefault("event_handler", records.append)
        pipeline = AuditPipeline(settings)
        client = TestClient(build_app(pipeline, backend), headers={USER_HEADER: "alice"})
        client.pipeline = pipeline
        return client

    return factory


@pytest.fixture
def client(make_client):
    return make_client()
