"""
Shared pytest fixtures available to every test file automatically.
No imports needed in test files — pytest discovers this by convention.
"""

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from tortoise import Tortoise, connections

from roombooking.deps import get_actor, get_now, get_rooms_client
from roombooking.main import TORTOISE_MODULES
from roombooking.routers.booking import router

from .factories import NOW, make_actor

# ---------------------------------------------------------------------------
# Default no-op collaborators — prevent real HTTP / Redis calls in tests
# ---------------------------------------------------------------------------


def _noop_rooms_client():
    mock = MagicMock()
    mock.room_exists = AsyncMock(return_value=True)
    mock.get_by_ids = AsyncMock(return_value=[])
    return mock


@pytest.fixture(autouse=True)
def history_cache():
    """Replace the Redis-backed history cache with mocks (always a miss)."""
    base = "roombooking.routers.booking"
    with (
        patch(f"{base}.get_history_cache", AsyncMock(return_value=None)) as get_,
        patch(f"{base}.set_history_cache", AsyncMock()) as set_,
        patch(f"{base}.invalidate_history_cache", AsyncMock()) as invalidate,
    ):
        yield SimpleNamespace(get=get_, set=set_, invalidate=invalidate)


# ---------------------------------------------------------------------------
# App builder — used by all client fixtures
# ---------------------------------------------------------------------------


def build_app(actor=None, rooms_client=None, now=NOW) -> FastAPI:
    """
    Fresh FastAPI app with the caller identity, clock and rooms client
    overridden. Defaults to a "moderator" actor, the pinned NOW and a no-op
    rooms client that knows no room names.
    """
    app = FastAPI()
    app.include_router(router)

    actor = actor if actor is not None else make_actor()
    rc = rooms_client if rooms_client is not None else _noop_rooms_client()
    app.dependency_overrides[get_actor] = lambda: actor
    app.dependency_overrides[get_now] = lambda: now
    app.dependency_overrides[get_rooms_client] = lambda: rc
    return app


# ---------------------------------------------------------------------------
# Reusable client fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def client():
    return TestClient(build_app(), raise_server_exceptions=True)


@pytest.fixture()
def client_factory():
    def _make(actor=None, rooms_client=None, now=NOW) -> TestClient:
        return TestClient(
            build_app(actor=actor, rooms_client=rooms_client, now=now),
            raise_server_exceptions=True,
        )

    return _make


@pytest.fixture()
def anon_app():
    """
    App whose only override is the rooms client.
    Use this when the real get_actor / get_now deps should run.
    """
    app = FastAPI()
    app.include_router(router)
    app.dependency_overrides[get_rooms_client] = _noop_rooms_client
    return app


# ---------------------------------------------------------------------------
# Database — in-memory SQLite through Tortoise
# ---------------------------------------------------------------------------


@pytest.fixture()
def run_db():
    """
    Run an async scenario against a fresh in-memory database:

        def test_x(run_db):
            async def scenario():
                ...
            run_db(scenario)
    """

    def _run(scenario):
        async def _main():
            await Tortoise.init(
                db_url="sqlite://:memory:", modules=TORTOISE_MODULES, use_tz=True
            )
            await Tortoise.generate_schemas()
            try:
                return await scenario()
            finally:
                await connections.close_all()

        return asyncio.run(_main())

    return _run
