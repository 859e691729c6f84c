"""
Shared fixtures: an in-process PostgREST stand-in served with aiohttp, and
small in-memory doubles for the sync orchestrator tests.
"""

import asyncio
from datetime import datetime, timezone

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from flipdeck.api.client import RemoteStoreClient
from flipdeck.core.connectivity import ConnectivityState
from flipdeck.models.flashcards import Card, FlashcardSet
from flipdeck.storage.cache import BACKUP_SLOT, OFFLINE_SLOT, LocalCacheStore

OBJECT_ACCEPT = "application/vnd.pgrst.object+json"


def _ts(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


class FakePostgrest:
    """
    Enough of PostgREST for the two flashcard tables: eq filters, order,
    limit, upsert, insert-many, delete, and single-object responses.

    `fail_next[(method, table)] = status` makes the next matching request fail.
    `respond_next[(method, table)] = body` answers the next matching request with
    `body` as-is, whatever its shape.
    """

    def __init__(self):
        self.tables: dict[str, list[dict]] = {"flashcard_sets": [], "flashcards": []}
        self.fail_next: dict[tuple[str, str], int] = {}
        self.respond_next: dict[tuple[str, str], object] = {}
        self.requests: list[tuple[str, str]] = []
        self.api_keys: set[str] = set()

    def make_app(self) -> web.Application:
        app = web.Application()
        app.router.add_route("*", "/rest/v1/{table}", self._handle)
        return app

    def _filtered(self, table: str, query) -> list[dict]:
        rows = list(self.tables[table])
        for column, expr in query.items():
            if column in ("select", "order", "limit"):
                continue
            op, _, value = expr.partition(".")
            assert op == "eq", f"unsupported filter {expr}"
            rows = [r for r in rows if str(r.get(column)) == value]
        if order := query.get("order"):
            column, _, direction = order.partition(".")
            rows.sort(key=lambda r: _ts(r[column]), reverse=direction == "desc")
        if limit := query.get("limit"):
            rows = rows[: int(limit)]
        if query.get("select") == "id":
            rows = [{"id": r["id"]} for r in rows]
        return rows

    async def _handle(self, request: web.Request) -> web.Response:
        table = request.match_info["table"]
        self.requests.append((request.method, table))
        self.api_keys.add(request.headers.get("apikey", ""))

        if status := self.fail_next.pop((request.method, table), None):
            return web.json_response(
                {"code": "XX000", "message": "injected failure"}, status=status
            )
        if (request.method, table) in self.respond_next:
            return web.json_response(self.respond_next.pop((request.method, table)))
        if table not in self.tables:
            return web.json_response({"code": "42P01", "message": "no table"}, status=404)

        if request.method == "GET":
            rows = self._filtered(table, request.query)
            if request.headers.get("Accept") == OBJECT_ACCEPT:
                if len(rows) != 1:
                    return web.json_response(
                        {
                            "code": "PGRST116",
                            "message": "JSON object requested, multiple (or no) rows returned",
                        },
                        status=406,
                    )
                return web.json_response(rows[0])
            return web.json_response(rows)

        if request.method == "POST":
            payload = await request.json()
            rows = payload if isinstance(payload, list) else [payload]
            upsert = "merge-duplicates" in request.headers.get("Prefer", "")
            existing = {r["id"]: r for r in self.tables[table]}
            for row in rows:
                row.setdefault("created_at", datetime.now(timezone.utc).isoformat())
                if row["id"] in existing:
                    if not upsert:
                        return web.json_response(
                            {"code": "23505", "message": "duplicate key"}, status=409
                        )
                    existing[row["id"]].update(row)
                else:
                    self.tables[table].append(dict(row))
                    existing[row["id"]] = self.tables[table][-1]
            return web.Response(status=201)

        if request.method == "DELETE":
            doomed = {id(r) for r in self._filtered(table, request.query)}
            self.tables[table] = [r for r in self.tables[table] if id(r) not in doomed]
            return web.Response(status=204)

        return web.Response(status=405)

    def card_rows_for(self, set_id: str) -> list[dict]:
        return [r for r in self.tables["flashcards"] if r["set_id"] == set_id]


@pytest.fixture
def fake_store():
    return FakePostgrest()


@pytest.fixture
def backup_cache(tmp_path):
    return LocalCacheStore(tmp_path / "cache", BACKUP_SLOT)


@pytest.fixture
def offline_cache(tmp_path):
    return LocalCacheStore(tmp_path / "cache", OFFLINE_SLOT)


@pytest.fixture
def with_client(fake_store, backup_cache):
    """
    Runs `scenario(client)` against the fake server on a fresh event loop and
    returns its result.
    """

    def run(scenario):
        async def _main():
            async with TestServer(fake_store.make_app()) as server:
                client = RemoteStoreClient(
                    f"http://{server.host}:{server.port}",
                    "test-key",
                    backup=backup_cache,
                )
                async with client:
                    return await scenario(client)

        return asyncio.run(_main())

    return run


def make_set(title: str = "Capitals", n_cards: int = 1, **kwargs) -> FlashcardSet:
    cards = [
        Card(question=f"Question {i}?", answer=f"Answer {i}") for i in range(n_cards)
    ]
    return FlashcardSet(title=title, cards=cards, **kwargs)


@pytest.fixture
def set_factory():
    return make_set


class StubRemote:
    """In-memory remote double with switchable failures and latency."""

    def __init__(self, sets: list[FlashcardSet] | None = None):
        self.sets = {s.id: s for s in sets or []}
        self.delay = 0.0
        self.error: Exception | None = None
        self.saved: list[FlashcardSet] = []
        self.list_calls = 0

    async def _maybe_fail(self):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error

    async def list_sets(self):
        self.list_calls += 1
        await self._maybe_fail()
        return sorted(self.sets.values(), key=lambda s: s.created_at, reverse=True)

    async def get_set(self, set_id):
        await self._maybe_fail()
        return self.sets.get(set_id)

    async def save_set(self, flashcard_set):
        await self._maybe_fail()
        self.saved.append(flashcard_set)
        self.sets[flashcard_set.id] = flashcard_set

    async def delete_set(self, set_id):
        await self._maybe_fail()
        self.sets.pop(set_id, None)

    async def count_sets(self):
        await self._maybe_fail()
        return len(self.sets)


@pytest.fixture
def stub_remote():
    return StubRemote()


@pytest.fixture
def connectivity():
    return ConnectivityState(online=True)

