from contextlib import asynccontextmanager
from types import SimpleNamespace

import httpx
import pytest
import pytest_asyncio
import respx
from httpx import AsyncClient, ASGITransport

from app.config import Settings
from app.db import Database
from app.main import create_app
from app.nl2sql import OllamaClient
from app.pipeline import Pipeline
from app.routes import get_pipeline

OLLAMA_URL = "http://ollama.test"


def ollama_reply(content):
    return httpx.Response(
        200,
        json={
            "model": "test-model",
            "message": {"role": "assistant", "content": content},
            "done": True,
        },
    )


# ---------- In-memory stand-in for a psycopg async pool ----------

class FakeCursor:
    def __init__(self, pg):
        self.pg = pg
        self.description = None
        self._rows = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def execute(self, sql, params=None):
        self.pg.executed.append((sql, params))
        if self.pg.fail_with is not None:
            raise self.pg.fail_with
        columns, rows = self.pg.respond(sql, params)
        self.description = [SimpleNamespace(name=c) for c in columns] if columns is not None else None
        self._rows = rows

    async def fetchall(self):
        return list(self._rows)


class FakeConnection:
    def __init__(self, pg):
        self.pg = pg

    def cursor(self):
        return FakeCursor(self.pg)


class FakePool:
    def __init__(self, pg):
        self.pg = pg

    @asynccontextmanager
    async def connection(self):
        yield FakeConnection(self.pg)


class FakePostgres:
    """
    Answers the catalog queries from `tables` and user SQL from `results`
    (exact text -> (columns, rows) or an exception to raise).
    """

    def __init__(self, tables=None, views=(), results=None):
        self.tables = tables or {}
        self.views = list(views)
        self.results = results or {}
        self.executed = []
        self.fail_with = None
        self.pool = FakePool(self)

    @property
    def user_queries(self):
        return [sql for sql, _ in self.executed if "information_schema" not in sql and sql != "SELECT 1"]

    def respond(self, sql, params):
        if "information_schema.tables" in sql:
            names = sorted(self.tables) if "BASE TABLE" in sql else sorted([*self.tables, *self.views])
            return ["table_name"], [(n,) for n in names]
        if "information_schema.columns" in sql:
            table = params[0]
            cols = self.tables.get(table, [])
            if "is_nullable" in sql:
                return (
                    ["column_name", "data_type", "is_nullable", "column_default"],
                    [(c, t, "YES", None) for c, t in cols],
                )
            return ["column_name", "data_type"], list(cols)
        if sql == "SELECT 1":
            return ["?column?"], [(1,)]
        outcome = self.results.get(sql, ([], []))
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture
def fake_pg():
    return FakePostgres(
        tables={
            "users": [("id", "integer"), ("name", "text")],
            "orders": [("id", "integer"), ("user_id", "integer"), ("amount", "numeric")],
        },
        views=["user_totals"],
        results={
            "SELECT * FROM users;": (["id", "name"], [(1, "Ada"), (2, "Linus")]),
        },
    )


@pytest.fixture
def db(fake_pg):
    return Database(fake_pg.pool)


@pytest.fixture
def ollama():
    with respx.mock(base_url=OLLAMA_URL, assert_all_called=False) as router:
        yield router


@pytest.fixture
def reply():
    return ollama_reply


@pytest.fixture
def sleeps():
    return []


@pytest_asyncio.fixture
async def llm(sleeps):
    async def fake_sleep(seconds):
        sleeps.append(seconds)

    client = OllamaClient(base_url=OLLAMA_URL, model="test-model", sleep=fake_sleep)
    yield client
    await client.aclose()


@pytest.fixture
def pipeline(db, llm):
    return Pipeline(db, llm)


@pytest_asyncio.fixture
async def client(pipeline):
    app = create_app(Settings(log_level="WARNING"))
    app.dependency_overrides[get_pipeline] = lambda: pipeline

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
