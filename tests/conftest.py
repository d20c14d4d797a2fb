"""Shared fixtures: an in-memory PostgREST stand-in and recording fakes."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any

import httpx
import pytest

from barbe.config import Settings
from barbe.database import SupabaseClient
from barbe.main import create_app
from barbe.services.push import PushDeliveryError

RESERVED_PARAMS = {"select", "order", "limit", "offset"}


def _as_text(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _compare(left: Any, right: str) -> int:
    """Three-way compare, as instants when both sides parse as ISO datetimes."""
    try:
        a, b = datetime.fromisoformat(str(left)), datetime.fromisoformat(right)
    except ValueError:
        a, b = _as_text(left), right
    return (a > b) - (a < b)


def _matches(row: dict, column: str, expression: str) -> bool:
    negate = expression.startswith("not.")
    if negate:
        expression = expression[4:]
    op, _, value = expression.partition(".")
    current = row.get(column)
    if op == "eq":
        result = _as_text(current) == value
    elif op == "neq":
        result = _as_text(current) != value
    elif op == "lte":
        result = current is not None and _compare(current, value) <= 0
    elif op == "lt":
        result = current is not None and _compare(current, value) < 0
    elif op == "gte":
        result = current is not None and _compare(current, value) >= 0
    elif op == "gt":
        result = current is not None and _compare(current, value) > 0
    elif op == "in":
        result = _as_text(current) in value.strip("()").split(",")
    elif op == "is":
        result = _as_text(current) == value
    else:
        raise AssertionError(f"unsupported filter {op}")
    return not result if negate else result


class FakeStore:
    """Just enough PostgREST for the backend: filters, insert, patch, delete."""

    def __init__(self):
        self.tables: dict[str, list[dict]] = {}
        self.requests: list[httpx.Request] = []
        self.failures: dict[tuple[str, str], int] = {}
        self.missing_columns: dict[str, set[str]] = {}
        self._next_id = 1

    # -- setup helpers -------------------------------------------------

    def seed(self, table: str, *rows: dict) -> list[dict]:
        stored = []
        for row in rows:
            row = dict(row)
            if "id" not in row:
                row["id"] = self._new_id()
            self.tables.setdefault(table, []).append(row)
            stored.append(row)
        return stored

    def rows(self, table: str) -> list[dict]:
        return self.tables.get(table, [])

    def fail(self, method: str, table: str, status: int = 500) -> None:
        self.failures[(method.upper(), table)] = status

    def calls(self, method: str | None = None, table: str | None = None) -> list[httpx.Request]:
        return [
            r for r in self.requests
            if (method is None or r.method == method.upper())
            and (table is None or r.url.path.rsplit("/", 1)[-1] == table)
        ]

    def _new_id(self) -> int:
        value = self._next_id
        self._next_id += 1
        return value

    # -- transport -----------------------------------------------------

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        table = request.url.path.rsplit("/", 1)[-1]
        method = request.method

        status = self.failures.get((method, table))
        if status:
            return httpx.Response(status, json={"message": "forced failure"})

        filters = [
            (key, value) for key, value in request.url.params.multi_items()
            if key not in RESERVED_PARAMS
        ]
        rows = self.tables.setdefault(table, [])
        selected = [r for r in rows if all(_matches(r, c, e) for c, e in filters)]

        if method == "GET":
            return httpx.Response(200, json=selected)

        body = json.loads(request.content) if request.content else None

        if method == "POST":
            new_rows = body if isinstance(body, list) else [body]
            inserted = []
            for row in new_rows:
                row = dict(row)
                row.setdefault("id", self._new_id())
                rows.append(row)
                inserted.append(row)
            return httpx.Response(201, json=inserted)

        if method == "PATCH":
            unknown = set(body) & self.missing_columns.get(table, set())
            if unknown:
                return httpx.Response(400, json={"message": f"column {sorted(unknown)[0]} does not exist"})
            for row in selected:
                row.update(body)
            return httpx.Response(200, json=selected)

        if method == "DELETE":
            self.tables[table] = [r for r in rows if r not in selected]
            return httpx.Response(200, json=selected)

        return httpx.Response(405)


class FakePushSender:
    """Records deliveries; endpoints listed in `failures` raise PushDeliveryError."""

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self.sent: list[tuple[str, dict]] = []
        self.failures: dict[str, PushDeliveryError] = {}

    async def send(self, subscription, payload):
        error = self.failures.get(subscription.endpoint)
        if error is not None:
            raise error
        self.sent.append((subscription.endpoint, payload))
        return {"status": 201, "body": ""}


class FakeNotifier:
    def __init__(self):
        self.calls: list[tuple[Any, Any]] = []

    async def notify(self, appointment, reason):
        self.calls.append((appointment, reason))


def make_settings(**overrides) -> Settings:
    values = {
        "SUPABASE_URL": "https://demo.supabase.co",
        "SUPABASE_KEY": "anon-key",
        "SUPABASE_SERVICE_ROLE_KEY": "service-key",
        "TIMEZONE": "UTC",
        "ENABLE_SWEEPS": False,
        "VAPID_PUBLIC_KEY": "vapid-public",
        "VAPID_PRIVATE_KEY": "vapid-private",
        "TELEGRAM_BOT_TOKEN": None,
        "TELEGRAM_CHAT_ID": None,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
async def store(settings, fake_store, sleeps):
    async def record_sleep(delay: float) -> None:
        sleeps.append(delay)

    http_client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: fake_store.handler(request)))
    client = SupabaseClient(settings, http_client=http_client, sleep=record_sleep)
    yield client
    await http_client.aclose()


@pytest.fixture
def push_sender() -> FakePushSender:
    return FakePushSender()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
async def api(settings, store, push_sender, notifier):
    app = create_app(settings, store=store, push_sender=push_sender, notifier=notifier)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://barbe.test") as client:
        yield client


@pytest.fixture
def settings_factory():
    return make_settings
