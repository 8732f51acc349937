"""Shared fixtures: an in-memory PostgREST stand-in served through httpx.MockTransport."""

import json
import re

import httpx
import pytest

from delegation_kernel.knowledge.storage import (
    FallbackStorage,
    LocalStorage,
    RemoteStorage,
)

_ILIKE = re.compile(r'(\w+)\.ilike\."((?:[^"\\]|\\.)*)"')
_QUOTED_ESCAPE = re.compile(r"\\(.)")


def _ilike_regex(quoted: str) -> "re.Pattern":
    """Translate a double-quoted PostgREST ilike value into a regex."""
    pattern = _QUOTED_ESCAPE.sub(r"\1", quoted)
    parts = []
    chars = iter(pattern)
    for ch in chars:
        if ch == "\\":
            parts.append(re.escape(next(chars, "")))
        elif ch in "*%":
            parts.append(".*")
        elif ch == "_":
            parts.append(".")
        else:
            parts.append(re.escape(ch))
    return re.compile("".join(parts), re.IGNORECASE | re.DOTALL)


class FakePostgrest:
    """Just enough of the PostgREST dialect for RemoteStorage."""

    def __init__(self):
        self.tables = {}
        self.requests = []
        self.available = True
        # When set, every GET answers 200 with this raw body
        self.garbled_body = None

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.available:
            raise httpx.ConnectError("connection refused", request=request)
        if self.garbled_body is not None and request.method == "GET":
            return httpx.Response(200, text=self.garbled_body)

        table = request.url.path.rsplit("/", 1)[-1]
        rows = self.tables.setdefault(table, {})
        params = dict(request.url.params)

        if request.method == "POST":
            record = json.loads(request.content)
            rows.setdefault(record["id"], {}).update(record)
            return httpx.Response(201)

        if request.method == "PATCH":
            record_id = params["id"][len("eq."):]
            rows[record_id].update(json.loads(request.content))
            return httpx.Response(204)

        matched = [dict(r) for r in rows.values() if self._matches(r, params)]
        total = len(matched)
        for column, desc in reversed(self._order(params.get("order"))):
            matched.sort(key=lambda r: r.get(column), reverse=desc)
        if "limit" in params:
            matched = matched[: int(params["limit"])]

        headers = {}
        if "count=exact" in request.headers.get("prefer", ""):
            headers["content-range"] = f"0-{max(len(matched) - 1, 0)}/{total}"
        return httpx.Response(200, json=matched, headers=headers)

    @staticmethod
    def _matches(row: dict, params: dict) -> bool:
        for column, condition in params.items():
            if column in ("select", "order", "limit"):
                continue
            if column == "or":
                clauses = _ILIKE.findall(condition)
                if not any(
                    _ilike_regex(quoted).fullmatch(str(row.get(col, "")))
                    for col, quoted in clauses
                ):
                    return False
                continue
            if condition.startswith("eq.") and str(row.get(column)) != condition[3:]:
                return False
        return True

    @staticmethod
    def _order(order):
        if not order:
            return []
        parts = [p.rsplit(".", 1) for p in order.split(",")]
        return [(column, direction == "desc") for column, direction in parts]


@pytest.fixture
def fake_remote():
    return FakePostgrest()


@pytest.fixture
def remote_storage(fake_remote):
    client = httpx.Client(
        base_url="http://remote.test",
        transport=httpx.MockTransport(fake_remote.handle),
    )
    return RemoteStorage("http://remote.test", client=client)


@pytest.fixture
def fallback_storage(remote_storage):
    return FallbackStorage(local=LocalStorage(), remote=remote_storage)
