# tests/conftest.py
import json
import random
from concurrent.futures import ThreadPoolExecutor

import pytest

from tsfview.core.errors import FetchError
from tsfview.services.fetch import ResilientFetcher, ResponseCache


class FakeResponse:
    """Streams its body in ``chunk_size`` pieces, calling ``on_chunk`` before each."""

    encoding = "utf-8"

    def __init__(self, status_code=200, body=None, content_type="application/json",
                 chunk_size=None, on_chunk=None):
        self.status_code = status_code
        self.headers = {"content-type": content_type}
        text = body if isinstance(body, str) else json.dumps(body)
        self.content = text.encode("utf-8")
        self.chunk_size = chunk_size
        self.on_chunk = on_chunk
        self.closed = False

    def iter_content(self, chunk_size=1):
        size = self.chunk_size or max(1, len(self.content))
        for start in range(0, len(self.content), size):
            if self.on_chunk:
                self.on_chunk()
            yield self.content[start:start + size]

    def close(self):
        self.closed = True


class FakeSession:
    """Plays back ``script`` one item per request; exceptions are raised."""

    def __init__(self, script):
        self.script = list(script)
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        item = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(item, Exception):
            raise item
        return item

    def close(self):
        pass


class StubClient:
    """Stands in for ``QueryClient``: rows per view, or an exception to raise."""

    def __init__(self, rows_by_view=None, ids=None, months=None):
        self.rows_by_view = rows_by_view or {}
        self.ids = ids or []
        self.months = months or []
        self.queries = []

    def query_view(self, forecast_id, date_from, date_to, view=None, **kwargs):
        self.queries.append((forecast_id, date_from, date_to, view))
        rows = self.rows_by_view.get(view, [])
        if isinstance(rows, Exception):
            raise rows
        return {"rows": rows, "total": len(rows)}

    def list_forecast_ids(self, view=None, **kwargs):
        if isinstance(self.ids, Exception):
            raise self.ids
        return self.ids

    def available_months(self, forecast_id, view=None):
        return self.months


@pytest.fixture
def make_fetcher():
    created = []

    def _make(session, **kwargs):
        kwargs.setdefault("cache", ResponseCache(maxsize=None))
        kwargs.setdefault("executor", ThreadPoolExecutor(max_workers=4))
        kwargs.setdefault("sleep", lambda s: None)
        kwargs.setdefault("rng", random.Random(7))
        fetcher = ResilientFetcher("http://engine.test", session=session, **kwargs)
        created.append(fetcher)
        return fetcher

    yield _make
    for f in created:
        f.executor.shutdown(wait=True)


@pytest.fixture
def scenario_rows():
    """Sparse rows for April 2022: one actual, one forecast with bounds."""
    return [
        {"date": "2022-04-05", "value": 12},
        {"date": "2022-04-10", "fv": 15, "low": 10, "high": 20},
    ]


@pytest.fixture
def fetch_failure():
    return FetchError("POST /views/query failed: timed out")
