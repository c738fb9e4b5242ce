import logging
import math
from typing import Any, Dict, Iterable, List, Optional

from ..core.config import IDS_LIMIT, PAGE_SIZE, VIEWS_SCOPE
from ..utils.time_windows import months_from_dates
from .fetch import FetchRequest, ResilientFetcher, request_key

logger = logging.getLogger(__name__)

# Canonical field -> accepted spellings in query-service rows
FIELD_ALIASES: Dict[str, tuple] = {
    "date": ("date", "dt", "day", "ds"),
    "value": ("value", "actual", "y"),
    "forecast_value": ("forecast_value", "fv", "forecast", "yhat"),
    "low": ("low", "lo", "yhat_lower"),
    "high": ("high", "hi", "yhat_upper"),
}
BASE_FIELDS = ("value", "forecast_value", "low", "high")


def _to_number(raw) -> Optional[float]:
    if raw is None or isinstance(raw, bool):
        return None
    try:
        num = float(raw)
    except (TypeError, ValueError):
        return None
    return num if math.isfinite(num) else None


def normalize_row(row: Dict[str, Any], aux_fields: Iterable[str] = ()) -> Optional[Dict[str, Any]]:
    """Map a raw query-service row onto canonical field names.

    Returns ``None`` for rows without a date.
    """
    if not isinstance(row, dict):
        return None
    out: Dict[str, Any] = {}
    for canonical, aliases in FIELD_ALIASES.items():
        raw = next((row[a] for a in aliases if row.get(a) is not None), None)
        if canonical == "date":
            if not raw:
                return None
            out["date"] = str(raw)[:10]
        else:
            out[canonical] = _to_number(raw)
    for name in aux_fields:
        out[name] = _to_number(row.get(name))
    return out


def normalize_rows(rows: Iterable[Dict[str, Any]], aux_fields: Iterable[str] = ()) -> List[Dict[str, Any]]:
    aux_fields = tuple(aux_fields)
    out = []
    for row in rows or []:
        norm = normalize_row(row, aux_fields)
        if norm is not None:
            out.append(norm)
    return out


def _rows_of(body) -> list:
    if isinstance(body, dict):
        return body.get("rows") or []
    if isinstance(body, list):
        return body
    return []


class QueryClient:
    """Typed access to the query service on top of a ``ResilientFetcher``."""

    def __init__(self, fetcher: ResilientFetcher, scope: str = VIEWS_SCOPE):
        self.fetcher = fetcher
        self.scope = scope

    def query_body(self, forecast_id: str, date_from: Optional[str], date_to: Optional[str],
                   view: Optional[str] = None, model: str = "", series: str = "",
                   page: int = 1, page_size: int = PAGE_SIZE) -> Dict[str, Any]:
        body = {
            "scope": self.scope,
            "model": model,
            "series": series,
            "forecast_id": forecast_id,
            "date_from": date_from,
            "date_to": date_to,
            "page": page,
            "page_size": page_size,
        }
        if view:
            body["view"] = view
        return body

    def query_view(self, forecast_id: str, date_from: Optional[str], date_to: Optional[str],
                   view: Optional[str] = None, refresh: bool = False, **kwargs) -> Dict[str, Any]:
        """Rows for ``forecast_id`` between two inclusive UTC days: ``{"rows": [...], "total": n}``."""
        body = self.query_body(forecast_id, date_from, date_to, view=view, **kwargs)
        key = request_key("/views/query", body)
        payload = self.fetcher.fetch_deduped(key, FetchRequest("POST", "/views/query", json=body), refresh=refresh)
        rows = _rows_of(payload)
        total = payload.get("total", len(rows)) if isinstance(payload, dict) else len(rows)
        logger.debug("Query %s %s..%s returned %d rows", forecast_id, date_from, date_to, len(rows))
        return {"rows": rows, "total": total}

    def list_forecast_ids(self, view: Optional[str] = None, model: str = "", series: str = "",
                          limit: int = IDS_LIMIT) -> List[Dict[str, str]]:
        params = {"scope": self.scope, "model": model, "series": series, "limit": limit}
        if view:
            params["view"] = view
        key = request_key("/views/ids", params)
        data = self.fetcher.fetch_deduped(key, FetchRequest("GET", "/views/ids", params=params))
        out = []
        for item in data if isinstance(data, list) else []:
            if isinstance(item, dict):
                ident = item.get("id", item.get("value"))
                name = item.get("name", item.get("label", ident))
                if ident is None:
                    continue
                out.append({"id": str(ident), "name": str(name)})
            elif item is not None:
                out.append({"id": str(item), "name": str(item)})
        return out

    def available_months(self, forecast_id: str, view: Optional[str] = None) -> List[str]:
        res = self.query_view(forecast_id, None, None, view=view)
        return months_from_dates(r["date"] for r in normalize_rows(res["rows"]))
