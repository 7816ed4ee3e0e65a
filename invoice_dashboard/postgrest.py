"""HTTP client for the hosted tabular store (PostgREST request shape).

Queries are described with :class:`TableQuery` values rather than chained
builder calls, so every request the data layer issues can be inspected and
tested without a network. :meth:`RemoteStore.execute` never raises for
failures the remote side can produce: HTTP error statuses, transport errors
and undecodable bodies all come back as a :class:`StoreError` inside the
:class:`QueryResult`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, List, Literal, Optional, Tuple

import httpx

FilterOperator = Literal["eq", "ilike"]
CountMode = Literal["exact"]

_RESERVED = re.compile(r'[,().:"\\\s]')
_CONTENT_RANGE = re.compile(r"^(?:\d+-\d+|\*)/(?P<total>\d+|\*)$")


@dataclass(frozen=True)
class Filter:
    column: str
    operator: FilterOperator
    value: str

    def as_param(self) -> Tuple[str, str]:
        return self.column, f"{self.operator}.{self.value}"

    def as_logic_term(self) -> str:
        return f"{self.column}.{self.operator}.{_quote_value(self.value)}"


@dataclass(frozen=True)
class TableQuery:
    """A single read against one table or view."""

    table: str
    columns: str = "*"
    filters: Tuple[Filter, ...] = ()
    or_filters: Tuple[Filter, ...] = ()
    order_by: Optional[str] = None
    descending: bool = False
    offset: Optional[int] = None
    limit: Optional[int] = None
    count: Optional[CountMode] = None
    head: bool = False


@dataclass(frozen=True)
class StoreError:
    """Structured failure reported by the remote store."""

    message: str
    code: Optional[str] = None
    details: Optional[str] = None
    hint: Optional[str] = None
    status: Optional[int] = None

    def __str__(self) -> str:
        parts = [self.message]
        if self.code:
            parts.append(f"code={self.code}")
        if self.status is not None:
            parts.append(f"status={self.status}")
        if self.details:
            parts.append(f"details={self.details}")
        return " ".join(parts)


@dataclass(frozen=True)
class QueryResult:
    data: List[Dict[str, object]] = field(default_factory=list)
    count: Optional[int] = None
    error: Optional[StoreError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def ilike_pattern(text: str) -> str:
    """Wrap ``text`` for a case-insensitive substring match."""

    # '*' is the PostgREST wildcard; literal '*' and '%' in user input would widen the match
    cleaned = text.replace("*", "").replace("%", "")
    # '_' matches any single character unless escaped
    cleaned = cleaned.replace("\\", "\\\\").replace("_", "\\_")
    return f"*{cleaned}*"


def _quote_value(value: str) -> str:
    if not _RESERVED.search(value):
        return value
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _normalize_base_url(base_url: str) -> str:
    cleaned = (base_url or "").strip()
    if not cleaned:
        raise ValueError("Remote store URL must not be empty")
    return cleaned.rstrip("/")


def _extract_error_message(payload: object, default: str) -> str:
    if isinstance(payload, dict):
        for key in ("message", "msg", "error_description", "error"):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    if isinstance(payload, str) and payload.strip():
        return payload.strip()
    return default


def _parse_content_range(value: Optional[str]) -> Optional[int]:
    if not value:
        return None
    match = _CONTENT_RANGE.match(value.strip())
    if match is None or match.group("total") == "*":
        return None
    return int(match.group("total"))


def build_request(
    query: TableQuery,
    *,
    rest_url: str,
    api_key: str,
    access_token: Optional[str] = None,
) -> httpx.Request:
    """Translate ``query`` into the HTTP request the remote store expects."""

    params: List[Tuple[str, str]] = [("select", query.columns)]
    params.extend(item.as_param() for item in query.filters)
    if query.or_filters:
        terms = ",".join(item.as_logic_term() for item in query.or_filters)
        params.append(("or", f"({terms})"))
    if query.order_by:
        direction = "desc" if query.descending else "asc"
        params.append(("order", f"{query.order_by}.{direction}"))
    if query.offset:
        params.append(("offset", str(query.offset)))
    if query.limit is not None:
        params.append(("limit", str(query.limit)))

    headers = {
        "apikey": api_key,
        "Authorization": f"Bearer {access_token or api_key}",
        "Accept": "application/json",
    }
    if query.count:
        headers["Prefer"] = f"count={query.count}"

    method = "HEAD" if query.head else "GET"
    url = f"{_normalize_base_url(rest_url)}/{query.table}"
    return httpx.Request(method, url, params=params, headers=headers)


def _error_from_response(response: httpx.Response) -> StoreError:
    default = f"Remote store request failed with status {response.status_code}"
    try:
        payload = response.json()
    except ValueError:
        payload = response.text
    if isinstance(payload, dict):
        return StoreError(
            message=_extract_error_message(payload, default),
            code=str(payload["code"]) if payload.get("code") is not None else None,
            details=str(payload["details"]) if payload.get("details") is not None else None,
            hint=str(payload["hint"]) if payload.get("hint") is not None else None,
            status=response.status_code,
        )
    return StoreError(message=_extract_error_message(payload, default), status=response.status_code)


class RemoteStore:
    """Execute :class:`TableQuery` values against the hosted store."""

    def __init__(
        self,
        rest_url: str,
        api_key: str,
        client: httpx.AsyncClient,
        *,
        access_token: Optional[str] = None,
    ) -> None:
        self._rest_url = _normalize_base_url(rest_url)
        self._api_key = api_key.strip()
        if not self._api_key:
            raise ValueError("API key must not be empty when using RemoteStore")
        self._client = client
        self._access_token = access_token

    @property
    def rest_url(self) -> str:
        return self._rest_url

    def with_access_token(self, access_token: Optional[str]) -> "RemoteStore":
        """Return a store that issues queries as the signed-in user."""

        return RemoteStore(
            self._rest_url,
            self._api_key,
            self._client,
            access_token=access_token,
        )

    def build_request(self, query: TableQuery) -> httpx.Request:
        return build_request(
            query,
            rest_url=self._rest_url,
            api_key=self._api_key,
            access_token=self._access_token,
        )

    async def execute(self, query: TableQuery) -> QueryResult:
        request = self.build_request(query)
        try:
            response = await self._client.send(request)
        except httpx.HTTPError as exc:
            return QueryResult(error=StoreError(message=f"Failed to contact remote store: {exc}"))

        if response.status_code >= 400:
            return QueryResult(error=_error_from_response(response))

        count = _parse_content_range(response.headers.get("content-range")) if query.count else None

        if query.head or not response.content:
            return QueryResult(data=[], count=count)

        try:
            payload = response.json()
        except ValueError:
            return QueryResult(
                error=StoreError(
                    message="Remote store returned an invalid response",
                    status=response.status_code,
                )
            )

        if isinstance(payload, dict):
            payload = [payload]
        if not isinstance(payload, list):
            return QueryResult(
                error=StoreError(
                    message="Remote store returned an unexpected response payload",
                    status=response.status_code,
                )
            )

        return QueryResult(data=[row for row in payload if isinstance(row, dict)], count=count)


__all__ = [
    "Filter",
    "QueryResult",
    "RemoteStore",
    "StoreError",
    "TableQuery",
    "build_request",
    "ilike_pattern",
]
