from __future__ import annotations

import re
import sys
from datetime import date, timedelta
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from invoice_dashboard.auth import AuthError, UserLookup  # noqa: E402
from invoice_dashboard.config import Settings  # noqa: E402
from invoice_dashboard.models import User  # noqa: E402
from invoice_dashboard.postgrest import QueryResult, StoreError, TableQuery  # noqa: E402
from invoice_dashboard.sessions import SIGNED_IN, SIGNED_OUT, AuthEvents, TokenPair  # noqa: E402


class FakeStore:
    """In-memory stand-in for the remote store that honours TableQuery semantics."""

    def __init__(self, tables: Dict[str, List[dict]], *, failing: Set[str] | None = None) -> None:
        self.tables = tables
        self.failing = set(failing or ())
        self.queries: List[TableQuery] = []
        self.access_tokens: List[Optional[str]] = []

    def with_access_token(self, access_token: Optional[str]) -> "FakeStore":
        self.access_tokens.append(access_token)
        return self

    async def execute(self, query: TableQuery) -> QueryResult:
        self.queries.append(query)
        if query.table in self.failing:
            return QueryResult(error=StoreError(message=f"relation {query.table} failed", code="XX000", status=500))

        rows = list(self.tables.get(query.table, []))
        for item in query.filters:
            rows = [row for row in rows if str(row.get(item.column)) == item.value]
        if query.or_filters:
            rows = [row for row in rows if any(_matches(row, item) for item in query.or_filters)]
        if query.order_by:
            rows.sort(key=lambda row: row[query.order_by], reverse=query.descending)

        count = len(rows) if query.count else None
        if query.columns == "count":
            return QueryResult(data=[{"count": len(rows)}])
        if query.head:
            return QueryResult(data=[], count=count)

        start = query.offset or 0
        end = start + query.limit if query.limit is not None else None
        return QueryResult(data=rows[start:end], count=count)


def _matches(row: dict, item) -> bool:
    needle = re.sub(r"\\(.)", r"\1", item.value.strip("*")).lower()
    return needle in str(row.get(item.column, "")).lower()


class FakeAuthClient:
    """Auth provider double keyed by access and refresh tokens."""

    def __init__(self) -> None:
        self.events = AuthEvents()
        self.users: Dict[str, User] = {}
        self.refreshable: Dict[str, Tuple[User, TokenPair]] = {}
        self.passwords: Dict[str, Tuple[str, User, TokenPair]] = {}
        self.unavailable = False
        self.lookups: List[Optional[TokenPair]] = []
        self.signed_out: List[Optional[TokenPair]] = []

    async def get_user(self, tokens: Optional[TokenPair]) -> UserLookup:
        self.lookups.append(tokens)
        if self.unavailable:
            raise AuthError("auth provider unreachable")
        if tokens is None:
            return UserLookup(user=None)
        user = self.users.get(tokens.access_token)
        if user is not None:
            return UserLookup(user=user)
        refreshed = self.refreshable.get(tokens.refresh_token)
        if refreshed is not None:
            return UserLookup(user=refreshed[0], refreshed=refreshed[1])
        return UserLookup(user=None)

    async def sign_in_with_password(self, email: str, password: str):
        entry = self.passwords.get(email)
        if entry is None or entry[0] != password:
            raise AuthError("Invalid login credentials", status=400)
        self.events.publish(SIGNED_IN, entry[1])
        return entry[1], entry[2]

    async def sign_out(self, tokens: Optional[TokenPair], *, user: Optional[User] = None) -> None:
        self.signed_out.append(tokens)
        self.events.publish(SIGNED_OUT, user)


CUSTOMERS = [
    {"id": "c1", "name": "Evil Rabbit", "email": "evil@rabbit.com", "image_url": "/customers/evil-rabbit.png"},
    {"id": "c2", "name": "Delba de Oliveira", "email": "delba@oliveira.com", "image_url": "/customers/delba.png"},
    {"id": "c3", "name": "Lee Robinson", "email": "lee@robinson.com", "image_url": "/customers/lee.png"},
]


def _invoice_rows(count: int) -> List[dict]:
    start = date(2023, 1, 1)
    rows = []
    for index in range(count):
        customer = CUSTOMERS[index % len(CUSTOMERS)]
        rows.append(
            {
                "id": f"inv-{index:02d}",
                "customer_id": customer["id"],
                "name": customer["name"],
                "email": customer["email"],
                "image_url": customer["image_url"],
                "amount": 1000 * (index + 1) + 50,
                "date": (start + timedelta(days=index)).isoformat(),
                "status": "paid" if index % 2 else "pending",
            }
        )
    return rows


def build_tables(invoice_count: int = 13) -> Dict[str, List[dict]]:
    invoices = _invoice_rows(invoice_count)
    paid = sum(row["amount"] for row in invoices if row["status"] == "paid")
    pending = sum(row["amount"] for row in invoices if row["status"] == "pending")
    return {
        "invoices_with_customers": invoices,
        "invoices": [
            {key: row[key] for key in ("id", "customer_id", "amount", "status", "date")}
            for row in invoices
        ],
        "customers": [dict(customer) for customer in CUSTOMERS],
        "revenue": [
            {"month": "Jan", "revenue": 2000},
            {"month": "Feb", "revenue": 1800},
            {"month": "Mar", "revenue": 2200},
        ],
        "invoice_status_totals": [{"paid": paid, "pending": pending}],
        "customers_with_totals": [
            {
                **customer,
                "total_invoices": 2,
                "total_pending": 125050,
                "total_paid": 4000,
            }
            for customer in CUSTOMERS
        ],
    }


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        supabase_url="https://project.supabase.co",
        supabase_anon_key="anon-key",
        secure_cookies=False,
    )


@pytest.fixture()
def store() -> FakeStore:
    return FakeStore(build_tables())


@pytest.fixture()
def auth_client() -> FakeAuthClient:
    return FakeAuthClient()


@pytest.fixture()
def signed_in_user(auth_client: FakeAuthClient) -> User:
    user = User(id="user-1", email="user@nextmail.com", metadata={"name": "User"})
    auth_client.users["valid-access"] = user
    return user
