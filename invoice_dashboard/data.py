"""Read operations backing the dashboard pages.

Each operation describes its request with a :class:`TableQuery` built by a
dedicated translation function, executes it, and converts the rows into
domain models. Failures reported by the store are logged and replaced by an
empty or zero value so a broken query renders as an empty table rather than
an error page.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Iterable, List, Mapping, Optional, Protocol, TypeVar

from .models import (
    CardData,
    CustomerField,
    CustomersTableRow,
    Invoice,
    InvoiceForm,
    LatestInvoice,
    Revenue,
)
from .postgrest import Filter, QueryResult, TableQuery, ilike_pattern
from .utils import format_currency, page_offset, total_pages

logger = logging.getLogger("invoice_dashboard.data")

ITEMS_PER_PAGE = 6
LATEST_INVOICES_LIMIT = 5

INVOICES_TABLE = "invoices"
CUSTOMERS_TABLE = "customers"
REVENUE_TABLE = "revenue"
INVOICES_VIEW = "invoices_with_customers"
STATUS_TOTALS_VIEW = "invoice_status_totals"
CUSTOMER_TOTALS_VIEW = "customers_with_totals"

T = TypeVar("T")


class QueryExecutor(Protocol):
    async def execute(self, query: TableQuery) -> QueryResult:
        ...


@dataclass(frozen=True)
class InvoiceSearch:
    query: str = ""
    page: int = 1
    page_size: int = ITEMS_PER_PAGE


def revenue_query() -> TableQuery:
    return TableQuery(table=REVENUE_TABLE)


def latest_invoices_query(limit: int = LATEST_INVOICES_LIMIT) -> TableQuery:
    return TableQuery(table=INVOICES_VIEW, order_by="date", descending=True, limit=limit)


def invoice_count_query() -> TableQuery:
    return TableQuery(table=INVOICES_TABLE, columns="count")


def customer_count_query() -> TableQuery:
    return TableQuery(table=CUSTOMERS_TABLE, count="exact", head=True)


def status_totals_query() -> TableQuery:
    return TableQuery(table=STATUS_TOTALS_VIEW)


def _name_or_email(query: str) -> tuple[Filter, ...]:
    pattern = ilike_pattern(query)
    return (Filter("name", "ilike", pattern), Filter("email", "ilike", pattern))


def invoice_search_query(search: InvoiceSearch) -> TableQuery:
    return TableQuery(
        table=INVOICES_VIEW,
        or_filters=_name_or_email(search.query),
        order_by="date",
        descending=True,
        offset=page_offset(search.page, search.page_size),
        limit=search.page_size,
    )


def invoice_match_count_query(query: str) -> TableQuery:
    return TableQuery(
        table=INVOICES_VIEW,
        or_filters=_name_or_email(query),
        count="exact",
        head=True,
    )


def invoice_by_id_query(invoice_id: str) -> TableQuery:
    return TableQuery(
        table=INVOICES_TABLE,
        columns="id,customer_id,amount,status",
        filters=(Filter("id", "eq", invoice_id),),
        limit=1,
    )


def customers_query() -> TableQuery:
    return TableQuery(table=CUSTOMERS_TABLE, columns="id,name", order_by="name")


def filtered_customers_query(query: str) -> TableQuery:
    return TableQuery(
        table=CUSTOMER_TOTALS_VIEW,
        or_filters=_name_or_email(query),
        order_by="name",
    )


def _parse_rows(
    rows: Iterable[Mapping[str, object]],
    parser: Callable[[Mapping[str, object]], T],
    source: str,
) -> List[T]:
    parsed: List[T] = []
    for row in rows:
        try:
            parsed.append(parser(row))
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Skipping malformed %s row: %s", source, exc)
    return parsed


def _failed(result: QueryResult) -> bool:
    if result.error is not None:
        logger.error("Database Error: %s", result.error)
        return True
    return False


async def fetch_revenue(store: QueryExecutor) -> List[Revenue]:
    result = await store.execute(revenue_query())
    if _failed(result):
        return []
    return _parse_rows(result.data, Revenue.from_row, REVENUE_TABLE)


async def fetch_latest_invoices(
    store: QueryExecutor,
    limit: int = LATEST_INVOICES_LIMIT,
) -> List[LatestInvoice]:
    """Return the most recent invoices, newest first, with formatted amounts."""

    result = await store.execute(latest_invoices_query(limit))
    if _failed(result):
        return []
    invoices = _parse_rows(result.data, Invoice.from_row, INVOICES_VIEW)
    return [
        LatestInvoice(
            id=invoice.id,
            customer_name=invoice.customer_name,
            customer_email=invoice.customer_email,
            image_url=invoice.image_url,
            amount=format_currency(invoice.amount),
            date=invoice.date,
        )
        for invoice in invoices[:limit]
    ]


def _first_number(result: QueryResult, key: str) -> int:
    if not result.data:
        return 0
    value = result.data[0].get(key)
    if value is None:
        return 0
    try:
        return int(value)  # type: ignore[call-overload]
    except (TypeError, ValueError):
        logger.warning("Ignoring non-numeric %s value %r", key, value)
        return 0


async def fetch_card_data(store: QueryExecutor) -> CardData:
    """Fetch the landing-page summary with three concurrent queries.

    A failing query only zeroes the figures it feeds; the others are still
    reported.
    """

    invoice_result, customer_result, status_result = await asyncio.gather(
        store.execute(invoice_count_query()),
        store.execute(customer_count_query()),
        store.execute(status_totals_query()),
    )

    errors = [result.error for result in (invoice_result, customer_result, status_result) if result.error]
    if errors:
        logger.error("Unexpected error in fetch_card_data: %s", "; ".join(str(error) for error in errors))

    number_of_invoices = 0 if invoice_result.error else _first_number(invoice_result, "count")
    number_of_customers = 0 if customer_result.error else int(customer_result.count or 0)
    paid = 0 if status_result.error else _first_number(status_result, "paid")
    pending = 0 if status_result.error else _first_number(status_result, "pending")

    return CardData(
        number_of_invoices=number_of_invoices,
        number_of_customers=number_of_customers,
        total_paid_invoices=format_currency(paid),
        total_pending_invoices=format_currency(pending),
    )


async def fetch_filtered_invoices(
    store: QueryExecutor,
    query: str,
    page: int,
    page_size: int = ITEMS_PER_PAGE,
) -> List[Invoice]:
    search = InvoiceSearch(query=query, page=page, page_size=page_size)
    result = await store.execute(invoice_search_query(search))
    if _failed(result):
        return []
    return _parse_rows(result.data, Invoice.from_row, INVOICES_VIEW)[:page_size]


async def fetch_invoices_pages(
    store: QueryExecutor,
    query: str,
    page_size: int = ITEMS_PER_PAGE,
) -> int:
    result = await store.execute(invoice_match_count_query(query))
    if _failed(result):
        return 0
    return total_pages(result.count or 0, page_size)


async def fetch_invoice_by_id(store: QueryExecutor, invoice_id: str) -> Optional[InvoiceForm]:
    result = await store.execute(invoice_by_id_query(invoice_id))
    if _failed(result):
        return None
    forms = _parse_rows(result.data, InvoiceForm.from_row, INVOICES_TABLE)
    return forms[0] if forms else None


async def fetch_customers(store: QueryExecutor) -> List[CustomerField]:
    result = await store.execute(customers_query())
    if _failed(result):
        return []
    return _parse_rows(result.data, CustomerField.from_row, CUSTOMERS_TABLE)


def _customer_row(row: Mapping[str, object]) -> CustomersTableRow:
    return CustomersTableRow(
        id=str(row["id"]),
        name=str(row["name"]),
        email=str(row["email"]),
        image_url=str(row["image_url"]) if row.get("image_url") is not None else None,
        total_invoices=int(row.get("total_invoices") or 0),  # type: ignore[call-overload]
        total_pending=format_currency(int(row.get("total_pending") or 0)),  # type: ignore[call-overload]
        total_paid=format_currency(int(row.get("total_paid") or 0)),  # type: ignore[call-overload]
    )


async def fetch_filtered_customers(store: QueryExecutor, query: str) -> List[CustomersTableRow]:
    result = await store.execute(filtered_customers_query(query))
    if _failed(result):
        return []
    return _parse_rows(result.data, _customer_row, CUSTOMER_TOTALS_VIEW)


__all__ = [
    "ITEMS_PER_PAGE",
    "InvoiceSearch",
    "QueryExecutor",
    "fetch_card_data",
    "fetch_customers",
    "fetch_filtered_customers",
    "fetch_filtered_invoices",
    "fetch_invoice_by_id",
    "fetch_invoices_pages",
    "fetch_latest_invoices",
    "fetch_revenue",
]
