"""JSON endpoints mirroring the dashboard's read operations."""

from __future__ import annotations

from dataclasses import asdict
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, FastAPI, HTTPException, Query, Request, status
from pydantic import BaseModel

from .data import (
    fetch_card_data,
    fetch_customers,
    fetch_filtered_customers,
    fetch_filtered_invoices,
    fetch_invoice_by_id,
    fetch_invoices_pages,
    fetch_latest_invoices,
    fetch_revenue,
)
from .deps import get_settings, get_store
from .utils import format_currency


class RevenueResponse(BaseModel):
    month: str
    amount: int


class LatestInvoiceResponse(BaseModel):
    id: str
    customer_name: str
    customer_email: str
    image_url: Optional[str] = None
    amount: str
    date: date


class CardDataResponse(BaseModel):
    number_of_invoices: int
    number_of_customers: int
    total_paid_invoices: str
    total_pending_invoices: str


class InvoiceResponse(BaseModel):
    id: str
    customer_id: Optional[str] = None
    customer_name: str
    customer_email: str
    image_url: Optional[str] = None
    amount: int
    formatted_amount: str
    date: date
    status: str


class InvoicePageResponse(BaseModel):
    query: str
    page: int
    page_size: int
    total_pages: int
    invoices: List[InvoiceResponse]


class InvoiceFormResponse(BaseModel):
    id: str
    customer_id: str
    amount: float
    status: str


class CustomerFieldResponse(BaseModel):
    id: str
    name: str


class CustomerRowResponse(BaseModel):
    id: str
    name: str
    email: str
    image_url: Optional[str] = None
    total_invoices: int
    total_pending: str
    total_paid: str


def register_api_routes(app: FastAPI) -> None:
    router = APIRouter(prefix="/api", tags=["dashboard"])

    @router.get("/health")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @router.get("/revenue", response_model=List[RevenueResponse])
    async def revenue(request: Request):
        return [asdict(item) for item in await fetch_revenue(get_store(request))]

    @router.get("/invoices/latest", response_model=List[LatestInvoiceResponse])
    async def latest_invoices(request: Request):
        limit = get_settings(request).latest_invoices_limit
        return [asdict(item) for item in await fetch_latest_invoices(get_store(request), limit)]

    @router.get("/cards", response_model=CardDataResponse)
    async def cards(request: Request):
        return asdict(await fetch_card_data(get_store(request)))

    @router.get("/invoices", response_model=InvoicePageResponse)
    async def invoices(
        request: Request,
        query: str = Query(""),
        page: int = Query(1, ge=1),
    ):
        store = get_store(request)
        page_size = get_settings(request).items_per_page
        rows = await fetch_filtered_invoices(store, query, page, page_size)
        pages = await fetch_invoices_pages(store, query, page_size)
        return InvoicePageResponse(
            query=query,
            page=page,
            page_size=page_size,
            total_pages=pages,
            invoices=[
                InvoiceResponse(**asdict(row), formatted_amount=format_currency(row.amount))
                for row in rows
            ],
        )

    @router.get("/invoices/{invoice_id}", response_model=InvoiceFormResponse)
    async def invoice(invoice_id: str, request: Request):
        form = await fetch_invoice_by_id(get_store(request), invoice_id)
        if form is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invoice not found")
        return asdict(form)

    @router.get("/customers", response_model=List[CustomerRowResponse])
    async def customers(request: Request, query: str = Query("")):
        return [asdict(row) for row in await fetch_filtered_customers(get_store(request), query)]

    @router.get("/customers/names", response_model=List[CustomerFieldResponse])
    async def customer_names(request: Request):
        return [asdict(row) for row in await fetch_customers(get_store(request))]

    app.include_router(router)


__all__ = ["register_api_routes"]
