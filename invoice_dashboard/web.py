"""Browser-facing pages of the invoice dashboard."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Dict, Tuple
from urllib.parse import parse_qs

from fastapi import APIRouter, FastAPI, HTTPException, Query, Request, status
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates

from .auth import AuthError
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
from .deps import get_auth_client, get_settings, get_store
from .sessions import CookieNames, clear_token_pair, get_session_context, require_user, write_token_pair
from .utils import format_currency, generate_pagination

logger = logging.getLogger("invoice_dashboard.web")

BASE_DIR = Path(__file__).resolve().parent


def _template_environment() -> Jinja2Templates:
    templates = Jinja2Templates(directory=str(BASE_DIR / "templates"))
    templates.env.globals["format_currency"] = format_currency
    return templates


async def _parse_login_form(request: Request) -> Tuple[str, str]:
    body_bytes = await request.body()
    content_type = request.headers.get("content-type", "")
    charset = "utf-8"
    if "charset=" in content_type:
        charset = content_type.split("charset=", 1)[1].split(";", 1)[0].strip() or "utf-8"
    try:
        decoded = body_bytes.decode(charset)
    except (LookupError, UnicodeDecodeError):
        decoded = body_bytes.decode("utf-8", errors="ignore")
    data = parse_qs(decoded, keep_blank_values=True)
    email = data.get("email", [""])[0].strip()
    password = data.get("password", [""])[0]
    return email, password


def register_ui_routes(app: FastAPI) -> None:
    """Expose the HTML pages on the provided FastAPI app."""

    templates = _template_environment()
    static_dir = BASE_DIR / "static"
    if static_dir.exists():
        app.mount("/static", StaticFiles(directory=str(static_dir)), name="static")

    router = APIRouter(include_in_schema=False)

    def _render(request: Request, name: str, *, status_code: int = status.HTTP_200_OK, **context):
        context.setdefault("user", get_session_context(request).user)
        return templates.TemplateResponse(request, name, context, status_code=status_code)

    def _render_login(request: Request, *, email: str = "", error: str | None = None, status_code: int = status.HTTP_200_OK):
        return _render(request, "login.html", status_code=status_code, email=email, error=error)

    @router.get("/", response_class=HTMLResponse, name="ui_home")
    async def homepage(request: Request):
        return _render(request, "home.html")

    @router.get("/login", response_class=HTMLResponse, name="ui_login")
    async def login_form(request: Request):
        return _render_login(request)

    @router.post("/login", name="ui_login_submit")
    async def login_submit(request: Request):
        email, password = await _parse_login_form(request)
        if not email or not password:
            return _render_login(
                request,
                email=email,
                error="Please provide both email and password.",
                status_code=status.HTTP_400_BAD_REQUEST,
            )

        settings = get_settings(request)
        try:
            user, tokens = await get_auth_client(request).sign_in_with_password(email, password)
        except AuthError as exc:
            logger.warning("Failed web login attempt for %s: %s", email, exc)
            return _render_login(
                request,
                email=email,
                error="Invalid email or password. Please try again.",
                status_code=status.HTTP_400_BAD_REQUEST,
            )

        logger.info("User %s signed in to the dashboard", user.id)
        response = RedirectResponse(
            request.url_for("ui_dashboard"), status_code=status.HTTP_303_SEE_OTHER
        )
        write_token_pair(
            response,
            tokens,
            CookieNames.for_prefix(settings.cookie_prefix),
            secure=settings.secure_cookies,
        )
        return response

    @router.get("/logout", name="ui_logout")
    async def logout(request: Request):
        settings = get_settings(request)
        session = get_session_context(request)
        await get_auth_client(request).sign_out(session.tokens, user=session.user)
        response = RedirectResponse(
            request.url_for("ui_login"), status_code=status.HTTP_303_SEE_OTHER
        )
        clear_token_pair(response, CookieNames.for_prefix(settings.cookie_prefix))
        return response

    @router.get("/dashboard", response_class=HTMLResponse, name="ui_dashboard")
    async def dashboard(request: Request):
        user = require_user(request)
        store = get_store(request)
        revenue, latest, cards = await asyncio.gather(
            fetch_revenue(store),
            fetch_latest_invoices(store, get_settings(request).latest_invoices_limit),
            fetch_card_data(store),
        )
        top = max((item.amount for item in revenue), default=0)
        return _render(
            request,
            "dashboard.html",
            user=user,
            revenue=revenue,
            revenue_top=top,
            latest_invoices=latest,
            cards=cards,
        )

    @router.get("/dashboard/invoices", response_class=HTMLResponse, name="ui_invoices")
    async def invoices(
        request: Request,
        query: str = Query(""),
        page: int = Query(1, ge=1),
    ):
        store = get_store(request)
        page_size = get_settings(request).items_per_page
        rows, pages = await asyncio.gather(
            fetch_filtered_invoices(store, query, page, page_size),
            fetch_invoices_pages(store, query, page_size),
        )
        return _render(
            request,
            "invoices.html",
            invoices=rows,
            query=query,
            current_page=page,
            total_pages=pages,
            pagination=generate_pagination(page, pages),
        )

    @router.get("/dashboard/invoices/{invoice_id}", response_class=HTMLResponse, name="ui_invoice")
    async def invoice_detail(invoice_id: str, request: Request):
        store = get_store(request)
        invoice, customers = await asyncio.gather(
            fetch_invoice_by_id(store, invoice_id),
            fetch_customers(store),
        )
        if invoice is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invoice not found")
        customer_names: Dict[str, str] = {customer.id: customer.name for customer in customers}
        return _render(
            request,
            "invoice.html",
            invoice=invoice,
            customer_name=customer_names.get(invoice.customer_id, invoice.customer_id),
            amount_cents=round(invoice.amount * 100),
            customers=customers,
        )

    @router.get("/dashboard/customers", response_class=HTMLResponse, name="ui_customers")
    async def customers(request: Request, query: str = Query("")):
        rows = await fetch_filtered_customers(get_store(request), query)
        return _render(request, "customers.html", customers=rows, query=query)

    app.include_router(router)


__all__ = ["register_ui_routes"]
