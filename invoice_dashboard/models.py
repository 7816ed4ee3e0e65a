"""Domain models projected from the remote store's tables and views."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Literal, Mapping, Optional

InvoiceStatus = Literal["pending", "paid"]

_STATUSES = ("pending", "paid")


def _parse_date(value: object) -> date:
    if isinstance(value, date):
        return value
    # timestamps arrive as "2024-03-01T00:00:00+00:00"; the calendar day is enough
    return date.fromisoformat(str(value)[:10])


def _parse_status(value: object) -> InvoiceStatus:
    text = str(value).strip().lower()
    if text not in _STATUSES:
        raise ValueError(f"Unknown invoice status '{value}'")
    return text  # type: ignore[return-value]


def _optional_str(value: object) -> Optional[str]:
    if value is None:
        return None
    return str(value)


@dataclass(frozen=True)
class User:
    """Identity resolved by the auth provider for the current session."""

    id: str
    email: Optional[str]
    metadata: Dict[str, object] = field(default_factory=dict, compare=False)

    @property
    def display_name(self) -> str:
        name = self.metadata.get("name") or self.metadata.get("full_name")
        if name:
            return str(name)
        return self.email or self.id

    @staticmethod
    def from_dict(data: Mapping[str, object]) -> "User":
        metadata = data.get("user_metadata")
        return User(
            id=str(data["id"]),
            email=_optional_str(data.get("email")),
            metadata=dict(metadata) if isinstance(metadata, Mapping) else {},
        )


@dataclass(frozen=True)
class Revenue:
    month: str
    amount: int

    @staticmethod
    def from_row(row: Mapping[str, object]) -> "Revenue":
        raw_amount = row["revenue"] if "revenue" in row else row["amount"]
        return Revenue(month=str(row["month"]), amount=int(raw_amount))  # type: ignore[arg-type]


@dataclass(frozen=True)
class Invoice:
    """A row of the invoice/customer view. ``amount`` is held in cents."""

    id: str
    customer_id: Optional[str]
    customer_name: str
    customer_email: str
    image_url: Optional[str]
    amount: int
    date: date
    status: InvoiceStatus

    @staticmethod
    def from_row(row: Mapping[str, object]) -> "Invoice":
        return Invoice(
            id=str(row["id"]),
            customer_id=_optional_str(row.get("customer_id")),
            customer_name=str(row["name"]),
            customer_email=str(row["email"]),
            image_url=_optional_str(row.get("image_url")),
            amount=int(row["amount"]),  # type: ignore[arg-type]
            date=_parse_date(row["date"]),
            status=_parse_status(row["status"]),
        )


@dataclass(frozen=True)
class LatestInvoice:
    """Invoice summary with its amount already formatted for display."""

    id: str
    customer_name: str
    customer_email: str
    image_url: Optional[str]
    amount: str
    date: date


@dataclass(frozen=True)
class CardData:
    number_of_invoices: int
    number_of_customers: int
    total_paid_invoices: str
    total_pending_invoices: str


@dataclass(frozen=True)
class InvoiceForm:
    """Editable view of a single invoice. ``amount`` is in dollars."""

    id: str
    customer_id: str
    amount: float
    status: InvoiceStatus

    @staticmethod
    def from_row(row: Mapping[str, object]) -> "InvoiceForm":
        return InvoiceForm(
            id=str(row["id"]),
            customer_id=str(row["customer_id"]),
            amount=int(row["amount"]) / 100,  # type: ignore[arg-type]
            status=_parse_status(row["status"]),
        )


@dataclass(frozen=True)
class CustomerField:
    id: str
    name: str

    @staticmethod
    def from_row(row: Mapping[str, object]) -> "CustomerField":
        return CustomerField(id=str(row["id"]), name=str(row["name"]))


@dataclass(frozen=True)
class CustomersTableRow:
    id: str
    name: str
    email: str
    image_url: Optional[str]
    total_invoices: int
    total_pending: str
    total_paid: str


__all__ = [
    "CardData",
    "CustomerField",
    "CustomersTableRow",
    "Invoice",
    "InvoiceForm",
    "InvoiceStatus",
    "LatestInvoice",
    "Revenue",
    "User",
]
