"""
Input models for the domain services.

These are the shapes callers (the HTTP layer, the CLI, tests) hand to the
services. They use the same camelCase aliases as the stored records, and
every update model is partial: only fields the caller actually set are
applied (see ``model_fields_set``).
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..models.database import CurrencyCode, LanguagePreference, ThemePreference
from ..models.document import DocumentType


class InputModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def set_fields(self, exclude_none: bool = False) -> dict[str, Any]:
        """Fields explicitly provided by the caller, with their values."""
        fields = {name: getattr(self, name) for name in self.model_fields_set}
        if exclude_none:
            fields = {name: value for name, value in fields.items() if value is not None}
        return fields


class AddressInput(InputModel):
    street: str | None = None
    city: str | None = None
    state: str | None = None
    postal_code: str | None = None
    country: str | None = None


class BankDetailsInput(InputModel):
    bank_name: str | None = None
    account_holder: str | None = None
    iban: str | None = None
    bic: str | None = None


# --- Customers ---


class CustomerCreate(InputModel):
    name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=1)
    phone: str = ""
    company: str | None = None
    address: AddressInput | None = None
    notes: str | None = None


class CustomerUpdate(InputModel):
    name: str | None = Field(None, min_length=1)
    email: str | None = Field(None, min_length=1)
    phone: str | None = None
    company: str | None = None
    address: AddressInput | None = None
    notes: str | None = None


# --- Products ---


class ProductCreate(InputModel):
    description: str = Field(..., min_length=1)
    default_price: int = Field(..., ge=0, description="Unit price in cents")


class ProductUpdate(InputModel):
    description: str | None = Field(None, min_length=1)
    default_price: int | None = Field(None, ge=0)


# --- Business ---


class BusinessUpdate(InputModel):
    name: str | None = Field(None, min_length=1)
    address: AddressInput | None = None
    phone: str | None = None
    email: str | None = None
    website: str | None = None
    tax_id: str | None = None
    chamber_of_commerce: str | None = None
    logo: str | None = None
    bank_details: BankDetailsInput | None = None


# --- Settings ---


class SettingsUpdate(InputModel):
    """Partial settings change.

    labels is merged key by key into the current labels; keys may be given
    in camelCase or snake_case.
    """

    currency: CurrencyCode | None = None
    currency_symbol: str | None = None
    default_tax_rate: float | None = Field(None, ge=0)
    default_payment_term_days: int | None = Field(None, ge=0)

    offer_prefix: str | None = None
    offer_number_format: str | None = None
    next_offer_number: int | None = Field(None, ge=1)
    offer_counters_by_year: dict[str, int] | None = None

    invoice_prefix: str | None = None
    invoice_number_format: str | None = None
    next_invoice_number: int | None = Field(None, ge=1)
    invoice_counters_by_year: dict[str, int] | None = None

    default_intro_text: str | None = None
    default_notes_text: str | None = None
    default_footer_text: str | None = None
    labels: dict[str, str] | None = None

    theme: ThemePreference | None = None
    language: LanguagePreference | None = None
    date_format: str | None = None
    fiscal_year_start_month: int | None = Field(None, ge=1, le=12)


class StoragePathChange(InputModel):
    new_path: str = Field(..., min_length=1)
    delete_old: bool = False


class TemplateCheck(InputModel):
    template: str
    prefix: str = "INV"
    global_counter: int = Field(42, ge=0)
    year_counter: int = Field(7, ge=0)


# --- Documents ---


class DocumentItemInput(InputModel):
    description: str
    quantity: float = Field(..., ge=0)
    unit_price: int = Field(..., description="Unit price in cents")


class DocumentCreate(InputModel):
    document_type: DocumentType
    customer_id: str
    items: list[DocumentItemInput]
    document_title: str | None = None
    tax_rate: float | None = Field(None, ge=0)
    payment_term_days: int | None = Field(None, ge=0)
    intro_text: str | None = None
    notes_text: str | None = None
    footer_text: str | None = None


class DocumentUpdate(InputModel):
    customer_id: str | None = None
    items: list[DocumentItemInput] | None = None
    document_title: str | None = None
    tax_rate: float | None = Field(None, ge=0)
    payment_term_days: int | None = Field(None, ge=0)
    intro_text: str | None = None
    notes_text: str | None = None
    footer_text: str | None = None
    status: str | None = None
    status_note: str | None = None


class ConvertToInvoice(InputModel):
    offer_id: str = Field(..., min_length=1)
    payment_term_days: int | None = Field(None, ge=0)
