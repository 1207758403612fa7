"""
Database record schema.

The database record is the single document stored at
``{root}/database.json``. It holds customers, the business profile, the
product catalog and the application settings. Offers and invoices are not
part of it; they live in one file each (see models.document).

Invariants:
    - CURRENT_DATABASE_VERSION is the version every loaded record ends at
    - Every settings field has a default, so a fresh record is always valid
    - Counters are "next number" values: the next document gets this number

How to change safely:
    - Any shape change bumps CURRENT_DATABASE_VERSION and appends a migration
      in crm_store.migrations
    - New settings fields need a default here
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import AwareDatetime, Field

from ..numbering.template import DEFAULT_DOCUMENT_NUMBER_FORMAT
from .base import StoredModel

CURRENT_DATABASE_VERSION = "1.2.0"

CurrencyCode = Literal["EUR", "USD", "GBP", "CHF", "CAD", "AUD"]
ThemePreference = Literal["light", "dark", "system"]
LanguagePreference = Literal["en-US", "nl-NL"]


def local_now() -> datetime:
    """Current time as an aware datetime in the local timezone."""
    return datetime.now().astimezone()


class Address(StoredModel):
    street: str = ""
    city: str = ""
    state: str = ""
    postal_code: str = ""
    country: str = ""


class Customer(StoredModel):
    """A customer of the business."""

    id: str
    name: str
    email: str = ""
    phone: str = ""
    company: str | None = None
    address: Address = Field(default_factory=Address)
    notes: str | None = None
    created_at: AwareDatetime
    updated_at: AwareDatetime


class BankDetails(StoredModel):
    bank_name: str = ""
    account_holder: str = ""
    iban: str = ""
    bic: str | None = None


class Business(StoredModel):
    """The user's own business, printed on every document."""

    name: str
    address: Address = Field(default_factory=Address)
    phone: str = ""
    email: str = ""
    website: str | None = None
    tax_id: str | None = None
    chamber_of_commerce: str | None = None
    logo: str | None = None
    bank_details: BankDetails | None = None
    updated_at: AwareDatetime


class Product(StoredModel):
    """A catalog entry with a default unit price in cents."""

    id: str
    description: str
    default_price: int
    created_at: AwareDatetime
    updated_at: AwareDatetime


class DocumentLabels(StoredModel):
    """User-editable text printed on documents.

    Footer texts may contain {company}, {email} and {phone} placeholders,
    which the rendering layer fills in.
    """

    offer_title: str = "Quote"
    invoice_title: str = "Invoice"
    document_date_label: str = "Date"
    due_date_label: str = "Due Date"
    offer_number_label: str = "Quote Number"
    invoice_number_label: str = "Invoice Number"
    customer_section_title_offer: str = "Customer Details"
    customer_section_title_invoice: str = "Billing Address"
    intro_section_label: str = "Description"
    description_label: str = "Description"
    quantity_label: str = "Qty"
    unit_price_label: str = "Unit Price"
    amount_label: str = "Amount"
    subtotal_label: str = "Subtotal"
    tax_label: str = "VAT"
    total_label: str = "Total"
    notes_section_label: str = "Additional Information"
    payment_terms_title_offer: str = "Terms"
    payment_terms_title_invoice: str = "Payment Terms"
    tel_label: str = "Tel:"
    email_label: str = "E-mail:"
    kvk_label: str = "CoC:"
    vat_id_label: str = "VAT:"
    iban_label: str = "IBAN:"
    thank_you_text: str = "Thank you for your business with {company}!"
    questions_text_offer: str = (
        "If you have questions about this quote, please contact us at {email} or {phone}."
    )
    questions_text_invoice: str = (
        "If you have questions about this invoice, please contact us at {email} or {phone}."
    )


DUTCH_LABELS = DocumentLabels(
    offer_title="Offerte",
    invoice_title="Factuur",
    document_date_label="Datum",
    due_date_label="Vervaldatum",
    offer_number_label="Offertenummer",
    invoice_number_label="Factuurnummer",
    customer_section_title_offer="Klantgegevens",
    customer_section_title_invoice="Factuuradres",
    intro_section_label="Omschrijving",
    description_label="Omschrijving",
    quantity_label="Aantal",
    unit_price_label="Prijs p/e",
    amount_label="Totaal",
    subtotal_label="Subtotaal",
    tax_label="BTW",
    total_label="Totaal",
    notes_section_label="Aanvullende informatie",
    payment_terms_title_offer="Voorwaarden",
    payment_terms_title_invoice="Betalingsvoorwaarden",
    kvk_label="KvK:",
    vat_id_label="BTW:",
    thank_you_text="Bedankt voor het vertrouwen in {company}!",
    questions_text_offer=(
        "Bij vragen over deze offerte kunt u contact opnemen via {email} of {phone}."
    ),
    questions_text_invoice=(
        "Bij vragen over deze factuur kunt u contact opnemen via {email} of {phone}."
    ),
)


class Settings(StoredModel):
    """Application settings stored in the database record.

    Attributes:
        offer_number_format: Template used to render offer numbers
        next_offer_number: Global offer counter ({NUMBER})
        offer_counters_by_year: Next offer number per year ({NUMBER_YEAR}),
            keyed by four-digit year string
        invoice_*: Same as the offer fields, for invoices
    """

    currency: CurrencyCode = "EUR"
    currency_symbol: str = "€"
    default_tax_rate: float = Field(default=21, ge=0)
    default_payment_term_days: int = Field(default=14, ge=0)

    offer_prefix: str = "OFF"
    offer_number_format: str = DEFAULT_DOCUMENT_NUMBER_FORMAT
    next_offer_number: int = Field(default=1, ge=1)
    offer_counters_by_year: dict[str, int] = Field(default_factory=dict)

    invoice_prefix: str = "INV"
    invoice_number_format: str = DEFAULT_DOCUMENT_NUMBER_FORMAT
    next_invoice_number: int = Field(default=1, ge=1)
    invoice_counters_by_year: dict[str, int] = Field(default_factory=dict)

    default_intro_text: str | None = None
    default_notes_text: str | None = None
    default_footer_text: str | None = None
    labels: DocumentLabels = Field(default_factory=DocumentLabels)

    theme: ThemePreference = "system"
    language: LanguagePreference = "en-US"
    date_format: str = "DD-MM-YYYY"
    fiscal_year_start_month: int = Field(default=1, ge=1, le=12)

    updated_at: AwareDatetime = Field(default_factory=local_now)


class DatabaseRecord(StoredModel):
    """The singleton database record at the current schema version."""

    version: str = CURRENT_DATABASE_VERSION
    customers: list[Customer] = Field(default_factory=list)
    business: Business | None = None
    products: list[Product] = Field(default_factory=list)
    settings: Settings = Field(default_factory=Settings)

    def find_customer(self, customer_id: str) -> Customer | None:
        for customer in self.customers:
            if customer.id == customer_id:
                return customer
        return None

    def find_product(self, product_id: str) -> Product | None:
        for product in self.products:
            if product.id == product_id:
                return product
        return None


def empty_database(now: datetime | None = None) -> DatabaseRecord:
    """Create a fresh record at the current version with default settings."""
    return DatabaseRecord(
        version=CURRENT_DATABASE_VERSION,
        settings=Settings(updated_at=now or local_now()),
    )
