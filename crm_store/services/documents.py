"""
Offer and invoice service.

Creates, updates, deletes and converts documents. Numbers come from the
settings' templates and counters; the counter advance is persisted through
PersistentStore.mutate() before the document file is written, so a number
is never handed out twice even if the document write then fails.

Invariants:
    - A new document starts in "draft" with one history entry whose
      from_status is None
    - Every status change appends exactly one history entry
    - Totals are always recomputed from items and tax rate
    - The customer snapshot only changes when the customer is switched
    - Converting an offer never changes its items or totals

How to change safely:
    - Keep money arithmetic in models.document (line_total, compute_totals)
    - New statuses go into models.document.STATUSES_BY_TYPE
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta
from typing import Any

import pydantic

from ..errors import ConflictError, NotFoundError, ValidationError
from ..models.database import Customer, DatabaseRecord, local_now
from ..models.document import (
    STATUSES_BY_TYPE,
    CustomerSnapshot,
    Document,
    DocumentItem,
    DocumentSummary,
    StatusLogEntry,
    compute_totals,
    line_total,
)
from ..numbering import AllocatedNumber, allocate_number
from ..storage.store import PersistentStore
from .schemas import ConvertToInvoice, DocumentCreate, DocumentItemInput, DocumentUpdate

logger = logging.getLogger(__name__)

INITIAL_STATUS = "draft"

# Upper bound on numbers skipped because a file already uses them
MAX_NUMBER_ATTEMPTS = 1000


def snapshot_customer(customer: Customer) -> CustomerSnapshot:
    """Copy the customer fields printed on a document."""
    return CustomerSnapshot(
        name=customer.name,
        company=customer.company,
        street=customer.address.street,
        postal_code=customer.address.postal_code,
        city=customer.address.city,
        country=customer.address.country,
    )


def build_items(items: list[DocumentItemInput]) -> list[DocumentItem]:
    return [
        DocumentItem(
            id=str(uuid.uuid4()),
            description=item.description,
            quantity=item.quantity,
            unit_price=item.unit_price,
            total=line_total(item.quantity, item.unit_price),
        )
        for item in items
    ]


def _revalidate(document: Document) -> Document:
    """Run the document validators over a copied-and-changed document."""
    try:
        return Document.model_validate(document.to_json())
    except pydantic.ValidationError as e:
        fields: dict[str, list[str]] = {}
        for item in e.errors():
            location = ".".join(str(part) for part in item["loc"]) or "document"
            fields.setdefault(location, []).append(item["msg"])
        raise ValidationError("Invalid document", field_errors=fields) from e


def _document_not_found(document_id: str, document_type: str = "document") -> NotFoundError:
    return NotFoundError(
        f"{document_type.capitalize()} not found: {document_id}",
        resource_type=document_type,
        resource_id=document_id,
    )


class DocumentService:
    """Business operations on offers and invoices."""

    def __init__(self, store: PersistentStore) -> None:
        self.store = store

    async def list(self, document_type: str | None = None) -> list[Document]:
        return await self.store.list_documents(document_type)

    async def list_summaries(self, document_type: str | None = None) -> list[DocumentSummary]:
        return [document.summary() for document in await self.list(document_type)]

    async def get(self, document_id: str) -> Document:
        document = await self.store.load_document(document_id)
        if document is None:
            raise _document_not_found(document_id)
        return document

    async def _allocate(self, document_type: str, now: datetime) -> AllocatedNumber:
        """Allocate the next free number and persist the advanced counters."""

        async def apply(db: DatabaseRecord) -> AllocatedNumber:
            previous: str | None = None
            for _ in range(MAX_NUMBER_ATTEMPTS):
                allocated = allocate_number(db.settings, document_type, now)
                if not await self.store.document_exists(document_type, allocated.number):
                    db.settings.updated_at = now
                    return allocated
                if allocated.number == previous:
                    break
                logger.warning(
                    f"Skipping {document_type} number {allocated.number}: a file already uses it"
                )
                previous = allocated.number
            raise ConflictError(
                f"Could not allocate a free {document_type} number; "
                f"check the {document_type} number format",
                details={"document_type": document_type},
            )

        return await self.store.mutate(apply)

    async def create(self, data: DocumentCreate, now: datetime | None = None) -> Document:
        """Create a document with a freshly allocated number.

        Raises:
            ValidationError: If there are no items
            NotFoundError: If the customer does not exist
        """
        if not data.items:
            raise ValidationError(
                "At least one item is required", field_errors={"items": ["at least one item"]}
            )

        db = self.store.get()
        customer = db.find_customer(data.customer_id)
        if customer is None:
            raise NotFoundError(
                f"Customer not found: {data.customer_id}",
                resource_type="customer",
                resource_id=data.customer_id,
            )

        settings = db.settings
        now = now or local_now()
        is_offer = data.document_type == "offer"

        items = build_items(data.items)
        tax_rate = data.tax_rate if data.tax_rate is not None else settings.default_tax_rate
        subtotal, tax_amount, total = compute_totals((item.total for item in items), tax_rate)
        payment_term_days = (
            data.payment_term_days
            if data.payment_term_days is not None
            else settings.default_payment_term_days
        )
        default_title = settings.labels.offer_title if is_offer else settings.labels.invoice_title

        allocated = await self._allocate(data.document_type, now)

        document = Document(
            id=str(uuid.uuid4()),
            document_type=data.document_type,
            document_title=data.document_title or default_title,
            document_number=allocated.number,
            customer_id=customer.id,
            customer=snapshot_customer(customer),
            items=items,
            subtotal=subtotal,
            tax_rate=tax_rate,
            tax_amount=tax_amount,
            total=total,
            payment_term_days=payment_term_days,
            due_date=now + timedelta(days=payment_term_days),
            intro_text=data.intro_text if data.intro_text is not None else settings.default_intro_text,
            notes_text=data.notes_text if data.notes_text is not None else settings.default_notes_text,
            footer_text=(
                data.footer_text if data.footer_text is not None else settings.default_footer_text
            ),
            status=INITIAL_STATUS,
            status_history=[
                StatusLogEntry(timestamp=now, from_status=None, to_status=INITIAL_STATUS)
            ],
            created_at=now,
            updated_at=now,
        )

        await self.store.save_document(document)
        logger.info(f"Created {document.document_type} {document.document_number}")
        return document

    async def update(
        self, document_id: str, data: DocumentUpdate, now: datetime | None = None
    ) -> Document:
        """Apply a partial update to a document.

        Raises:
            NotFoundError: If the document or a new customer does not exist
            ValidationError: If the new status is not valid for the type
        """
        document = await self.get(document_id)
        now = now or local_now()
        fields = data.model_fields_set
        changes: dict[str, Any] = {"updated_at": now}

        if data.status is not None and data.status != document.status:
            allowed = STATUSES_BY_TYPE[document.document_type]
            if data.status not in allowed:
                raise ValidationError(
                    f"Status '{data.status}' is not valid for {document.document_type}",
                    field_errors={"status": [f"must be one of {', '.join(allowed)}"]},
                )
            changes["status"] = data.status
            changes["status_history"] = [
                *document.status_history,
                StatusLogEntry(
                    timestamp=now,
                    from_status=document.status,
                    to_status=data.status,
                    note=data.status_note,
                ),
            ]

        items = document.items
        if data.items is not None:
            if not data.items:
                raise ValidationError(
                    "At least one item is required", field_errors={"items": ["at least one item"]}
                )
            items = build_items(data.items)
            changes["items"] = items
        tax_rate = data.tax_rate if data.tax_rate is not None else document.tax_rate
        if data.items is not None or data.tax_rate is not None:
            subtotal, tax_amount, total = compute_totals((item.total for item in items), tax_rate)
            changes.update(
                tax_rate=tax_rate, subtotal=subtotal, tax_amount=tax_amount, total=total
            )

        if data.payment_term_days is not None and data.payment_term_days != document.payment_term_days:
            changes["payment_term_days"] = data.payment_term_days
            changes["due_date"] = document.created_at + timedelta(days=data.payment_term_days)

        if data.document_title:
            changes["document_title"] = data.document_title
        for name in ("intro_text", "notes_text", "footer_text"):
            if name in fields:
                changes[name] = getattr(data, name)

        if data.customer_id is not None and data.customer_id != document.customer_id:
            customer = self.store.get().find_customer(data.customer_id)
            if customer is None:
                raise NotFoundError(
                    f"Customer not found: {data.customer_id}",
                    resource_type="customer",
                    resource_id=data.customer_id,
                )
            changes["customer_id"] = customer.id
            changes["customer"] = snapshot_customer(customer)

        updated = _revalidate(document.model_copy(update=changes))
        await self.store.save_document(updated)
        return updated

    async def delete(self, document_id: str) -> Document:
        document = await self.get(document_id)
        await self.store.delete_document(document)
        return document

    async def convert_to_invoice(
        self, request: ConvertToInvoice, now: datetime | None = None
    ) -> Document:
        """Create an invoice from an offer.

        The invoice copies the offer's customer, items and totals and points
        back to it; the offer is marked accepted and points to the invoice.

        Raises:
            NotFoundError: If the offer does not exist
            ValidationError: If the id belongs to an invoice
            ConflictError: If the offer was already converted
        """
        offer = await self.store.load_document(request.offer_id, "offer")
        if offer is None:
            if await self.store.load_document(request.offer_id, "invoice") is not None:
                raise ValidationError(
                    "Document is not an offer", field_errors={"offerId": ["not an offer"]}
                )
            raise _document_not_found(request.offer_id, "offer")
        if offer.converted_to_invoice_id:
            raise ConflictError(
                f"Offer {offer.document_number} was already converted",
                details={"invoice_id": offer.converted_to_invoice_id},
            )

        now = now or local_now()
        terms = (
            request.payment_term_days
            if request.payment_term_days is not None
            else offer.payment_term_days
        )
        allocated = await self._allocate("invoice", now)

        invoice = _revalidate(
            offer.model_copy(
                update={
                    "id": str(uuid.uuid4()),
                    "document_type": "invoice",
                    "document_title": self.store.get().settings.labels.invoice_title,
                    "document_number": allocated.number,
                    "payment_term_days": terms,
                    "due_date": now + timedelta(days=terms),
                    "status": INITIAL_STATUS,
                    "status_history": [
                        StatusLogEntry(
                            timestamp=now,
                            from_status=None,
                            to_status=INITIAL_STATUS,
                            note=f"Converted from offer {offer.document_number}",
                        )
                    ],
                    "created_at": now,
                    "updated_at": now,
                    "converted_from_offer_id": offer.id,
                    "converted_to_invoice_id": None,
                }
            )
        )
        await self.store.save_document(invoice)

        accepted = _revalidate(
            offer.model_copy(
                update={
                    "status": "accepted",
                    "status_history": [
                        *offer.status_history,
                        StatusLogEntry(
                            timestamp=now,
                            from_status=offer.status,
                            to_status="accepted",
                            note=f"Converted to invoice {invoice.document_number}",
                        ),
                    ],
                    "updated_at": now,
                    "converted_to_invoice_id": invoice.id,
                }
            )
        )
        await self.store.save_document(accepted)

        logger.info(f"Converted offer {offer.document_number} to invoice {invoice.document_number}")
        return invoice
