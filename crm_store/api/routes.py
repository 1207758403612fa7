"""
API routes for the CRM local store.

Thin adapter over crm_store.services: request bodies are parsed into the
service input models, results are returned in their on-disk (camelCase)
shape wrapped in a resource key, e.g. {"customer": {...}}.
"""

import logging
from typing import Any, Literal

from fastapi import APIRouter, Depends, Query, Request, Response

from ..services import (
    BusinessUpdate,
    ConvertToInvoice,
    CustomerCreate,
    CustomerUpdate,
    DocumentCreate,
    DocumentUpdate,
    ProductCreate,
    ProductUpdate,
    Services,
    SettingsUpdate,
    StoragePathChange,
    TemplateCheck,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# --- Dependencies ---


def get_services(request: Request) -> Services:
    """Get the services bound to the app's store."""
    return request.app.state.services


def _settings_payload(services: Services) -> dict[str, Any]:
    return {**services.settings.get().to_json(), "storagePath": str(services.store.root)}


# --- Settings ---


@router.get("/settings", tags=["Settings"])
async def get_settings(services: Services = Depends(get_services)) -> dict[str, Any]:
    return {"settings": _settings_payload(services)}


@router.put("/settings", tags=["Settings"])
async def update_settings(
    body: SettingsUpdate, services: Services = Depends(get_services)
) -> dict[str, Any]:
    await services.settings.update(body)
    return {"settings": _settings_payload(services)}


@router.post("/settings/storage-path", tags=["Settings"])
async def change_storage_path(
    body: StoragePathChange, services: Services = Depends(get_services)
) -> dict[str, Any]:
    """Copy all data to a new storage root and switch to it."""
    new_root = await services.store.relocate(body.new_path, delete_old=body.delete_old)
    return {
        "success": True,
        "storagePath": str(new_root),
        "message": (
            "Data moved to new location"
            if body.delete_old
            else "Data copied to new location (original files kept)"
        ),
    }


@router.post("/settings/numbering/validate", tags=["Settings"])
async def validate_number_format(
    body: TemplateCheck, services: Services = Depends(get_services)
) -> dict[str, Any]:
    return services.settings.check_number_format(body)


# --- Business ---


@router.get("/business", tags=["Business"])
async def get_business(services: Services = Depends(get_services)) -> dict[str, Any]:
    business = services.business.get_or_none()
    return {"business": business.to_json() if business else None}


@router.put("/business", tags=["Business"])
async def update_business(
    body: BusinessUpdate, services: Services = Depends(get_services)
) -> dict[str, Any]:
    business = await services.business.update(body)
    return {"business": business.to_json()}


# --- Customers ---


@router.get("/customers", tags=["Customers"])
async def list_customers(services: Services = Depends(get_services)) -> dict[str, Any]:
    customers = services.customers.list()
    return {"customers": [c.to_json() for c in customers], "total": len(customers)}


@router.get("/customers/{customer_id}", tags=["Customers"])
async def get_customer(
    customer_id: str, services: Services = Depends(get_services)
) -> dict[str, Any]:
    return {"customer": services.customers.get(customer_id).to_json()}


@router.post("/customers", status_code=201, tags=["Customers"])
async def create_customer(
    body: CustomerCreate, services: Services = Depends(get_services)
) -> dict[str, Any]:
    customer = await services.customers.create(body)
    return {"customer": customer.to_json()}


@router.put("/customers/{customer_id}", tags=["Customers"])
async def update_customer(
    customer_id: str, body: CustomerUpdate, services: Services = Depends(get_services)
) -> dict[str, Any]:
    customer = await services.customers.update(customer_id, body)
    return {"customer": customer.to_json()}


@router.delete("/customers/{customer_id}", status_code=204, tags=["Customers"])
async def delete_customer(
    customer_id: str, services: Services = Depends(get_services)
) -> Response:
    await services.customers.delete(customer_id)
    return Response(status_code=204)


# --- Products ---


@router.get("/products", tags=["Products"])
async def list_products(services: Services = Depends(get_services)) -> dict[str, Any]:
    products = services.products.list()
    return {"products": [p.to_json() for p in products], "total": len(products)}


@router.get("/products/{product_id}", tags=["Products"])
async def get_product(
    product_id: str, services: Services = Depends(get_services)
) -> dict[str, Any]:
    return {"product": services.products.get(product_id).to_json()}


@router.post("/products", status_code=201, tags=["Products"])
async def create_product(
    body: ProductCreate, services: Services = Depends(get_services)
) -> dict[str, Any]:
    product = await services.products.create(body)
    return {"product": product.to_json()}


@router.put("/products/{product_id}", tags=["Products"])
async def update_product(
    product_id: str, body: ProductUpdate, services: Services = Depends(get_services)
) -> dict[str, Any]:
    product = await services.products.update(product_id, body)
    return {"product": product.to_json()}


@router.delete("/products/{product_id}", status_code=204, tags=["Products"])
async def delete_product(product_id: str, services: Services = Depends(get_services)) -> Response:
    await services.products.delete(product_id)
    return Response(status_code=204)


# --- Documents ---


async def _summaries(services: Services, document_type: str | None) -> dict[str, Any]:
    summaries = await services.documents.list_summaries(document_type)
    return {"documents": [s.to_json() for s in summaries], "total": len(summaries)}


@router.get("/documents", tags=["Documents"])
async def list_documents(
    type: Literal["offer", "invoice"] | None = Query(None, description="Document type filter"),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    return await _summaries(services, type)


@router.get("/documents/offers", tags=["Documents"])
async def list_offers(services: Services = Depends(get_services)) -> dict[str, Any]:
    return await _summaries(services, "offer")


@router.get("/documents/invoices", tags=["Documents"])
async def list_invoices(services: Services = Depends(get_services)) -> dict[str, Any]:
    return await _summaries(services, "invoice")


@router.post("/documents/convert-to-invoice", status_code=201, tags=["Documents"])
async def convert_to_invoice(
    body: ConvertToInvoice, services: Services = Depends(get_services)
) -> dict[str, Any]:
    invoice = await services.documents.convert_to_invoice(body)
    return {"document": invoice.to_json()}


@router.get("/documents/{document_id}", tags=["Documents"])
async def get_document(
    document_id: str, services: Services = Depends(get_services)
) -> dict[str, Any]:
    document = await services.documents.get(document_id)
    return {"document": document.to_json()}


@router.post("/documents", status_code=201, tags=["Documents"])
async def create_document(
    body: DocumentCreate, services: Services = Depends(get_services)
) -> dict[str, Any]:
    document = await services.documents.create(body)
    return {"document": document.to_json()}


@router.put("/documents/{document_id}", tags=["Documents"])
async def update_document(
    document_id: str, body: DocumentUpdate, services: Services = Depends(get_services)
) -> dict[str, Any]:
    document = await services.documents.update(document_id, body)
    return {"document": document.to_json()}


@router.delete("/documents/{document_id}", status_code=204, tags=["Documents"])
async def delete_document(
    document_id: str, services: Services = Depends(get_services)
) -> Response:
    await services.documents.delete(document_id)
    return Response(status_code=204)
