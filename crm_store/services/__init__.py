"""
Domain services built on the persistent store.

This package provides:
- CustomerService, ProductService: entries in the database record
- BusinessService, SettingsService: the business profile and settings
- DocumentService: offers and invoices stored one file each
- Input models for all of the above (schemas)
"""

from ..storage.store import PersistentStore
from .customers import CustomerService, ProductService
from .documents import DocumentService, build_items, snapshot_customer
from .schemas import (
    AddressInput,
    BankDetailsInput,
    BusinessUpdate,
    ConvertToInvoice,
    CustomerCreate,
    CustomerUpdate,
    DocumentCreate,
    DocumentItemInput,
    DocumentUpdate,
    ProductCreate,
    ProductUpdate,
    SettingsUpdate,
    StoragePathChange,
    TemplateCheck,
)
from .settings import BusinessService, SettingsService


class Services:
    """All services bound to one store."""

    def __init__(self, store: PersistentStore) -> None:
        self.store = store
        self.customers = CustomerService(store)
        self.products = ProductService(store)
        self.business = BusinessService(store)
        self.settings = SettingsService(store)
        self.documents = DocumentService(store)


__all__ = [
    "Services",
    # Services
    "BusinessService",
    "CustomerService",
    "DocumentService",
    "ProductService",
    "SettingsService",
    "build_items",
    "snapshot_customer",
    # Inputs
    "AddressInput",
    "BankDetailsInput",
    "BusinessUpdate",
    "ConvertToInvoice",
    "CustomerCreate",
    "CustomerUpdate",
    "DocumentCreate",
    "DocumentItemInput",
    "DocumentUpdate",
    "ProductCreate",
    "ProductUpdate",
    "SettingsUpdate",
    "StoragePathChange",
    "TemplateCheck",
]
