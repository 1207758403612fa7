"""Customer and product catalog services."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime

from ..errors import NotFoundError
from ..models.database import Address, Customer, DatabaseRecord, Product, local_now
from ..storage.store import PersistentStore
from .schemas import CustomerCreate, CustomerUpdate, ProductCreate, ProductUpdate

logger = logging.getLogger(__name__)


def _customer_not_found(customer_id: str) -> NotFoundError:
    return NotFoundError(
        f"Customer not found: {customer_id}", resource_type="customer", resource_id=customer_id
    )


def _product_not_found(product_id: str) -> NotFoundError:
    return NotFoundError(
        f"Product not found: {product_id}", resource_type="product", resource_id=product_id
    )


class CustomerService:
    """CRUD for customers kept in the database record."""

    def __init__(self, store: PersistentStore) -> None:
        self.store = store

    def list(self) -> list[Customer]:
        return list(self.store.get().customers)

    def get(self, customer_id: str) -> Customer:
        customer = self.store.get().find_customer(customer_id)
        if customer is None:
            raise _customer_not_found(customer_id)
        return customer

    async def create(self, data: CustomerCreate, now: datetime | None = None) -> Customer:
        now = now or local_now()
        address = data.address.set_fields(exclude_none=True) if data.address else {}
        customer = Customer(
            id=str(uuid.uuid4()),
            name=data.name,
            email=data.email,
            phone=data.phone,
            company=data.company,
            address=Address(**address),
            notes=data.notes,
            created_at=now,
            updated_at=now,
        )

        await self.store.mutate(lambda db: db.customers.append(customer))
        logger.info(f"Created customer {customer.id}")
        return customer

    async def update(
        self, customer_id: str, data: CustomerUpdate, now: datetime | None = None
    ) -> Customer:
        """Apply a partial update; a given address is merged into the current one."""
        changes = data.set_fields()
        address = changes.pop("address", None)
        address_changes = address.set_fields(exclude_none=True) if address else {}

        def apply(db: DatabaseRecord) -> Customer:
            customer = db.find_customer(customer_id)
            if customer is None:
                raise _customer_not_found(customer_id)
            for name, value in changes.items():
                setattr(customer, name, value)
            if address_changes:
                customer.address = customer.address.model_copy(update=address_changes)
            customer.updated_at = now or local_now()
            return customer

        return await self.store.mutate(apply)

    async def delete(self, customer_id: str) -> None:
        def apply(db: DatabaseRecord) -> None:
            customer = db.find_customer(customer_id)
            if customer is None:
                raise _customer_not_found(customer_id)
            db.customers.remove(customer)

        await self.store.mutate(apply)
        logger.info(f"Deleted customer {customer_id}")


class ProductService:
    """CRUD for the product catalog."""

    def __init__(self, store: PersistentStore) -> None:
        self.store = store

    def list(self) -> list[Product]:
        return list(self.store.get().products)

    def get(self, product_id: str) -> Product:
        product = self.store.get().find_product(product_id)
        if product is None:
            raise _product_not_found(product_id)
        return product

    async def create(self, data: ProductCreate, now: datetime | None = None) -> Product:
        now = now or local_now()
        product = Product(
            id=str(uuid.uuid4()),
            description=data.description,
            default_price=data.default_price,
            created_at=now,
            updated_at=now,
        )
        await self.store.mutate(lambda db: db.products.append(product))
        logger.info(f"Created product {product.id}")
        return product

    async def update(
        self, product_id: str, data: ProductUpdate, now: datetime | None = None
    ) -> Product:
        changes = data.set_fields()

        def apply(db: DatabaseRecord) -> Product:
            product = db.find_product(product_id)
            if product is None:
                raise _product_not_found(product_id)
            for name, value in changes.items():
                if value is not None:
                    setattr(product, name, value)
            product.updated_at = now or local_now()
            return product

        return await self.store.mutate(apply)

    async def delete(self, product_id: str) -> None:
        def apply(db: DatabaseRecord) -> None:
            product = db.find_product(product_id)
            if product is None:
                raise _product_not_found(product_id)
            db.products.remove(product)

        await self.store.mutate(apply)
        logger.info(f"Deleted product {product_id}")
