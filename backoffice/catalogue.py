"""
Back-office: catalogue (customers and products)

Record keeping for the entities orders are placed against. Edits here
never reach existing orders; those keep the names and prices they were
placed with.

Updates are full replaces conditioned on the version just read, so an edit
racing another edit fails with ConflictError instead of silently winning.
"""

import logging

from .entity_store import CUSTOMERS, PRODUCTS, EntityStore, PutMode
from .errors import ConflictError, EntityKind, NotFound
from .models import Customer, CustomerInput, Product, ProductInput

logger = logging.getLogger(__name__)


# ── Customers ────────────────────────────────────


async def create_customer(store: EntityStore, data: CustomerInput) -> Customer:
    customer = Customer.new_from(data)
    stored = await store.put(CUSTOMERS, customer.model_dump(mode="json"), PutMode.INSERT_ONLY)
    logger.info("Customer created: %s/%s", customer.partition_key, customer.row_key)
    return Customer.model_validate(stored)


async def get_customer(store: EntityStore, partition_key: str, row_key: str) -> Customer | None:
    doc = await store.get(CUSTOMERS, partition_key, row_key)
    return Customer.model_validate(doc) if doc is not None else None


async def list_customers(store: EntityStore, limit: int = 500) -> list[Customer]:
    customers = [Customer.model_validate(d) for d in await store.list_all(CUSTOMERS)]
    customers.sort(key=lambda c: (c.surname, c.first_name))
    return customers[:limit]


async def update_customer(
    store: EntityStore,
    partition_key: str,
    row_key: str,
    data: CustomerInput,
) -> Customer:
    existing = await get_customer(store, partition_key, row_key)
    if existing is None:
        raise NotFound(EntityKind.CUSTOMER)
    updated = existing.updated_from(data)
    stored = await store.put(CUSTOMERS, updated.model_dump(mode="json"), PutMode.REPLACE_EXISTING)
    return Customer.model_validate(stored)


async def delete_customer(store: EntityStore, partition_key: str, row_key: str) -> bool:
    """Idempotent. Orders that reference the customer are left alone."""
    return await store.delete(CUSTOMERS, partition_key, row_key)


# ── Products ─────────────────────────────────────


async def create_product(store: EntityStore, data: ProductInput) -> Product:
    product = Product.new_from(data)
    stored = await store.put(PRODUCTS, product.model_dump(mode="json"), PutMode.INSERT_ONLY)
    logger.info("Product created: %s/%s", product.partition_key, product.row_key)
    return Product.model_validate(stored)


async def get_product(store: EntityStore, partition_key: str, row_key: str) -> Product | None:
    doc = await store.get(PRODUCTS, partition_key, row_key)
    return Product.model_validate(doc) if doc is not None else None


async def list_products(store: EntityStore, limit: int = 500) -> list[Product]:
    products = [Product.model_validate(d) for d in await store.list_all(PRODUCTS)]
    products.sort(key=lambda p: (p.category or "", p.name or ""))
    return products[:limit]


async def update_product(
    store: EntityStore,
    partition_key: str,
    row_key: str,
    data: ProductInput,
) -> Product:
    """
    Full replace of the product's fields.

    A category change moves the product to a new partition: the new row is
    inserted first, then the old one removed only if it still carries the
    version read here. If it does not, the new row is removed again and
    ConflictError raised. The row key is kept, so the product's address
    changes only in its partition.
    """
    existing = await get_product(store, partition_key, row_key)
    if existing is None:
        raise NotFound(EntityKind.PRODUCT)
    updated = existing.updated_from(data)

    if updated.partition_key == existing.partition_key:
        stored = await store.put(PRODUCTS, updated.model_dump(mode="json"), PutMode.REPLACE_EXISTING)
        return Product.model_validate(stored)

    stored = await store.put(PRODUCTS, updated.model_dump(mode="json"), PutMode.INSERT_ONLY)
    if not await store.delete(PRODUCTS, partition_key, row_key, expected_version=existing.version):
        # old row was edited or removed after we read it; undo the copy
        await store.delete(PRODUCTS, updated.partition_key, row_key, expected_version=stored["version"])
        raise ConflictError(
            f"products {partition_key}/{row_key} was changed or removed since it was read "
            f"(expected version {existing.version})."
        )
    logger.info(
        "Product %s moved from partition %s to %s",
        row_key, existing.partition_key, updated.partition_key,
    )
    return Product.model_validate(stored)


async def delete_product(store: EntityStore, partition_key: str, row_key: str) -> bool:
    """Idempotent. Orders keep their product snapshot."""
    return await store.delete(PRODUCTS, partition_key, row_key)
