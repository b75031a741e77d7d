"""
Back-office: order queries (read side)

Plain pass-through reads. Listing is a full scan followed by an in-process
sort and cap, which is only reasonable at back-office scale.
"""

from .entity_store import ORDERS, PRODUCTS, EntityStore
from .models import Order, Product, from_minor_units


async def get_order(store: EntityStore, partition_key: str, row_key: str) -> Order | None:
    doc = await store.get(ORDERS, partition_key, row_key)
    if doc is None:
        return None
    return Order.model_validate(doc)


async def list_orders(store: EntityStore, limit: int = 500) -> list[Order]:
    """Oldest first by order number, at most ``limit`` orders."""
    orders = [Order.model_validate(doc) for doc in await store.list_all(ORDERS)]
    orders.sort(key=lambda o: o.order_number)
    return orders[:limit]


async def get_product_info(
    store: EntityStore,
    partition_key: str,
    row_key: str,
    default_currency: str,
) -> dict | None:
    """Price and stock for the order-entry form."""
    doc = await store.get(PRODUCTS, partition_key, row_key)
    if doc is None:
        return None
    product = Product.model_validate(doc)
    return {
        "name": product.name,
        "price_minor_units": product.price_minor_units or 0,
        "price": from_minor_units(product.price_minor_units or 0),
        "stock": product.available_stock,
        "currency_code": product.currency_or(default_currency),
    }
