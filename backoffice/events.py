"""
Back-office: event definitions

One payload model per event type, tagged by its ``event_type`` literal
("order-placed", "inventory-reserve", ...). Events are immutable once built.

Order events go to the order channel; inventory deltas go to the inventory
channel and are consumed by the stock subsystem, which is the only place
stock levels actually change.
"""

from datetime import datetime
from typing import Literal, Union

from pydantic import BaseModel, ConfigDict

from .models import EntityKey, Order


class _Event(BaseModel):
    model_config = ConfigDict(frozen=True)


class _OrderSnapshot(_Event):
    order_number: int
    partition_key: str
    row_key: str
    customer_name: str
    product_name: str | None
    quantity: int
    unit_price_minor_units: int
    total_minor_units: int
    currency_code: str
    created_at_utc: datetime

    @classmethod
    def of(cls, order: Order):
        return cls(
            order_number=order.order_number,
            partition_key=order.partition_key,
            row_key=order.row_key,
            customer_name=order.customer_name,
            product_name=order.product_name,
            quantity=order.quantity,
            unit_price_minor_units=order.unit_price_minor_units,
            total_minor_units=order.total_minor_units,
            currency_code=order.currency_code,
            created_at_utc=order.created_at_utc,
        )


class OrderPlaced(_OrderSnapshot):
    """An order was recorded."""
    event_type: Literal["order-placed"] = "order-placed"


class OrderUpdated(_OrderSnapshot):
    """An order's business fields were replaced."""
    event_type: Literal["order-updated"] = "order-updated"


class OrderDeleted(_Event):
    """An order row was removed."""
    event_type: Literal["order-deleted"] = "order-deleted"
    partition_key: str
    row_key: str


class InventoryReserve(_Event):
    """Stock should be held for an order."""
    event_type: Literal["inventory-reserve"] = "inventory-reserve"
    product_key: EntityKey
    quantity: int
    reason: str


class InventoryRelease(_Event):
    """Stock held for an order should be returned."""
    event_type: Literal["inventory-release"] = "inventory-release"
    product_key: EntityKey
    quantity: int
    reason: str


OrderEvent = Union[OrderPlaced, OrderUpdated, OrderDeleted]
InventoryEvent = Union[InventoryReserve, InventoryRelease]
Event = Union[OrderEvent, InventoryEvent]


def inventory_deltas(
    old_product: EntityKey,
    old_quantity: int,
    new_product: EntityKey,
    new_quantity: int,
    reason: str,
) -> list[InventoryEvent]:
    """
    Inventory adjustments for an edited order, in publish order.

    Product changed: release everything held on the old product, then
    reserve the full new quantity. Same product: reserve or release the
    difference. Nothing changed: no events.
    """
    if old_product != new_product:
        return [
            InventoryRelease(product_key=old_product, quantity=old_quantity, reason=reason),
            InventoryReserve(product_key=new_product, quantity=new_quantity, reason=reason),
        ]

    delta = new_quantity - old_quantity
    if delta > 0:
        return [InventoryReserve(product_key=new_product, quantity=delta, reason=reason)]
    if delta < 0:
        return [InventoryRelease(product_key=new_product, quantity=-delta, reason=reason)]
    return []
