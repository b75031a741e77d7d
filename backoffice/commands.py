"""
Back-office: order fulfillment workflow (write side)

Placement, edit and deletion of orders. Each command:

1. validates the request against the current customer / product snapshot
2. writes the order to the entity store
3. publishes the order event and any inventory delta

Publishing only happens after a successful write, and there is no
transaction spanning the two: a crash or broker failure in between leaves
the order stored with its inventory signal missing, never the reverse.
Publish failures are logged and returned on the result instead of raised.

Stock is checked against a point-in-time product snapshot and never
decremented here. Two placements racing on the same product can both pass
the check; the inventory consumers own stock correction.
"""

import logging
from dataclasses import dataclass, field

from .entity_store import CUSTOMERS, ORDERS, PRODUCTS, EntityStore, PutMode
from .errors import (
    ConflictError,
    EntityKind,
    InsufficientStock,
    InvalidQuantity,
    NotFound,
    PublishError,
    UnpricedProduct,
)
from .events import Event, InventoryReserve, OrderDeleted, OrderPlaced, OrderUpdated, inventory_deltas
from .models import Customer, Order, OrderInput, Product
from .publisher import EventPublisher

logger = logging.getLogger(__name__)

DEFAULT_CURRENCY = "ZAR"
ORDER_EVENTS_CHANNEL = "order_events"
INVENTORY_EVENTS_CHANNEL = "inventory_events"


@dataclass
class CommandResult:
    published: list[Event] = field(default_factory=list)
    publish_errors: list[PublishError] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        """The write committed but at least one event was not published."""
        return bool(self.publish_errors)

    @property
    def warnings(self) -> list[str]:
        return [e.reason for e in self.publish_errors]


@dataclass
class OrderResult(CommandResult):
    order: Order | None = None


@dataclass
class DeleteResult(CommandResult):
    existed: bool = False


def _check_quantity(quantity: int) -> None:
    if quantity < 1:
        raise InvalidQuantity(quantity)


def _check_product(product: Product, quantity: int) -> None:
    if (product.price_minor_units or 0) <= 0:
        raise UnpricedProduct()
    if quantity > product.available_stock:
        raise InsufficientStock(quantity, product.available_stock)


class OrderWorkflow:
    def __init__(
        self,
        store: EntityStore,
        publisher: EventPublisher,
        default_currency: str = DEFAULT_CURRENCY,
        order_channel: str = ORDER_EVENTS_CHANNEL,
        inventory_channel: str = INVENTORY_EVENTS_CHANNEL,
    ):
        self.store = store
        self.publisher = publisher
        self.default_currency = default_currency
        self.order_channel = order_channel
        self.inventory_channel = inventory_channel

    async def place_order(self, order_input: OrderInput) -> OrderResult:
        """
        Record a new order.

        Rejections, in order: InvalidQuantity (before any I/O), NotFound for
        the customer then the product, UnpricedProduct, InsufficientStock.
        The order is inserted, never overwritten. On success one
        order-placed and one inventory-reserve event are published.
        """
        quantity = order_input.quantity
        _check_quantity(quantity)
        customer, product = await self._resolve(order_input)
        _check_product(product, quantity)

        order = Order.place(customer, product, quantity, self.default_currency)
        stored = await self.store.put(ORDERS, order.model_dump(mode="json"), PutMode.INSERT_ONLY)
        order = Order.model_validate(stored)
        logger.info(
            "Order %d placed: %s/%s qty=%d total=%d %s",
            order.order_number, order.partition_key, order.row_key,
            order.quantity, order.total_minor_units, order.currency_code,
        )

        result = OrderResult(order=order)
        await self._publish(result, self.order_channel, OrderPlaced.of(order))
        await self._publish(
            result,
            self.inventory_channel,
            InventoryReserve(
                product_key=order.product_key,
                quantity=order.quantity,
                reason=f"Order {order.order_number}",
            ),
        )
        return result

    async def update_order(self, partition_key: str, row_key: str, order_input: OrderInput) -> OrderResult:
        """
        Replace an order's customer, product and quantity.

        The order is loaded first, so a missing order is NotFound whatever
        else the request says. Validation then matches placement. Stock is checked against the new
        product's current level without crediting what this order already
        holds, so raising the quantity on a nearly sold-out product can be
        rejected even though the net delta would fit.

        The replace is conditioned on the version read here (or the caller's
        ``expected_version``); a concurrent writer gets ConflictError. After
        the write: one order-updated event, then the inventory delta.
        """
        quantity = order_input.quantity
        doc = await self.store.get(ORDERS, partition_key, row_key)
        if doc is None:
            raise NotFound(EntityKind.ORDER)
        existing = Order.model_validate(doc)
        if order_input.expected_version is not None and order_input.expected_version != existing.version:
            raise ConflictError(
                f"Order {existing.order_number} is at version {existing.version}, "
                f"not {order_input.expected_version}. Reload and retry."
            )
        _check_quantity(quantity)

        customer, product = await self._resolve(order_input)
        _check_product(product, quantity)

        old_product, old_quantity = existing.product_key, existing.quantity
        revised = existing.revised(customer, product, quantity, self.default_currency)
        stored = await self.store.put(ORDERS, revised.model_dump(mode="json"), PutMode.REPLACE_EXISTING)
        order = Order.model_validate(stored)
        logger.info(
            "Order %d updated: %s/%s qty %d -> %d",
            order.order_number, order.partition_key, order.row_key, old_quantity, order.quantity,
        )

        result = OrderResult(order=order)
        await self._publish(result, self.order_channel, OrderUpdated.of(order))
        for event in inventory_deltas(
            old_product, old_quantity, order.product_key, order.quantity,
            reason=f"Order {order.order_number} edit",
        ):
            await self._publish(result, self.inventory_channel, event)
        return result

    async def delete_order(self, partition_key: str, row_key: str) -> DeleteResult:
        """
        Idempotent delete. A missing order is a success with nothing
        published. Stock held by the order is not released.
        """
        existed = await self.store.delete(ORDERS, partition_key, row_key)
        result = DeleteResult(existed=existed)
        if not existed:
            logger.info("Order %s/%s already gone", partition_key, row_key)
            return result

        logger.info("Order %s/%s deleted", partition_key, row_key)
        await self._publish(
            result,
            self.order_channel,
            OrderDeleted(partition_key=partition_key, row_key=row_key),
        )
        return result

    # ── helpers ──────────────────────────────────

    async def _resolve(self, order_input: OrderInput) -> tuple[Customer, Product]:
        ck, pk = order_input.customer_key, order_input.product_key

        doc = await self.store.get(CUSTOMERS, ck.partition_key, ck.row_key)
        if doc is None:
            raise NotFound(EntityKind.CUSTOMER)
        customer = Customer.model_validate(doc)

        doc = await self.store.get(PRODUCTS, pk.partition_key, pk.row_key)
        if doc is None:
            raise NotFound(EntityKind.PRODUCT)
        product = Product.model_validate(doc)

        return customer, product

    async def _publish(self, result: CommandResult, channel: str, event: Event) -> None:
        try:
            await self.publisher.publish(channel, event)
        except PublishError as e:
            logger.warning("Write committed but %s was not published to %s: %s", e.event_type, e.channel, e.detail)
            result.publish_errors.append(e)
        else:
            result.published.append(event)
