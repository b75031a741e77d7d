import os

# backoffice.main reads its configuration at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from backoffice import catalogue
from backoffice.commands import OrderWorkflow
from backoffice.entity_store import MemoryEntityStore, create_schema, sql_store
from backoffice.errors import PublishError
from backoffice.models import CustomerInput, EntityKey, OrderInput, ProductInput


class RecordingPublisher:
    """Collects published events in order. Event types in ``fail_on`` raise PublishError."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, object]] = []
        self.fail_on: set[str] = set()

    async def publish(self, channel, event) -> None:
        if event.event_type in self.fail_on:
            raise PublishError("broker unavailable", channel, event.event_type)
        self.sent.append((channel, event))

    @property
    def event_types(self) -> list[str]:
        return [event.event_type for _, event in self.sent]

    def events(self, event_type: str) -> list:
        return [event for _, event in self.sent if event.event_type == event_type]

    def clear(self) -> None:
        self.sent.clear()


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def store():
    return MemoryEntityStore()


@pytest.fixture
async def sqlite_store():
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    await create_schema(engine)
    yield sql_store(engine)
    await engine.dispose()


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def workflow(store, publisher):
    return OrderWorkflow(store, publisher)


@pytest.fixture
async def customer(store):
    return await catalogue.create_customer(store, CustomerInput(first_name="Thandi", surname="Nkosi"))


@pytest.fixture
async def product(store):
    return await catalogue.create_product(
        store,
        ProductInput(name="Espresso Beans 1kg", category="Coffee", price=Decimal("25.00"), stock_quantity=10),
    )


@pytest.fixture
async def other_product(store):
    return await catalogue.create_product(
        store,
        ProductInput(name="Filter Papers", category="Coffee", price=Decimal("4.99"), stock_quantity=50),
    )


def order_input(customer, product, quantity, expected_version=None) -> OrderInput:
    return OrderInput(
        customer_key=EntityKey(partition_key=customer.partition_key, row_key=customer.row_key),
        product_key=EntityKey(partition_key=product.partition_key, row_key=product.row_key),
        quantity=quantity,
        expected_version=expected_version,
    )
