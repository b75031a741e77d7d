"""
Back-office: FastAPI entry point

Staff-facing API over the catalogue (customers, products) and the order
fulfillment workflow. Writes go to the entity store; order changes and
inventory deltas are published over Redis Pub/Sub for the downstream
stock subsystem.

┌──────────┐   place / edit /   ┌──────────────┐  order_events      ┌───────────┐
│  Staff   │ ────  delete  ───▶ │  Back-office │ ──── Redis ──────▶ │ Consumers │
│  client  │                    │  (this app)  │  inventory_events  │ (stock)   │
└──────────┘                    └──────┬───────┘                    └───────────┘
                                       │
                              ┌────────▼────────┐
                              │  Entity store   │
                              │ (entities table)│
                              └─────────────────┘
"""

import logging
import os
from contextlib import asynccontextmanager

import redis.asyncio as aioredis
from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import create_async_engine

from . import catalogue, queries
from .commands import OrderWorkflow
from .entity_store import EntityStore, create_schema, sql_store
from .errors import (
    BackofficeError,
    ConflictError,
    InsufficientStock,
    NotFound,
    StoreError,
    ValidationError,
)
from .models import Customer, CustomerInput, Order, OrderInput, Product, ProductInput
from .publisher import EventPublisher, RedisEventPublisher

DATABASE_URL = os.environ["DATABASE_URL"]
REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379")
DEFAULT_CURRENCY = os.environ.get("DEFAULT_CURRENCY", "ZAR")
ORDER_EVENTS_CHANNEL = os.environ.get("ORDER_EVENTS_CHANNEL", "order_events")
INVENTORY_EVENTS_CHANNEL = os.environ.get("INVENTORY_EVENTS_CHANNEL", "inventory_events")
LIST_LIMIT = int(os.environ.get("LIST_LIMIT", "500"))

logging.basicConfig(level=os.environ.get("LOG_LEVEL", "INFO"))
logger = logging.getLogger(__name__)

engine = create_async_engine(DATABASE_URL, echo=False)
store = sql_store(engine)
redis_pool: aioredis.Redis | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    global redis_pool
    redis_pool = aioredis.from_url(REDIS_URL, decode_responses=True)
    await create_schema(engine)
    yield
    await redis_pool.aclose()
    await engine.dispose()


app = FastAPI(title="Retail Back-office", lifespan=lifespan)


# ── Dependencies ─────────────────────────────────


def get_store() -> EntityStore:
    return store


def get_publisher() -> EventPublisher:
    return RedisEventPublisher(redis_pool)


def get_workflow(
    entity_store: EntityStore = Depends(get_store),
    publisher: EventPublisher = Depends(get_publisher),
) -> OrderWorkflow:
    return OrderWorkflow(
        entity_store,
        publisher,
        default_currency=DEFAULT_CURRENCY,
        order_channel=ORDER_EVENTS_CHANNEL,
        inventory_channel=INVENTORY_EVENTS_CHANNEL,
    )


# ── Error mapping ────────────────────────────────

# first match wins, so subclasses come before their bases
_STATUS_CODES: list[tuple[type[BackofficeError], int]] = [
    (NotFound, 404),
    (InsufficientStock, 409),
    (ValidationError, 422),
    (ConflictError, 409),
    (StoreError, 503),
]


@app.exception_handler(BackofficeError)
async def backoffice_error_handler(request: Request, exc: BackofficeError):
    status = next((code for cls, code in _STATUS_CODES if isinstance(exc, cls)), 500)
    if status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.reason)
    return JSONResponse(status_code=status, content={"detail": exc.reason})


# ── Response Models ──────────────────────────────


class OrderCommandResponse(BaseModel):
    order: Order
    warnings: list[str] = []


class DeleteResponse(BaseModel):
    deleted: bool
    warnings: list[str] = []


# ── Order Commands ───────────────────────────────


@app.post("/orders", status_code=201, response_model=OrderCommandResponse)
async def cmd_place_order(req: OrderInput, workflow: OrderWorkflow = Depends(get_workflow)):
    """Place an order. ``warnings`` lists events that could not be published."""
    result = await workflow.place_order(req)
    return OrderCommandResponse(order=result.order, warnings=result.warnings)


@app.put("/orders/{pk}/{rk}", response_model=OrderCommandResponse)
async def cmd_update_order(pk: str, rk: str, req: OrderInput, workflow: OrderWorkflow = Depends(get_workflow)):
    result = await workflow.update_order(pk, rk, req)
    return OrderCommandResponse(order=result.order, warnings=result.warnings)


@app.delete("/orders/{pk}/{rk}", response_model=DeleteResponse)
async def cmd_delete_order(pk: str, rk: str, workflow: OrderWorkflow = Depends(get_workflow)):
    """Idempotent; ``deleted`` is false when the order was already gone."""
    result = await workflow.delete_order(pk, rk)
    return DeleteResponse(deleted=result.existed, warnings=result.warnings)


# ── Order Queries ────────────────────────────────


@app.get("/orders", response_model=list[Order])
async def query_list_orders(
    take: int | None = Query(default=None, ge=1),
    entity_store: EntityStore = Depends(get_store),
):
    return await queries.list_orders(entity_store, take or LIST_LIMIT)


@app.get("/orders/product-info/{pk}/{rk}")
async def query_product_info(pk: str, rk: str, entity_store: EntityStore = Depends(get_store)):
    """Price and stock lookup for the order-entry form."""
    info = await queries.get_product_info(entity_store, pk, rk, DEFAULT_CURRENCY)
    if not info:
        raise HTTPException(404, "Product not found")
    return info


@app.get("/orders/{pk}/{rk}", response_model=Order)
async def query_get_order(pk: str, rk: str, entity_store: EntityStore = Depends(get_store)):
    order = await queries.get_order(entity_store, pk, rk)
    if not order:
        raise HTTPException(404, "Order not found")
    return order


# ── Customers ────────────────────────────────────


@app.get("/customers", response_model=list[Customer])
async def list_customers(
    take: int | None = Query(default=None, ge=1),
    entity_store: EntityStore = Depends(get_store),
):
    return await catalogue.list_customers(entity_store, take or LIST_LIMIT)


@app.post("/customers", status_code=201, response_model=Customer)
async def create_customer(req: CustomerInput, entity_store: EntityStore = Depends(get_store)):
    return await catalogue.create_customer(entity_store, req)


@app.get("/customers/{pk}/{rk}", response_model=Customer)
async def get_customer(pk: str, rk: str, entity_store: EntityStore = Depends(get_store)):
    customer = await catalogue.get_customer(entity_store, pk, rk)
    if not customer:
        raise HTTPException(404, "Customer not found")
    return customer


@app.put("/customers/{pk}/{rk}", response_model=Customer)
async def update_customer(pk: str, rk: str, req: CustomerInput, entity_store: EntityStore = Depends(get_store)):
    return await catalogue.update_customer(entity_store, pk, rk, req)


@app.delete("/customers/{pk}/{rk}", response_model=DeleteResponse)
async def delete_customer(pk: str, rk: str, entity_store: EntityStore = Depends(get_store)):
    return DeleteResponse(deleted=await catalogue.delete_customer(entity_store, pk, rk))


# ── Products ─────────────────────────────────────


@app.get("/products", response_model=list[Product])
async def list_products(
    take: int | None = Query(default=None, ge=1),
    entity_store: EntityStore = Depends(get_store),
):
    return await catalogue.list_products(entity_store, take or LIST_LIMIT)


@app.post("/products", status_code=201, response_model=Product)
async def create_product(req: ProductInput, entity_store: EntityStore = Depends(get_store)):
    return await catalogue.create_product(entity_store, req)


@app.get("/products/{pk}/{rk}", response_model=Product)
async def get_product(pk: str, rk: str, entity_store: EntityStore = Depends(get_store)):
    product = await catalogue.get_product(entity_store, pk, rk)
    if not product:
        raise HTTPException(404, "Product not found")
    return product


@app.put("/products/{pk}/{rk}", response_model=Product)
async def update_product(pk: str, rk: str, req: ProductInput, entity_store: EntityStore = Depends(get_store)):
    return await catalogue.update_product(entity_store, pk, rk, req)


@app.delete("/products/{pk}/{rk}", response_model=DeleteResponse)
async def delete_product(pk: str, rk: str, entity_store: EntityStore = Depends(get_store)):
    return DeleteResponse(deleted=await catalogue.delete_product(entity_store, pk, rk))


@app.get("/health")
async def health():
    return {"status": "ok", "service": "backoffice"}
