"""FastAPI router configuration."""
from __future__ import annotations

from decimal import Decimal, InvalidOperation

import structlog
from fastapi import APIRouter, Depends, FastAPI, File, HTTPException, Query, Request, UploadFile, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from . import crud, schemas
from .bulk_import import BulkImporter
from .config import Settings, get_settings
from .database import get_session, get_session_factory
from .exceptions import CatalogueError, ErrorKind
from .logging_config import configure_logging
from .models import Currency, ProductPrice
from .pagination import Page, PageRequest

logger = structlog.get_logger(__name__)

router = APIRouter()
categories = APIRouter(prefix="/api/categories", tags=["categories"])
products = APIRouter(prefix="/products", tags=["products"])
inventory = APIRouter(prefix="/inventory", tags=["inventory"])
prices = APIRouter(prefix="/prices", tags=["prices"])
bulk = APIRouter(prefix="/bulk", tags=["bulk"])

STATUS_BY_KIND = {
    ErrorKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.DATABASE: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def provide_settings() -> Settings:
    """Dependency returning the active :class:`Settings` instance."""

    return get_settings()


def _page_request(page: int, size: int, sort: str, direction: str) -> PageRequest:
    try:
        return PageRequest(page=page, size=size, sort=sort, direction=direction)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


def _page_out(page: Page, transform) -> dict:
    page = page.map(transform)
    return {
        "content": page.content,
        "page": page.page,
        "size": page.size,
        "total_elements": page.total_elements,
        "total_pages": page.total_pages,
        "first": page.first,
        "last": page.last,
    }


def _price_out(price: ProductPrice) -> schemas.PriceOut:
    return schemas.PriceOut(
        id=price.id,
        product_id=price.product_id,
        currency=price.currency,
        amount=price.amount,
        active=price.is_active,
    )


@router.get("/health", response_model=schemas.HealthStatus, tags=["system"])
async def health_check(settings: Settings = Depends(provide_settings)) -> schemas.HealthStatus:
    return schemas.HealthStatus(environment=settings.environment)


@router.get("/api/ping", response_class=PlainTextResponse, tags=["system"])
async def ping() -> str:
    return "pong"


# Categories


@categories.post("", response_model=schemas.CategoryOut, status_code=status.HTTP_201_CREATED)
async def create_category(
    payload: schemas.CategoryCreate, session: AsyncSession = Depends(get_session)
) -> schemas.CategoryOut:
    category = await crud.create_category(session, payload.title, payload.description)
    await session.commit()
    return schemas.CategoryOut.model_validate(category)


@categories.put("/{category_id}", response_model=schemas.CategoryOut)
async def update_category(
    category_id: int,
    payload: schemas.CategoryUpdate,
    session: AsyncSession = Depends(get_session),
) -> schemas.CategoryOut:
    category = await crud.update_category(session, category_id, payload.title, payload.description)
    await session.commit()
    return schemas.CategoryOut.model_validate(category)


@categories.post("/{category_id}/activate", status_code=status.HTTP_204_NO_CONTENT)
async def activate_category(category_id: int, session: AsyncSession = Depends(get_session)) -> None:
    await crud.activate_category(session, category_id)
    await session.commit()


@categories.post("/{category_id}/deactivate", status_code=status.HTTP_204_NO_CONTENT)
async def deactivate_category(category_id: int, session: AsyncSession = Depends(get_session)) -> None:
    await crud.deactivate_category(session, category_id)
    await session.commit()


@categories.get("/{category_id}", response_model=schemas.CategoryOut)
async def get_category(category_id: int, session: AsyncSession = Depends(get_session)) -> schemas.CategoryOut:
    category = await crud.get_category(session, category_id)
    return schemas.CategoryOut.model_validate(category)


@categories.get("", response_model=schemas.PageOut[schemas.CategoryOut])
async def list_active_categories(
    page: int = 0,
    size: int = 10,
    sort: str = "id",
    direction: str = "ASC",
    session: AsyncSession = Depends(get_session),
) -> dict:
    request = _page_request(page, size, sort, direction)
    try:
        result = await crud.list_active_categories(session, request)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return _page_out(result, schemas.CategoryOut.model_validate)


# Products


@products.post("", response_model=schemas.ProductOut, status_code=status.HTTP_201_CREATED)
async def create_product(
    payload: schemas.ProductCreate, session: AsyncSession = Depends(get_session)
) -> schemas.ProductOut:
    product = await crud.create_product(session, payload.name, payload.description, payload.category_id)
    await session.commit()
    return schemas.ProductOut.model_validate(product)


@products.put("/{product_id}", response_model=schemas.ProductOut)
async def update_product(
    product_id: int,
    payload: schemas.ProductUpdate,
    session: AsyncSession = Depends(get_session),
) -> schemas.ProductOut:
    product = await crud.update_product(
        session, product_id, payload.name, payload.description, payload.category_id
    )
    await session.commit()
    return schemas.ProductOut.model_validate(product)


@products.post("/{product_id}/activate", status_code=status.HTTP_204_NO_CONTENT)
async def activate_product(product_id: int, session: AsyncSession = Depends(get_session)) -> None:
    await crud.activate_product(session, product_id)
    await session.commit()


@products.post("/{product_id}/deactivate", status_code=status.HTTP_204_NO_CONTENT)
async def deactivate_product(product_id: int, session: AsyncSession = Depends(get_session)) -> None:
    await crud.deactivate_product(session, product_id)
    await session.commit()


@products.get("/{product_id}", response_model=schemas.ProductOut)
async def get_product(product_id: int, session: AsyncSession = Depends(get_session)) -> schemas.ProductOut:
    product = await crud.get_product(session, product_id)
    return schemas.ProductOut.model_validate(product)


@products.get("", response_model=schemas.PageOut[schemas.ProductOut])
async def list_active_products(
    page: int = 0,
    size: int = 10,
    sort: str = "id",
    direction: str = "ASC",
    session: AsyncSession = Depends(get_session),
) -> dict:
    request = _page_request(page, size, sort, direction)
    try:
        result = await crud.list_active_products(session, request)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return _page_out(result, schemas.ProductOut.model_validate)


@products.get("/category/{category_id}", response_model=schemas.PageOut[schemas.ProductOut])
async def list_products_by_category(
    category_id: int,
    page: int = 0,
    size: int = 10,
    sort: str = "id",
    direction: str = "ASC",
    session: AsyncSession = Depends(get_session),
) -> dict:
    request = _page_request(page, size, sort, direction)
    try:
        result = await crud.list_products_by_category(session, category_id, request)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return _page_out(result, schemas.ProductOut.model_validate)


# Inventory


@inventory.post("", response_model=schemas.InventoryOut, status_code=status.HTTP_201_CREATED)
async def create_inventory(
    payload: schemas.InventoryCreate, session: AsyncSession = Depends(get_session)
) -> schemas.InventoryOut:
    record = await crud.create_inventory(session, payload.product_id, payload.quantity)
    await session.commit()
    return schemas.InventoryOut.model_validate(record)


@inventory.post("/{product_id}/reserve", status_code=status.HTTP_204_NO_CONTENT)
async def reserve_stock(
    product_id: int, quantity: int, session: AsyncSession = Depends(get_session)
) -> None:
    await crud.reserve_stock(session, product_id, quantity)
    await session.commit()


@inventory.post("/{product_id}/release", status_code=status.HTTP_204_NO_CONTENT)
async def release_stock(
    product_id: int, quantity: int, session: AsyncSession = Depends(get_session)
) -> None:
    await crud.release_stock(session, product_id, quantity)
    await session.commit()


@inventory.post("/{product_id}/clear", status_code=status.HTTP_204_NO_CONTENT)
async def clear_reservations(product_id: int, session: AsyncSession = Depends(get_session)) -> None:
    await crud.clear_reservations(session, product_id)
    await session.commit()


@inventory.get("/{product_id}", response_model=schemas.InventoryOut)
async def get_inventory(product_id: int, session: AsyncSession = Depends(get_session)) -> schemas.InventoryOut:
    record = await crud.get_inventory(session, product_id)
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Inventory for product ID {product_id} not found",
        )
    return schemas.InventoryOut.model_validate(record)


# Prices


@prices.post("", response_model=schemas.PriceOut, status_code=status.HTTP_201_CREATED)
async def create_price(
    payload: schemas.PriceCreate, session: AsyncSession = Depends(get_session)
) -> schemas.PriceOut:
    price = await crud.create_price(session, payload.product_id, payload.currency, payload.amount)
    await session.commit()
    return _price_out(price)


@prices.get("/active", response_model=schemas.PriceOut)
async def get_active_price(
    product_id: int = Query(..., alias="productId"),
    currency: str = Query(...),
    session: AsyncSession = Depends(get_session),
) -> schemas.PriceOut:
    try:
        code = Currency.from_code(currency)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    price = await crud.get_active_price(session, product_id, code)
    return _price_out(price)


@prices.post("/{price_id}/change", status_code=status.HTTP_204_NO_CONTENT)
async def change_price(price_id: int, amount: str, session: AsyncSession = Depends(get_session)) -> None:
    try:
        new_amount = Decimal(amount)
    except InvalidOperation as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid amount: {amount}"
        ) from exc
    await crud.change_price(session, price_id, new_amount)
    await session.commit()


@prices.post("/{price_id}/expire", status_code=status.HTTP_204_NO_CONTENT)
async def expire_price(price_id: int, session: AsyncSession = Depends(get_session)) -> None:
    await crud.expire_price(session, price_id)
    await session.commit()


@prices.get("/{price_id}", response_model=schemas.PriceOut)
async def get_price(price_id: int, session: AsyncSession = Depends(get_session)) -> schemas.PriceOut:
    price = await crud.get_price(session, price_id)
    if price is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail=f"Price with ID {price_id} not found"
        )
    return _price_out(price)


@prices.get("/product/{product_id}", response_model=schemas.PageOut[schemas.PriceOut])
async def list_active_prices(
    product_id: int,
    page: int = 0,
    size: int = 10,
    sort: str = "validFrom",
    direction: str = "ASC",
    session: AsyncSession = Depends(get_session),
) -> dict:
    request = _page_request(page, size, sort, direction)
    try:
        result = await crud.list_active_prices(session, product_id, request)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return _page_out(result, _price_out)


# Bulk import


def _batch_sizes(
    category_batch_size: int | None, product_batch_size: int | None, settings: Settings
) -> tuple[int, int]:
    return (
        category_batch_size or settings.category_batch_size,
        product_batch_size or settings.product_batch_size,
    )


@bulk.post("/import-json", response_model=schemas.BulkImportResult)
async def import_json(
    payload: schemas.BulkImportRequest,
    category_batch_size: int | None = Query(None, alias="categoryBatchSize", ge=1),
    product_batch_size: int | None = Query(None, alias="productBatchSize", ge=1),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    settings: Settings = Depends(provide_settings),
) -> schemas.BulkImportResult:
    sizes = _batch_sizes(category_batch_size, product_batch_size, settings)
    return await BulkImporter(session_factory).import_data(payload, *sizes)


@bulk.post("/import-file", response_model=schemas.BulkImportResult)
async def import_file(
    file: UploadFile = File(...),
    category_batch_size: int | None = Query(None, alias="categoryBatchSize", ge=1),
    product_batch_size: int | None = Query(None, alias="productBatchSize", ge=1),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    settings: Settings = Depends(provide_settings),
):
    content = await file.read()
    try:
        payload = schemas.BulkImportRequest.model_validate_json(content)
    except ValueError as exc:
        logger.warning("bulk_import_file_rejected", filename=file.filename, reason=str(exc))
        result = schemas.BulkImportResult(errors=[f"File processing error: {exc}"])
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=result.model_dump(mode="json", by_alias=True),
        )
    sizes = _batch_sizes(category_batch_size, product_batch_size, settings)
    return await BulkImporter(session_factory).import_data(payload, *sizes)


# Error handling


def _error_response(status_code: int, code: str, message: str, source: str) -> JSONResponse:
    body = schemas.ErrorResponse(
        error=schemas.ErrorDetail(error_code=code, error_message=message, error_source=source)
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json", by_alias=True))


async def handle_catalogue_error(request: Request, exc: CatalogueError) -> JSONResponse:
    status_code = STATUS_BY_KIND[exc.kind]
    if status_code >= 500:
        logger.error("request_failed", path=request.url.path, exc_info=exc)
    return _error_response(status_code, exc.code, exc.message, exc.source)


async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    field = ".".join(str(part) for part in errors[0].get("loc", ())) if errors else ""
    detail = f"Validation failed: {field}: {message}" if field else f"Validation failed: {message}"
    return _error_response(status.HTTP_400_BAD_REQUEST, "VALIDATION_ERROR", detail, "Validation")


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings)
    app = FastAPI(title=settings.app_name)
    app.dependency_overrides[provide_settings] = lambda: settings
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[origin.strip() for origin in settings.access_control_allow_origin.split(",")],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(CatalogueError, handle_catalogue_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    for sub_router in (router, categories, products, inventory, prices, bulk):
        app.include_router(sub_router)
    return app


app = create_app()


__all__ = ["app", "create_app"]
