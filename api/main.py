"""
FastAPI main application for the Price Watch API.
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import List

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI, HTTPException, Response, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.config import config as api_config
from api.models import (
    ErrorResponse, HealthResponse, PriceHistoryResponse, ProductCreateRequest,
    ProductResponse, ProductSummaryResponse, SelectorTestRequest
)
from api.service import DuplicateProductError, LocatorValidationError, ProductService
from extractor.database import PriceStore
from extractor.models import LocatorTestResult
from extractor.value_extractor import ValueExtractor
from scheduler.job_registry import JobRegistry
from scheduler.models import CheckResult, SchedulerConfig
from scheduler.scheduler_service import PriceCheckScheduler
from utilities.config import config

# Setup logging
logger = structlog.get_logger(__name__)

# Global product service
product_service: ProductService = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    logger.info("Starting Price Watch API")

    global product_service
    store = PriceStore(
        connection_url=config.mongodb_url,
        database_name=config.mongodb_database
    )
    try:
        await store.connect()
    except Exception as e:
        logger.error("Failed to connect to database", error=str(e))
        raise

    scheduler_config = SchedulerConfig(
        cron_expression=config.cron_schedule,
        timezone=config.timezone,
        rate_limit_per_second=config.check_rate_limit_per_second
    )
    registry = JobRegistry(AsyncIOScheduler(timezone=scheduler_config.timezone))
    extractor = ValueExtractor()
    scheduler = PriceCheckScheduler(scheduler_config, store, registry=registry, extractor=extractor)
    await scheduler.start()

    product_service = ProductService(store, extractor, scheduler)

    yield

    # Shutdown
    logger.info("Shutting down Price Watch API")
    scheduler.shutdown()
    await store.disconnect()
    product_service = None


# Create FastAPI application
app = FastAPI(
    title=api_config.api_title,
    description="""
    Track product prices from web pages over time.

    ## Features

    * **Products**: Register a page URL with a CSS selector for its price
    * **Selector testing**: Check a selector before registering it
    * **Scheduled checks**: Every product is re-checked on a cron schedule
    * **On-demand checks**: Check one product or all products immediately
    * **History**: Full price history per product, most recent first
    """,
    version=api_config.api_version,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_service() -> ProductService:
    if not product_service:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Product service not available"
        )
    return product_service


# Exception handlers
@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc: HTTPException):
    """Handle HTTP exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder(ErrorResponse(
            error=exc.detail,
            status_code=exc.status_code
        )),
        headers=exc.headers
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request, exc: RequestValidationError):
    """Report invalid request bodies as 400."""
    messages = "; ".join(str(error.get("msg", "")) for error in exc.errors())
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=jsonable_encoder(ErrorResponse(
            error="Invalid request",
            detail=messages,
            status_code=status.HTTP_400_BAD_REQUEST
        ))
    )


@app.exception_handler(Exception)
async def general_exception_handler(request, exc: Exception):
    """Handle general exceptions."""
    logger.error("Unhandled exception", error=str(exc), path=request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=jsonable_encoder(ErrorResponse(
            error="Internal server error",
            detail=str(exc) if api_config.debug else None,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR
        ))
    )


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Health check endpoint."""
    db_status = "unavailable"
    scheduler_running = False
    if product_service:
        health_info = await product_service.health_check()
        db_status = health_info.get("status", "unknown")
        scheduler_running = product_service.scheduler_status().get("running", False)

    return HealthResponse(
        status="healthy" if db_status == "healthy" else "degraded",
        timestamp=datetime.utcnow(),
        version=api_config.api_version,
        database_status=db_status,
        scheduler_running=scheduler_running
    )


# Products endpoints
@app.get("/products", response_model=List[ProductSummaryResponse], tags=["Products"])
async def list_products():
    """List all products with their latest price."""
    return await get_service().list_products()


@app.post(
    "/products",
    response_model=ProductSummaryResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Products"]
)
async def create_product(request: ProductCreateRequest):
    """
    Register a product.

    The selector is tested against the page first; nothing is stored if no
    price can be extracted.
    """
    service = get_service()
    try:
        return await service.register_product(request.name, request.url, request.selector)
    except LocatorValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except DuplicateProductError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


@app.post("/products/check", response_model=List[CheckResult], tags=["Checks"])
async def check_all_products():
    """Check the price of every product now."""
    return await get_service().check_all_now()


@app.get("/products/{product_id}", response_model=ProductResponse, tags=["Products"])
async def get_product(product_id: int):
    """Get a single product by ID."""
    product = await get_service().get_product(product_id)
    if not product:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Product with ID {product_id} not found"
        )
    return product


@app.get("/products/{product_id}/prices", response_model=PriceHistoryResponse, tags=["Products"])
async def get_price_history(product_id: int):
    """Get the price history of a product, most recent first."""
    return await get_service().get_price_history(product_id)


@app.delete("/products/{product_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["Products"])
async def delete_product(product_id: int):
    """Delete a product, its price history and its scheduled checks."""
    deleted = await get_service().remove_product(product_id)
    if not deleted:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Product with ID {product_id} not found"
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.post("/products/{product_id}/check", response_model=CheckResult, tags=["Checks"])
async def check_product(product_id: int):
    """Check the price of one product now."""
    return await get_service().check_product_now(product_id)


@app.post("/selectors/test", response_model=LocatorTestResult, tags=["Checks"])
async def test_selector(request: SelectorTestRequest):
    """Test a selector against a page without registering anything."""
    return await get_service().test_locator(request.url, request.selector)


@app.get("/scheduler", tags=["Scheduler"])
async def get_scheduler_status():
    """Get scheduled jobs and their next run times."""
    return get_service().scheduler_status()
