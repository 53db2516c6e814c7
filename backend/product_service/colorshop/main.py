# colorshop/backend/product_service/colorshop/main.py

import logging
import sys
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import List, Optional

from fastapi import Depends, FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from starlette.datastructures import UploadFile

from . import config
from .db import Base, engine, get_db
from .errors import ColorshopError, ValidationError
from .schemas import (
    AdminLogin,
    AdminLoginResponse,
    MessageResponse,
    ProductResponse,
)
from .services import (
    AdminService,
    ProductOutcome,
    ProductService,
    parse_create,
    parse_patch,
)
from .storage import ImageStorage, ImageUpload

# --- Standard Logging Configuration ---
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)

# Suppress noisy logs from third-party libraries for cleaner output
logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
logging.getLogger("uvicorn.error").setLevel(logging.INFO)
logging.getLogger("azure.core.pipeline.policies.http_logging_policy").setLevel(
    logging.WARNING
)

IMAGE_CLEANUP_HEADER = "X-Image-Cleanup"


def init_database() -> None:
    max_retries = config.DB_CONNECT_MAX_RETRIES
    retry_delay_seconds = config.DB_CONNECT_RETRY_DELAY_SECONDS
    for i in range(max_retries):
        try:
            logger.info(
                f"Product Service: Attempting to connect to the database and create tables (attempt {i+1}/{max_retries})..."
            )
            Base.metadata.create_all(bind=engine)
            logger.info(
                "Product Service: Successfully connected to the database and ensured tables exist."
            )
            return
        except OperationalError as e:
            logger.warning(f"Product Service: Failed to connect to the database: {e}")
            if i < max_retries - 1:
                logger.info(
                    f"Product Service: Retrying in {retry_delay_seconds} seconds..."
                )
                time.sleep(retry_delay_seconds)
    logger.critical(
        f"Product Service: Failed to connect to the database after {max_retries} attempts. Exiting application."
    )
    sys.exit(1)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_database()
    app.state.image_storage = ImageStorage.from_env()
    yield
    if app.state.image_storage is not None:
        app.state.image_storage.close()
    engine.dispose()
    logger.info("Product Service: Shutdown complete.")


# --- FastAPI Application Setup ---
app = FastAPI(
    title="Colorshop Product Service API",
    description="Manages the paint catalog: products, search, admin login and product images stored in Azure Blob Storage.",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ColorshopError)
async def colorshop_error_handler(request: Request, exc: ColorshopError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# --- Dependencies ---
def get_image_storage(request: Request) -> Optional[ImageStorage]:
    return getattr(request.app.state, "image_storage", None)


def get_product_service(
    db: Session = Depends(get_db),
    storage: Optional[ImageStorage] = Depends(get_image_storage),
) -> ProductService:
    return ProductService(db, storage)


def get_admin_service(db: Session = Depends(get_db)) -> AdminService:
    return AdminService(db)


@dataclass
class ProductPayload:
    fields: dict = field(default_factory=dict)
    image: Optional[ImageUpload] = None


async def read_product_payload(request: Request) -> ProductPayload:
    """
    Reads product fields from a JSON body or from a form, plus the optional
    ``colorImage`` file part. Only keys actually sent end up in ``fields``.
    """
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        try:
            body = await request.json()
        except ValueError as e:
            raise ValidationError("Request body is not valid JSON") from e
        if not isinstance(body, dict):
            raise ValidationError("Request body must be a JSON object")
        return ProductPayload(fields=body)

    payload = ProductPayload()
    if not content_type:
        return payload

    form = await request.form()
    for key, value in form.multi_items():
        if isinstance(value, UploadFile):
            if key != config.IMAGE_FORM_FIELD:
                continue
            data = await value.read()
            if not data and not value.filename:
                # Browsers send an empty part when no file was chosen
                continue
            payload.image = ImageUpload(
                data=data,
                filename=value.filename or "",
                content_type=value.content_type or "application/octet-stream",
            )
        else:
            payload.fields[key] = value
    return payload


def _report_cleanup(outcome: ProductOutcome, response: Response, product_id: int):
    response.headers[IMAGE_CLEANUP_HEADER] = outcome.image_cleanup.value
    if outcome.cleanup_failed:
        logger.warning(
            f"Product Service: Product {product_id} saved, but its previous image could not be deleted."
        )


# --- Root Endpoint ---
@app.get("/", status_code=status.HTTP_200_OK, summary="Root endpoint")
async def read_root():
    return {"message": "Welcome to the Colorshop Product Service!"}


# --- Health Check Endpoint ---
@app.get("/health", status_code=status.HTTP_200_OK, summary="Health check endpoint")
async def health_check():
    return {"status": "ok", "service": "product-service"}


# --- Public Product Endpoints ---
@app.get(
    "/products",
    response_model=List[ProductResponse],
    summary="Retrieve all products, most recently updated first",
)
def list_products(service: ProductService = Depends(get_product_service)):
    products = service.list_all()
    logger.info(f"Product Service: Retrieved {len(products)} products.")
    return products


@app.get(
    "/products/search/{query}",
    response_model=List[ProductResponse],
    summary="Search products by name, brand, category or color",
)
def search_products(query: str, service: ProductService = Depends(get_product_service)):
    return service.search(query)


@app.get(
    "/products/{product_id}",
    response_model=ProductResponse,
    summary="Retrieve a single product by ID",
)
def get_product(product_id: int, service: ProductService = Depends(get_product_service)):
    logger.info(f"Product Service: Fetching product with ID: {product_id}")
    return service.get(product_id)


# --- Admin Endpoints ---
@app.post(
    "/admin/login",
    response_model=AdminLoginResponse,
    summary="Check admin credentials",
)
def admin_login(
    credentials: AdminLogin, service: AdminService = Depends(get_admin_service)
):
    username = service.verify_login(credentials.username, credentials.password)
    return AdminLoginResponse(username=username)


@app.post(
    "/admin/init",
    response_model=MessageResponse,
    summary="Create the default admin account (runs once)",
)
def admin_init(service: AdminService = Depends(get_admin_service)):
    admin = service.bootstrap()
    return MessageResponse(
        message=f"Admin created. Username: {admin.username}. Change the default password!"
    )


@app.post(
    "/admin/products",
    response_model=ProductResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new product, optionally with an image",
)
def create_product(
    payload: ProductPayload = Depends(read_product_payload),
    service: ProductService = Depends(get_product_service),
):
    data = parse_create(payload.fields)
    return service.create(data, payload.image)


@app.put(
    "/admin/products/{product_id}",
    response_model=ProductResponse,
    summary="Update the given fields of a product, optionally replacing its image",
)
def update_product(
    product_id: int,
    response: Response,
    payload: ProductPayload = Depends(read_product_payload),
    service: ProductService = Depends(get_product_service),
):
    patch = parse_patch(payload.fields)
    outcome = service.update(product_id, patch, payload.image)
    _report_cleanup(outcome, response, product_id)
    return outcome.product


@app.delete(
    "/admin/products/{product_id}",
    response_model=MessageResponse,
    summary="Delete a product and its image",
)
def delete_product(
    product_id: int,
    response: Response,
    service: ProductService = Depends(get_product_service),
):
    outcome = service.delete(product_id)
    _report_cleanup(outcome, response, product_id)
    return MessageResponse(message="Product deleted")


@app.post(
    "/admin/products/{product_id}/image",
    response_model=ProductResponse,
    summary="Upload or replace only the image of a product",
)
def replace_product_image(
    product_id: int,
    response: Response,
    payload: ProductPayload = Depends(read_product_payload),
    service: ProductService = Depends(get_product_service),
):
    outcome = service.replace_image(product_id, payload.image)
    _report_cleanup(outcome, response, product_id)
    return outcome.product
