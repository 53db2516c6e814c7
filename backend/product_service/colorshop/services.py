# colorshop/backend/product_service/colorshop/services.py

import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from werkzeug.security import check_password_hash, generate_password_hash

from . import config
from .errors import (
    AlreadyExistsError,
    AuthError,
    NotFoundError,
    StorageError,
    StorageUnavailableError,
    ValidationError,
)
from .models import Admin, Product
from .schemas import ProductCreate, ProductPatch
from .storage import ImageStorage, ImageUpload, StoredImage, validate_image

logger = logging.getLogger(__name__)

SEARCH_FIELDS = ("name", "brand", "category", "color")


class ImageCleanup(str, enum.Enum):
    NOT_NEEDED = "not_needed"
    DELETED = "deleted"
    FAILED = "failed"


@dataclass
class ProductOutcome:
    """A mutated (or deleted) product plus what happened to its old image."""

    product: Product
    image_cleanup: ImageCleanup = ImageCleanup.NOT_NEEDED

    @property
    def cleanup_failed(self) -> bool:
        return self.image_cleanup is ImageCleanup.FAILED


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _validation_message(error: PydanticValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "body"
        parts.append(f"{location}: {item['msg']}")
    return "; ".join(parts)


def parse_create(fields: dict) -> ProductCreate:
    try:
        return ProductCreate.model_validate(fields)
    except PydanticValidationError as e:
        raise ValidationError(_validation_message(e)) from e


def parse_patch(fields: dict) -> ProductPatch:
    try:
        return ProductPatch.model_validate(fields)
    except PydanticValidationError as e:
        raise ValidationError(_validation_message(e)) from e


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class ProductService:
    def __init__(self, db: Session, storage: Optional[ImageStorage] = None):
        self.db = db
        self.storage = storage

    # --- Queries ---

    def get(self, product_id: int) -> Product:
        product = self.db.get(Product, product_id)
        if product is None:
            logger.warning(f"Product Service: Product with ID {product_id} not found.")
            raise NotFoundError()
        return product

    def list_all(self) -> List[Product]:
        return (
            self.db.query(Product)
            .order_by(Product.last_updated.desc(), Product.id.desc())
            .all()
        )

    def search(self, query_text: str) -> List[Product]:
        pattern = f"%{_escape_like(query_text)}%"
        columns = [getattr(Product, field) for field in SEARCH_FIELDS]
        products = (
            self.db.query(Product)
            .filter(or_(*(column.ilike(pattern, escape="\\") for column in columns)))
            .order_by(Product.id)
            .all()
        )
        logger.info(
            f"Product Service: Search for '{query_text}' matched {len(products)} products."
        )
        return products

    # --- Image helpers ---

    def _store_image(self, image: ImageUpload) -> StoredImage:
        validate_image(image)
        if self.storage is None:
            raise StorageUnavailableError()
        return self.storage.upload(image)

    def _release_image(self, handle: Optional[str]) -> ImageCleanup:
        """Best-effort delete of an owned image; never raises."""
        if not handle:
            return ImageCleanup.NOT_NEEDED
        if self.storage is None:
            logger.warning(
                f"Product Service: Cannot delete image '{handle}': image storage is not configured."
            )
            return ImageCleanup.FAILED
        try:
            self.storage.delete(handle)
        except StorageError as e:
            logger.warning(f"Product Service: Error deleting old image '{handle}': {e}")
            return ImageCleanup.FAILED
        return ImageCleanup.DELETED

    def _commit(self, action: str, subject: str, new_image: StoredImage = None):
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                f"Product Service: Error trying to {action} product {subject}: {e}",
                exc_info=True,
            )
            if new_image is not None:
                # The record never pointed at this upload
                self._release_image(new_image.handle)
            raise StorageError(f"Could not {action} product.") from e

    @staticmethod
    def _touch(product: Product) -> None:
        now = utcnow()
        if product.last_updated is not None and now < product.last_updated:
            now = product.last_updated
        product.last_updated = now

    # --- Commands ---

    def create(self, data: ProductCreate, image: Optional[ImageUpload] = None) -> Product:
        logger.info(f"Product Service: Creating product: {data.name}")
        stored = self._store_image(image) if image is not None else None

        product = Product(**data.model_dump())
        if stored is not None:
            product.image_url = stored.url
            product.image_handle = stored.handle
        product.last_updated = utcnow()

        self.db.add(product)
        self._commit("create", f"'{data.name}'", new_image=stored)
        self.db.refresh(product)
        logger.info(
            f"Product Service: Product '{product.name}' (ID: {product.id}) created successfully."
        )
        return product

    def update(
        self,
        product_id: int,
        patch: ProductPatch,
        image: Optional[ImageUpload] = None,
    ) -> ProductOutcome:
        product = self.get(product_id)
        changes = patch.changes()
        logger.info(
            f"Product Service: Updating product with ID: {product_id} with data: {changes}"
        )

        stored = self._store_image(image) if image is not None else None
        old_url = product.image_url
        old_handle = product.image_handle

        for key, value in changes.items():
            setattr(product, key, value)

        if stored is not None:
            product.image_url = stored.url
            product.image_handle = stored.handle
        elif "image_url" in changes and changes["image_url"] != old_url:
            # A different URL means the record no longer owns its uploaded image
            product.image_handle = None

        self._touch(product)
        self._commit("update", str(product_id), new_image=stored)
        self.db.refresh(product)

        cleanup = ImageCleanup.NOT_NEEDED
        if old_handle and product.image_handle != old_handle:
            cleanup = self._release_image(old_handle)

        logger.info(f"Product Service: Product {product_id} updated successfully.")
        return ProductOutcome(product, cleanup)

    def replace_image(
        self, product_id: int, image: Optional[ImageUpload]
    ) -> ProductOutcome:
        product = self.get(product_id)
        if image is None:
            raise ValidationError("No image file provided")

        stored = self._store_image(image)
        old_handle = product.image_handle

        product.image_url = stored.url
        product.image_handle = stored.handle
        self._touch(product)
        self._commit("update", str(product_id), new_image=stored)
        self.db.refresh(product)

        cleanup = self._release_image(old_handle)
        logger.info(f"Product Service: Image for product {product_id} replaced.")
        return ProductOutcome(product, cleanup)

    def delete(self, product_id: int) -> ProductOutcome:
        product = self.get(product_id)
        name = product.name
        handle = product.image_handle

        self.db.delete(product)
        self._commit("delete", str(product_id))

        cleanup = self._release_image(handle)
        logger.info(
            f"Product Service: Product {product_id} deleted successfully. Name: {name}"
        )
        return ProductOutcome(product, cleanup)


class AdminService:
    # Checked when the username is unknown, so both failure paths hash once
    _DUMMY_HASH = generate_password_hash("colorshop-dummy-password")

    def __init__(self, db: Session):
        self.db = db

    def verify_login(self, username: str, password: str) -> str:
        admin = self.db.query(Admin).filter(Admin.username == username).first()
        password_hash = admin.password_hash if admin is not None else self._DUMMY_HASH
        password_ok = check_password_hash(password_hash, password)
        if admin is None or not password_ok:
            logger.warning(f"Product Service: Failed login attempt for '{username}'.")
            raise AuthError()
        logger.info(f"Product Service: Admin '{username}' logged in.")
        return admin.username

    def bootstrap(self) -> Admin:
        username = config.ADMIN_USERNAME
        existing = self.db.query(Admin).filter(Admin.username == username).first()
        if existing is not None:
            logger.warning("Product Service: Admin bootstrap refused, admin already exists.")
            raise AlreadyExistsError()

        admin = Admin(
            username=username,
            password_hash=generate_password_hash(config.ADMIN_DEFAULT_PASSWORD),
        )
        try:
            self.db.add(admin)
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise AlreadyExistsError() from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Product Service: Error creating admin: {e}", exc_info=True)
            raise StorageError("Could not create admin.") from e
        self.db.refresh(admin)
        logger.info(f"Product Service: Admin '{username}' created with the default password.")
        return admin
