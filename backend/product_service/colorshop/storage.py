# colorshop/backend/product_service/colorshop/storage.py

import logging
import os
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from azure.core.exceptions import AzureError, ResourceExistsError, ResourceNotFoundError
from azure.storage.blob import (
    BlobSasPermissions,
    BlobServiceClient,
    ContentSettings,
    generate_blob_sas,
)

from . import config
from .errors import StorageError, ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImageUpload:
    data: bytes
    filename: str
    content_type: str

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class StoredImage:
    url: str
    handle: str


def validate_image(
    image: ImageUpload,
    allowed_types: dict = None,
    max_bytes: int = None,
) -> None:
    allowed_types = config.ALLOWED_IMAGE_TYPES if allowed_types is None else allowed_types
    max_bytes = config.MAX_IMAGE_BYTES if max_bytes is None else max_bytes

    if image.content_type not in allowed_types:
        raise ValidationError(
            f"Invalid file type. Only {', '.join(sorted(allowed_types))} are allowed."
        )
    if image.size == 0:
        raise ValidationError("Image file is empty.")
    if image.size > max_bytes:
        raise ValidationError(
            f"Image file is too large ({image.size} bytes, limit {max_bytes} bytes)."
        )


class ImageStorage:
    """
    Stores product images in an Azure Blob Storage container.

    Each upload gets a fresh blob name under ``folder``; that blob name is the
    handle used to delete the image later. URLs are plain blob URLs unless
    ``sas_expiry_hours`` is positive, in which case a read-only SAS token is
    appended.
    """

    def __init__(
        self,
        service_client: BlobServiceClient,
        container_name: str,
        folder: str = "",
        account_name: Optional[str] = None,
        account_key: Optional[str] = None,
        sas_expiry_hours: int = 0,
    ):
        self.service_client = service_client
        self.container_name = container_name
        self.folder = folder.strip("/")
        self.account_name = account_name
        self.account_key = account_key
        self.sas_expiry_hours = sas_expiry_hours
        self.container_client = service_client.get_container_client(container_name)

    @classmethod
    def from_env(cls) -> Optional["ImageStorage"]:
        account_name = config.AZURE_STORAGE_ACCOUNT_NAME
        account_key = config.AZURE_STORAGE_ACCOUNT_KEY
        if not (account_name and account_key):
            logger.warning(
                "Product Service: Azure Storage credentials not found. Image upload functionality will be disabled."
            )
            return None

        try:
            service_client = BlobServiceClient(
                account_url=f"https://{account_name}.blob.core.windows.net",
                credential=account_key,
            )
        except (AzureError, ValueError) as e:
            logger.critical(
                f"Product Service: Failed to initialize Azure BlobServiceClient. Check credentials and account name. Error: {e}",
                exc_info=True,
            )
            return None

        logger.info("Product Service: Azure BlobServiceClient initialized.")
        storage = cls(
            service_client,
            container_name=config.AZURE_STORAGE_CONTAINER_NAME,
            folder=config.IMAGE_FOLDER,
            account_name=account_name,
            account_key=account_key,
            sas_expiry_hours=config.AZURE_SAS_TOKEN_EXPIRY_HOURS,
        )
        storage.ensure_container()
        return storage

    def ensure_container(self) -> None:
        # Public blob access keeps plain image URLs readable without a SAS token
        public_access = None if self.sas_expiry_hours > 0 else "blob"
        try:
            self.container_client.create_container(public_access=public_access)
            logger.info(
                f"Product Service: Azure container '{self.container_name}' created."
            )
        except ResourceExistsError:
            logger.info(
                f"Product Service: Azure container '{self.container_name}' already exists."
            )
        except AzureError as e:
            logger.warning(
                f"Product Service: Could not create or verify Azure container '{self.container_name}'. Error: {e}"
            )

    def _blob_name(self, image: ImageUpload) -> str:
        extension = os.path.splitext(image.filename or "")[1].lower()
        if not extension:
            extension = config.ALLOWED_IMAGE_TYPES.get(image.content_type, ".jpg")
        name = f"{uuid.uuid4().hex}{extension}"
        return f"{self.folder}/{name}" if self.folder else name

    def _public_url(self, blob_client) -> str:
        if self.sas_expiry_hours <= 0:
            return blob_client.url
        sas_token = generate_blob_sas(
            account_name=self.account_name,
            account_key=self.account_key,
            container_name=self.container_name,
            blob_name=blob_client.blob_name,
            permission=BlobSasPermissions(read=True),
            expiry=datetime.now(timezone.utc) + timedelta(hours=self.sas_expiry_hours),
        )
        return f"{blob_client.url}?{sas_token}"

    def upload(self, image: ImageUpload) -> StoredImage:
        blob_name = self._blob_name(image)
        blob_client = self.container_client.get_blob_client(blob_name)
        logger.info(
            f"Product Service: Uploading image '{image.filename}' ({image.size} bytes) as '{blob_name}' to Azure."
        )
        try:
            blob_client.upload_blob(
                image.data,
                overwrite=True,
                content_settings=ContentSettings(content_type=image.content_type),
            )
        except AzureError as e:
            logger.error(
                f"Product Service: Error uploading image '{blob_name}': {e}",
                exc_info=True,
            )
            raise StorageError("Could not upload image.") from e
        return StoredImage(url=self._public_url(blob_client), handle=blob_name)

    def delete(self, handle: str) -> None:
        logger.info(f"Product Service: Deleting image '{handle}' from Azure.")
        try:
            self.container_client.delete_blob(handle, delete_snapshots="include")
        except ResourceNotFoundError:
            logger.info(f"Product Service: Image '{handle}' was already deleted.")
        except AzureError as e:
            raise StorageError(f"Could not delete image '{handle}': {e}") from e

    def close(self) -> None:
        self.service_client.close()
