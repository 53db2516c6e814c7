# colorshop/backend/product_service/colorshop/schemas.py

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

# Column limits: price is Numeric(10, 2), quantity a 32-bit Integer
MAX_PRICE = 10**8
MIN_QUANTITY = -(2**31)
MAX_QUANTITY = 2**31 - 1


class CamelModel(BaseModel):
    # camelCase on the wire, snake_case in Python; both accepted on input
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProductBase(CamelModel):
    name: str = Field(..., min_length=1, max_length=255)
    brand: str = Field(..., min_length=1, max_length=255)
    color: Optional[str] = Field(None, max_length=255)
    color_code: Optional[str] = Field(
        None, max_length=32, description='Hex code like "#FF5733".'
    )
    size: Optional[str] = Field(None, max_length=64)
    quantity: int = Field(0, ge=MIN_QUANTITY, le=MAX_QUANTITY)
    price: float = Field(..., allow_inf_nan=False, gt=-MAX_PRICE, lt=MAX_PRICE)
    category: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = Field(None, max_length=2000)


class ProductCreate(ProductBase):
    image_url: Optional[str] = Field(
        None,
        max_length=2048,
        description="Externally hosted image URL. Uploaded images set this automatically.",
    )


class ProductPatch(CamelModel):
    """
    Sparse set of product fields. Only fields that were actually supplied are
    applied; anything left unset keeps its stored value.
    """

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    brand: Optional[str] = Field(None, min_length=1, max_length=255)
    color: Optional[str] = Field(None, max_length=255)
    color_code: Optional[str] = Field(None, max_length=32)
    size: Optional[str] = Field(None, max_length=64)
    quantity: Optional[int] = Field(None, ge=MIN_QUANTITY, le=MAX_QUANTITY)
    price: Optional[float] = Field(
        None, allow_inf_nan=False, gt=-MAX_PRICE, lt=MAX_PRICE
    )
    category: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = Field(None, max_length=2000)
    image_url: Optional[str] = Field(None, max_length=2048)

    @model_validator(mode="after")
    def required_fields_not_cleared(self):
        for field in ("name", "brand", "price", "quantity"):
            if field in self.model_fields_set and getattr(self, field) is None:
                raise ValueError(f"{field} cannot be null")
        return self

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True)


class ProductResponse(ProductBase):
    id: int
    image_url: Optional[str] = None
    image_handle: Optional[str] = None
    last_updated: datetime

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )


class AdminLogin(BaseModel):
    username: str
    password: str


class AdminLoginResponse(BaseModel):
    message: str = "Login successful"
    username: str


class MessageResponse(BaseModel):
    message: str
