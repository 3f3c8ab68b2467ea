"""
Database Schemas

MongoDB collection schemas and request payloads, as Pydantic models.
These schemas are used for data validation in the application.

Collections:
- User -> "users" collection
- Product -> "products" collection
"""

from typing import Any, Dict, Iterable, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator
from pydantic_core import PydanticCustomError

CATEGORIES = ("men", "women", "kids")
MAX_INT64 = 2**63 - 1

Category = Literal["men", "women", "kids"]

USERS = "users"
PRODUCTS = "products"

# (field, pydantic error type) -> message reported to the client
ERROR_MESSAGES = {
    ("name", "missing"): "Product name is required",
    ("name", "string_too_short"): "Product name is required",
    ("category", "missing"): "Category is required",
    ("category", "literal_error"): "Category must be men, women, or kids",
    ("price", "missing"): "Price is required",
    ("price", "greater_than_equal"): "Price cannot be negative",
    ("image", "missing"): "Image URL is required",
    ("image", "string_too_short"): "Image URL is required",
    ("stock", "greater_than_equal"): "Stock cannot be negative",
    ("stock", "less_than_equal"): "Stock is too large",
}


def _strip(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip()
    return value


class User(BaseModel):
    """
    Users collection schema
    Collection name: "users"
    """
    name: str = Field(..., min_length=1, description="Full name")
    email: str = Field(..., min_length=1, description="Email address, stored lowercase")
    password_hash: str = Field(..., description="Salted SHA256 password hash")

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v):
        return _strip(v)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v):
        v = _strip(v)
        return v.lower() if isinstance(v, str) else v


class Product(BaseModel):
    """
    Products collection schema
    Collection name: "products"
    """
    name: str = Field(..., min_length=1, description="Product name")
    category: Category = Field(..., description="One of men, women, kids")
    price: float = Field(..., ge=0, description="Price in dollars")
    image: str = Field(..., min_length=1, description="Image URL")
    description: Optional[str] = Field(None, description="Product description")
    stock: Union[int, float] = Field(0, description="Units in stock")

    @field_validator("name", "description", mode="before")
    @classmethod
    def strip_text(cls, v):
        return _strip(v)

    @field_validator("stock")
    @classmethod
    def check_stock(cls, v):
        if v < 0:
            raise PydanticCustomError("greater_than_equal", "Input should be greater than or equal to 0")
        # BSON stores integers as signed 64-bit
        if isinstance(v, int) and v > MAX_INT64:
            raise PydanticCustomError("less_than_equal", "Input should be less than or equal to {le}", {"le": MAX_INT64})
        return v


class SignupPayload(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v):
        return _strip(v)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v):
        v = _strip(v)
        return v.lower() if isinstance(v, str) else v


class LoginPayload(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v):
        v = _strip(v)
        return v.lower() if isinstance(v, str) else v


def describe_errors(errors: Iterable[Dict[str, Any]]) -> List[str]:
    """Turn pydantic error dicts into "field: message" strings, one per violation."""
    messages = []
    for err in errors:
        loc = [str(part) for part in err.get("loc", ()) if part != "body"]
        field = loc[0] if loc else ""
        message = ERROR_MESSAGES.get((field, err.get("type")), err.get("msg", "Invalid value"))
        messages.append(f"{'.'.join(loc)}: {message}" if loc else message)
    return messages
