"""Catalog product model."""

from typing import Optional

from pydantic import BaseModel, Field


class Product(BaseModel):
    """Product as seen by the order engine."""

    productId: str = Field(..., description="Unique product identifier")
    storeId: str = Field(..., description="Store selling the product")
    name: str = Field(..., min_length=1, max_length=200)
    price: float = Field(..., ge=0)
    stock: int = Field(0, ge=0)
    available: bool = True
    prepMinutes: Optional[int] = Field(None, ge=0, description="Preparation time in minutes")

    class Config:
        """Pydantic config."""

        json_schema_extra = {
            "example": {
                "productId": "prod_001",
                "storeId": "store_001",
                "name": "Empanada",
                "price": 2.5,
                "stock": 40,
                "available": True,
                "prepMinutes": 15,
            }
        }
