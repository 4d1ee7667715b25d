# ============================================
# inventory_service/models.py — Pydantic Models
# ============================================
# The request model is the single declaration of the validation rules;
# FastAPI runs it on every POST/PUT body and reports failures as 422.
#
# The JSON file has no schema of its own, so the response model is what
# pins down the record shape exposed to clients.

import math
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, ValidationInfo, field_validator

# Largest value a signed 64-bit integer column can hold
MAX_QUANTITY = 2**63 - 1


# ── Request Models ─────────────────────────────────────────────
class ProductIn(BaseModel):
    """Body of POST /products and PUT /products/{id}."""

    product_name: str = Field(..., min_length=1, max_length=255)
    quantity: int = Field(..., ge=0, le=MAX_QUANTITY, description="Units in stock (>= 0)")
    price: float = Field(..., ge=0, allow_inf_nan=False, description="Price per item (>= 0)")

    class Config:
        str_strip_whitespace = True

    @field_validator("price")
    @classmethod
    def total_must_be_finite(cls, v: float, info: ValidationInfo) -> float:
        quantity = info.data.get("quantity")
        if quantity is not None and not math.isfinite(quantity * v):
            raise ValueError("quantity * price is too large")
        return v


# ── Response Models ────────────────────────────────────────────
class ProductResponse(BaseModel):
    id: str
    product_name: str
    quantity: int
    price: float
    datetime: str
    total_value: float


class Envelope(BaseModel):
    success: bool
    message: str


class ProductEnvelope(Envelope):
    product: ProductResponse


class ErrorEnvelope(Envelope):
    errors: Optional[Dict[str, List[str]]] = None
