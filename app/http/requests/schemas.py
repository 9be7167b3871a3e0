"""
Pydantic schemas for request validation (Http/Requests).
"""
from pydantic import BaseModel, Field, validator
from typing import Optional, List


# Order action schemas
class FulfillOrderRequest(BaseModel):
    tracking_number: Optional[str] = None
    tracking_company: Optional[str] = None


class CancelOrderRequest(BaseModel):
    reason: str = "customer"

    @validator("reason")
    def validate_reason(cls, v):
        allowed = ("customer", "inventory", "fraud", "declined", "other")
        v = (v or "").strip().lower()
        if v not in allowed:
            raise ValueError(f"reason must be one of: {', '.join(allowed)}")
        return v


class UpdateQuantityRequest(BaseModel):
    line_item_id: str = Field(..., min_length=1)
    quantity: int = Field(..., ge=0)


class RefundLineItemRequest(BaseModel):
    id: str = Field(..., min_length=1)
    quantity: int = Field(0, ge=0)
    restock_type: str = "return"


class CreateRefundRequest(BaseModel):
    refund_items: List[RefundLineItemRequest] = []
    refund_shipping: bool = False
    location_id: str = Field(..., min_length=1)
