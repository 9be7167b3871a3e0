from app.http.requests.schemas import (
    CancelOrderRequest,
    CreateRefundRequest,
    FulfillOrderRequest,
    RefundLineItemRequest,
    UpdateQuantityRequest,
)
