"""Order placement endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from ...models.domain import Order
from ...persistence.base import OrderStore
from ...schemas.dispatch import OrderModel, PlaceOrderRequest, PlaceOrderResponse
from ...services.container import get_dispatch_engine, get_order_store
from ...services.dispatch.engine import DispatchEngine
from ...services.dispatch.errors import InvalidAddressError
from ...services.orders import place_order
from .dispatch import assignment_model

router = APIRouter(prefix="/orders", tags=["orders"])


def order_model(order: Order) -> OrderModel:
    return OrderModel(
        id=order.id,
        status=order.status.value,
        items=order.items,
        delivery_address=order.delivery_address,
        driver_id=order.driver_id,
        delivery_sequence=order.delivery_sequence,
        estimated_delivery_time=order.estimated_delivery_time,
        created_at=order.created_at,
        assigned_at=order.assigned_at,
    )


@router.post("", response_model=PlaceOrderResponse, status_code=status.HTTP_201_CREATED)
def create_order(
    payload: PlaceOrderRequest,
    orders: OrderStore = Depends(get_order_store),
    engine: DispatchEngine = Depends(get_dispatch_engine),
) -> PlaceOrderResponse:
    """Store the order, then dispatch it.

    The order is created even when no driver can take it; ``dispatch_error``
    explains why and the order stays pending.
    """
    try:
        placed = place_order(orders, engine, payload.items, payload.delivery_address)
    except InvalidAddressError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except Exception as exc:
        logging.exception(f"Error placing order: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to place order: {str(exc)}"
        ) from exc

    return PlaceOrderResponse(
        order=order_model(placed.order),
        assignment=assignment_model(placed.assignment) if placed.assignment else None,
        dispatch_error=placed.error,
    )
