"""Dispatch endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from ...models.domain import DeliveryAssignment
from ...persistence.base import OrderNotFoundError
from ...schemas.dispatch import AssignmentModel, DispatchRequest
from ...services.container import get_dispatch_engine
from ...services.dispatch.engine import DispatchEngine
from ...services.dispatch.errors import DispatchError, InvalidAddressError

router = APIRouter(prefix="/dispatch", tags=["dispatch"])


def assignment_model(assignment: DeliveryAssignment) -> AssignmentModel:
    return AssignmentModel(
        order_id=assignment.order_id,
        driver_id=assignment.driver_id,
        estimated_delivery_time=assignment.estimated_delivery_time,
        delivery_sequence=assignment.delivery_sequence,
    )


@router.post("/orders/{order_id}", response_model=AssignmentModel, status_code=status.HTTP_200_OK)
def dispatch_order(
    order_id: str,
    payload: DispatchRequest,
    engine: DispatchEngine = Depends(get_dispatch_engine),
) -> AssignmentModel:
    """Assign a stored order to a driver and rebuild that driver's route."""
    try:
        return assignment_model(engine.handle_new_order(order_id, payload.delivery_address))
    except InvalidAddressError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except OrderNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except DispatchError as exc:
        logging.error(f"Dispatch failed for order {order_id}: {exc}")
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except Exception as exc:
        logging.exception(f"Error dispatching order {order_id}: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to dispatch order: {str(exc)}"
        ) from exc
