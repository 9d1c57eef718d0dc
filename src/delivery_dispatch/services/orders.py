"""Order placement followed by an explicit dispatch step."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from ..models.domain import DeliveryAssignment, Order
from ..persistence.base import OrderStore
from .dispatch.engine import DispatchEngine
from .dispatch.errors import DispatchError, InvalidAddressError
from .geospatial import parse_coordinate

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class PlacedOrder:
    """A stored order and the outcome of dispatching it.

    ``assignment`` is None exactly when ``error`` is set.
    """

    order: Order
    assignment: Optional[DeliveryAssignment] = None
    error: Optional[str] = None


def place_order(
    orders: OrderStore,
    engine: DispatchEngine,
    items: Sequence[dict],
    delivery_address: Any,
) -> PlacedOrder:
    """Store a new order, then dispatch it.

    The address is validated before anything is written. A dispatch failure
    does not undo the order; it is reported on the result and left for an
    operator to assign.
    """
    if parse_coordinate(delivery_address) is None:
        raise InvalidAddressError("Delivery address must be a valid coordinate")

    order = orders.create_order(items, delivery_address)
    logger.info(f"Order {order.id} created with {len(order.items)} item(s)")

    try:
        assignment = engine.handle_new_order(order.id, delivery_address)
    except DispatchError as e:
        logger.error(f"Order {order.id} was stored but could not be dispatched: {e}")
        return PlacedOrder(order=orders.get_order(order.id) or order, error=str(e))

    return PlacedOrder(order=orders.get_order(order.id) or order, assignment=assignment)
