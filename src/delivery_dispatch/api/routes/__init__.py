"""Route group exports."""

from . import delivery, dispatch, drivers, health, orders, routes

__all__ = ["dispatch", "orders", "drivers", "delivery", "routes", "health"]
