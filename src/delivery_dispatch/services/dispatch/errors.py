"""Dispatch failures reported to callers."""


class DispatchError(Exception):
    """Base class for dispatch failures; the order stays unassigned."""


class InvalidAddressError(DispatchError):
    """The delivery address carries no usable coordinate."""


class NoAvailableDriversError(DispatchError):
    """No driver in the fleet can take another order right now."""


class CapacityConflictError(DispatchError):
    """The chosen driver filled up between selection and commit; selection is retried."""
