# ltn/core/errors.py


class SavefileError(ValueError):
    """
    A savefile couldn't be applied to the current network.

    Raised before any edit state is touched, so a failed load leaves the
    model exactly as it was.
    """


class BoundaryError(ValueError):
    """Misuse of the named neighbourhood boundaries."""
