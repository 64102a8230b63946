"""Failure taxonomy for the georeferencing engine.

Low-level routines raise these; :class:`TransformOrchestrator` catches them at
its boundary and reports them inside a :class:`GeoreferenceResult`.
"""


class GeoreferenceError(Exception):
    """Base class for recoverable georeferencing failures."""


class InsufficientControlPointsError(GeoreferenceError):
    """Fewer matched points than the requested strategy needs."""

    def __init__(self, required: int, available: int):
        super().__init__(f"At least {required} matched control points are required; got {available}.")
        self.required = required
        self.available = available


class SingularSystemError(GeoreferenceError):
    """Near-zero pivot while solving the normal equations (collinear or duplicate points)."""

    def __init__(self, column: int, pivot: float, tolerance: float):
        super().__init__(
            f"Singular system: pivot {pivot:.3e} in column {column} is below tolerance {tolerance:.0e}."
        )
        self.column = column
        self.pivot = pivot


class InvalidImageDimensionsError(GeoreferenceError, ValueError):
    """Image width/height is zero, negative or not finite."""

    def __init__(self, width, height):
        super().__init__(f"Invalid image dimensions: {width!r} x {height!r}.")
        self.width = width
        self.height = height


class NonFiniteProjectionError(GeoreferenceError):
    """A projection step produced NaN or infinity for one item."""

    def __init__(self, item_id: str, detail: str = ""):
        msg = f"Non-finite projection for {item_id!r}"
        super().__init__(f"{msg}: {detail}" if detail else msg)
        self.item_id = item_id


class DuplicateControlPointError(ValueError):
    """The same control-point id was matched more than once."""

    def __init__(self, point_id: str):
        super().__init__(f"Duplicate control point id {point_id!r} in matched set.")
        self.point_id = point_id
