"""Exceptions raised by gamcontrast.

Both errors indicate a programming error in the calling code (a malformed query or
inconsistent arrays), and are raised before any numerical work is done.
"""

from collections.abc import Iterable


class GAMContrastError(Exception):
    """Base class for gamcontrast errors."""


class MissingCovariateError(GAMContrastError, ValueError):
    """Data passed for fitting or prediction lacks variables the model requires.

    Args:
        missing: Names of the variables not found in the data.
    """

    def __init__(self, missing: Iterable[str]):
        self.missing = tuple(missing)
        names = ", ".join(repr(name) for name in self.missing)
        super().__init__(f"Variable(s) {names} not found in data.")


class DimensionMismatchError(GAMContrastError, ValueError):
    """Matrix and vector shapes are inconsistent."""
