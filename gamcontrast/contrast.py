"""Point estimates and variances of contrasts of predictions.

A contrast is a linear combination ``d`` of the predictions for the rows of a
prediction matrix ``X``. Given coefficients ``β`` with covariance ``V``, the
estimate is ``d·Xβ`` with variance ``d·XVXᵀ·dᵀ``. For example, ``d = [1, -1]``
gives the difference between two predictions, accounting for the correlation
between them, which treating each prediction's standard error separately would
not.
"""

from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np
from rpy2.robjects.packages import importr

from gamcontrast.errors import DimensionMismatchError

rstats = importr("stats")

DEFAULT_RTOL = 1e-8


@dataclass(frozen=True)
class ContrastResult:
    """The estimate and variance of a contrast.

    Attributes:
        estimate: The point estimate of the linear combination.
        variance: The variance of the estimate.
    """

    estimate: float
    variance: float

    @property
    def se(self) -> float:
        """The standard error of the estimate."""
        return float(np.sqrt(self.variance))

    def confidence_interval(self, level: float = 0.95) -> tuple[float, float]:
        """Normal-theory confidence interval for the contrast.

        Args:
            level: The coverage of the interval, between 0 and 1.
        """
        if not 0 < level < 1:
            raise ValueError(f"Level must be between 0 and 1, got {level}.")
        z = rstats.qnorm((1 + level) / 2)[0]
        return self.estimate - z * self.se, self.estimate + z * self.se


def evaluate_contrast(
    matrix: np.ndarray,
    coefficients: np.ndarray,
    covariance: np.ndarray,
    contrast: Sequence[float] | np.ndarray,
) -> ContrastResult:
    """Compute the estimate and variance of a contrast of predictions.

    Args:
        matrix: Prediction matrix X with shape (n, p).
        coefficients: Coefficients β with shape (p, ).
        covariance: Covariance matrix V of the coefficients, with shape (p, p).
        contrast: The contrast vector d with shape (n, ).

    Raises:
        DimensionMismatchError: If the shapes are inconsistent.
    """
    matrix = np.asarray(matrix, dtype=float)
    coefficients = np.asarray(coefficients, dtype=float)
    covariance = np.asarray(covariance, dtype=float)
    contrast = np.asarray(contrast, dtype=float)

    if matrix.ndim != 2:
        raise DimensionMismatchError(
            f"Expected a two dimensional matrix, got shape {matrix.shape}.",
        )
    n, p = matrix.shape
    if coefficients.shape != (p,):
        raise DimensionMismatchError(
            f"Matrix has {p} columns, but coefficients have shape "
            f"{coefficients.shape}.",
        )
    if covariance.shape != (p, p):
        raise DimensionMismatchError(
            f"Expected covariance of shape {(p, p)}, got {covariance.shape}.",
        )
    if contrast.shape != (n,):
        raise DimensionMismatchError(
            f"Matrix has {n} rows, but contrast has shape {contrast.shape}.",
        )

    weights = contrast @ matrix
    estimate = float(weights @ coefficients)
    variance = float(weights @ covariance @ weights)
    # Rounding error can give small negative values for PSD covariances.
    return ContrastResult(estimate, max(variance, 0.0))


def is_symmetric(covariance: np.ndarray, rtol: float = DEFAULT_RTOL) -> bool:
    """Whether a matrix is square and symmetric, to a relative tolerance."""
    covariance = np.asarray(covariance, dtype=float)
    if covariance.ndim != 2 or covariance.shape[0] != covariance.shape[1]:
        return False
    return bool(np.allclose(covariance, covariance.T, rtol=rtol, atol=0))
