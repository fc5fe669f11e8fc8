"""Prediction matrices, mapping model coefficients to the linear predictor.

For a fitted model with coefficients β, the prediction matrix X for a set of query
points has one row per point and one column per coefficient, such that the linear
predictor at the query points is η = Xβ (excluding any offset). The matrix is built
by mgcv from the fitted basis (``predict.gam(..., type="lpmatrix")``).
"""

import logging
from typing import TYPE_CHECKING

import numpy as np
import pandas as pd
from pandas.api.types import is_numeric_dtype
from rpy2.robjects.packages import importr

from gamcontrast.converters import data_to_rdf, r_colnames, to_matrix
from gamcontrast.errors import DimensionMismatchError

if TYPE_CHECKING:
    from gamcontrast.gam import FittedGAM

logger = logging.getLogger(__name__)

rstats = importr("stats")


def prediction_matrix(gam: "FittedGAM", data: pd.DataFrame) -> pd.DataFrame:
    """Build the prediction matrix of a fitted model for new covariate values.

    Values outside the range of the data used for fitting are permitted, but are
    logged as a warning, as smooths extrapolate poorly.

    Args:
        gam: The fitted model.
        data: DataFrame containing all the covariates used by the model. The
            response is not required.

    Returns:
        DataFrame with one row per row of data (sharing its index), and one column
        per coefficient, named as the coefficients.

    Raises:
        MissingCovariateError: If a covariate used by the model is missing.
        DimensionMismatchError: If the number of columns does not match the
            number of coefficients.
    """
    gam.specification.check_covariates(data)
    covariates = list(gam.specification.required_covariates)
    _warn_outside_fit_range(gam.data, data, covariates)

    rmatrix = rstats.predict(
        gam.rgam,
        newdata=data_to_rdf(data[covariates]),
        type="lpmatrix",
    )
    matrix = to_matrix(rmatrix)
    names = gam.coefficient_names
    if matrix.shape != (len(data), len(names)):
        raise DimensionMismatchError(
            f"Prediction matrix has shape {matrix.shape}, expected "
            f"({len(data)}, {len(names)}) for {len(data)} rows and {len(names)} "
            "coefficients.",
        )
    columns = r_colnames(rmatrix) or names
    logger.debug("Built prediction matrix of shape %s", matrix.shape)
    return pd.DataFrame(matrix, index=data.index, columns=columns)


def linear_predictor(
    matrix: pd.DataFrame | np.ndarray,
    coefficients: np.ndarray,
) -> np.ndarray:
    """Compute the linear predictor X·β.

    Args:
        matrix: Prediction matrix with shape (n, p).
        coefficients: Coefficients with shape (p, ).

    Raises:
        DimensionMismatchError: If the shapes are incompatible.
    """
    matrix = np.asarray(matrix, dtype=float)
    coefficients = np.asarray(coefficients, dtype=float)
    if matrix.ndim != 2 or coefficients.ndim != 1:
        raise DimensionMismatchError(
            "Expected a two dimensional matrix and one dimensional coefficients, "
            f"got shapes {matrix.shape} and {coefficients.shape}.",
        )
    if matrix.shape[1] != coefficients.shape[0]:
        raise DimensionMismatchError(
            f"Prediction matrix has {matrix.shape[1]} columns, but there are "
            f"{coefficients.shape[0]} coefficients.",
        )
    return matrix @ coefficients


def _warn_outside_fit_range(
    fit_data: pd.DataFrame,
    data: pd.DataFrame,
    covariates: list[str],
) -> None:
    for name in covariates:
        if not (is_numeric_dtype(fit_data[name]) and is_numeric_dtype(data[name])):
            continue
        low, high = fit_data[name].min(), fit_data[name].max()
        outside = (data[name] < low) | (data[name] > high)
        if outside.any():
            logger.warning(
                "%d value(s) of %s outside the range used for fitting [%s, %s]; "
                "predictions there are extrapolations.",
                int(outside.sum()),
                name,
                low,
                high,
            )
