"""Conversion between numpy/pandas objects and rpy2 objects."""

import numpy as np
import pandas as pd
import rpy2.robjects as ro
from rpy2.rinterface import NULLType
from rpy2.robjects import numpy2ri, pandas2ri
from rpy2.robjects.packages import importr

rbase = importr("base")


def to_rpy(x):
    """Convert python object to rpy."""
    with (ro.default_converter + pandas2ri.converter + numpy2ri.converter).context():
        return ro.conversion.get_conversion().py2rpy(x)


def to_py(x):
    """Convert rpy object to python."""
    with (ro.default_converter + pandas2ri.converter + numpy2ri.converter).context():
        return ro.conversion.get_conversion().rpy2py(x)


def is_null(x) -> bool:
    """Whether an rpy object is R's NULL."""
    return isinstance(x, NULLType)


def to_matrix(x) -> np.ndarray:
    """Convert an R matrix (or vector) to a two dimensional float array.

    R drops to a vector when a single row or column is selected, so vectors are
    returned as a single column.
    """
    arr = np.asarray(to_py(x), dtype=float)
    if arr.ndim == 1:
        arr = arr[:, np.newaxis]
    return arr


def r_names(x) -> list[str]:
    """The names attribute of an R vector, or an empty list if unnamed."""
    names = rbase.names(x)
    return [] if is_null(names) else [str(name) for name in names]


def r_colnames(x) -> list[str]:
    """The column names of an R matrix, or an empty list if it has none."""
    names = rbase.colnames(x)
    return [] if is_null(names) else [str(name) for name in names]


def data_to_rdf(data: pd.DataFrame) -> ro.vectors.DataFrame:
    """Convert pandas dataframe to an rpy2 dataframe.

    Categorical columns become R factors, keeping their levels (including any
    unobserved levels), so that prediction data can use a subset of the levels seen
    when fitting.

    Args:
        data: pandas dataframe to convert.
    """
    if not isinstance(data, pd.DataFrame):
        raise TypeError("Data must be a pandas DataFrame.")
    if any(data.dtypes == "object") or any(data.dtypes == "string"):
        raise TypeError(
            "DataFrame contains unsupported object or string types. Convert string "
            "columns to a categorical dtype first.",
        )
    # The index becomes the R row names, which must be unique.
    return to_rpy(data.reset_index(drop=True))
