"""The available terms for constructing GAM models."""

from collections.abc import Sequence
from dataclasses import dataclass
from functools import singledispatch
from typing import Any, Literal, Protocol, runtime_checkable

import numpy as np
import pandas as pd
from rpy2.robjects.packages import importr

from gamcontrast.converters import data_to_rdf, to_matrix, to_py

mgcv = importr("mgcv")
rbase = importr("base")
rstats = importr("stats")

BasisStr = Literal[
    "tp",
    "ts",
    "ds",
    "cr",
    "cs",
    "cc",
    "bs",
    "ps",
    "cp",
    "re",
    "gp",
]


@runtime_checkable
class TermLike(Protocol):
    """Protocol defining the interface for GAM model terms.

    Attributes:
        varnames: Tuple of variable names used by this term.
        by: Optional name of a 'by' variable that scales this term.
    """

    varnames: tuple[str, ...]
    by: str | None

    def __str__(self) -> str:
        """Convert the term to mgcv formula syntax."""
        ...

    @property
    def label(self) -> str:
        """The label mgcv uses for the term, e.g. ``s(x)`` or ``a:b``."""
        ...

    def _partial_effect(
        self,
        data: pd.DataFrame,
        gam: Any,
    ) -> tuple[np.ndarray, np.ndarray]:
        """Compute the partial effect and its standard error for this term."""
        ...


@dataclass
class Linear(TermLike):
    """Linear (parametric) term with no basis expansion.

    Categorical variables are expanded by mgcv into treatment contrasts, so the
    term then maps to one coefficient per non-reference level.

    Args:
        name: Name of the variable to include as a linear term.
    """

    varnames: tuple[str]
    by: str | None

    def __init__(self, name: str):
        self.varnames = (name,)
        self.by = None

    def __str__(self) -> str:
        return self.varnames[0]

    @property
    def label(self) -> str:
        return self.varnames[0]

    def _partial_effect(self, data, gam):
        return _parametric_partial_effect(self, data, gam)


@dataclass
class Interaction(TermLike):
    """Parametric interaction term between multiple variables.

    Note, this does not automatically include main effects.

    Args:
        *varnames: Variable names to include in the interaction.
    """

    varnames: tuple[str, ...]
    by: str | None

    def __init__(self, *varnames: str):
        if len(varnames) < 2:
            raise ValueError("Interaction terms require at least 2 variables")
        self.varnames = tuple(varnames)
        self.by = None

    def __str__(self) -> str:
        return ":".join(self.varnames)

    @property
    def label(self) -> str:
        return ":".join(self.varnames)

    def _partial_effect(self, data, gam):
        return _parametric_partial_effect(self, data, gam)


@dataclass
class Smooth(TermLike):
    """Smooth term using spline basis functions.

    Args:
        *varnames: Names of variables to smooth over. Multiple variables give an
            isotropic smooth.
        k: The dimension of the basis. The default (-1) lets mgcv choose.
        bs: The mgcv basis code, e.g. "tp" (thin plate, the default) or "cr"
            (cubic regression spline).
        by: Name of a numeric variable which multiplies the smooth.
        id: Identifier for smooths sharing a smoothing parameter.
        fx: Whether the term is a fixed d.f. regression spline (True) or a
            penalized regression spline (False).
    """

    varnames: tuple[str, ...]
    by: str | None
    k: int
    bs: BasisStr
    id: str | None
    fx: bool

    def __init__(
        self,
        *varnames: str,
        k: int = -1,
        bs: BasisStr = "tp",
        by: str | None = None,
        id: str | None = None,
        fx: bool = False,
    ):
        if len(varnames) == 0:
            raise ValueError("Smooth terms require at least one variable")
        self.varnames = varnames
        self.k = k
        self.bs = bs
        self.by = by
        self.id = id
        self.fx = fx

    def __str__(self) -> str:
        kwargs = {
            "k": self.k if self.k != -1 else None,
            "bs": self.bs if self.bs != "tp" else None,
            "by": _AsVar(self.by) if self.by is not None else None,
            "id": self.id,
            "fx": self.fx or None,
        }
        return _call_string("s", self.varnames, kwargs)

    @property
    def label(self) -> str:
        label = f"s({','.join(self.varnames)})"
        return label if self.by is None else f"{label}:{self.by}"

    def _partial_effect(self, data, gam):
        return _smooth_partial_effect(self, data, gam)


@dataclass
class TensorSmooth(TermLike):
    """Tensor product smooth, for smooths of variables on different scales.

    Args:
        *varnames: Names of variables, each with its own marginal basis.
        k: Basis dimension of each marginal.
        bs: Basis code of each marginal. Defaults to cubic regression splines.
        by: Name of a numeric variable which multiplies the smooth.
        interaction_only: If True, creates ti() instead of te(), excluding the
            main effects of the marginals.
    """

    varnames: tuple[str, ...]
    by: str | None
    k: tuple[int, ...] | None
    bs: tuple[BasisStr, ...] | None
    interaction_only: bool

    def __init__(
        self,
        *varnames: str,
        k: Sequence[int] | None = None,
        bs: Sequence[BasisStr] | None = None,
        by: str | None = None,
        interaction_only: bool = False,
    ):
        if len(varnames) < 2:
            raise ValueError("Tensor smooths require at least 2 variables")
        for name, seq in {"k": k, "bs": bs}.items():
            if seq is not None and len(seq) != len(varnames):
                raise ValueError(
                    f"Expected {len(varnames)} values for {name}, got {len(seq)}.",
                )
        self.varnames = varnames
        self.k = tuple(k) if k is not None else None
        self.bs = tuple(bs) if bs is not None else None
        self.by = by
        self.interaction_only = interaction_only

    @property
    def _prefix(self) -> str:
        return "ti" if self.interaction_only else "te"

    def __str__(self) -> str:
        kwargs = {
            "k": self.k,
            "bs": self.bs,
            "by": _AsVar(self.by) if self.by is not None else None,
        }
        return _call_string(self._prefix, self.varnames, kwargs)

    @property
    def label(self) -> str:
        label = f"{self._prefix}({','.join(self.varnames)})"
        return label if self.by is None else f"{label}:{self.by}"

    def _partial_effect(self, data, gam):
        return _smooth_partial_effect(self, data, gam)


@dataclass
class Offset(TermLike):
    """Offset term, added to the linear predictor as is.

    Offsets have no coefficients, so they contribute no columns to the prediction
    matrix.

    Args:
        name: Name of the variable to use as an offset.
    """

    varnames: tuple[str]
    by: str | None

    def __init__(self, name: str):
        self.varnames = (name,)
        self.by = None

    def __str__(self) -> str:
        return f"offset({self.varnames[0]})"

    @property
    def label(self) -> str:
        return f"offset({self.varnames[0]})"

    def _partial_effect(self, data, gam):
        effect = data[self.varnames[0]].to_numpy(dtype=float)
        return effect, np.zeros_like(effect)


def _call_string(prefix: str, varnames: Sequence[str], kwargs: dict) -> str:
    """Render e.g. ``s(x,k=5)``, skipping keyword arguments set to None."""
    kwarg_strings = [
        f"{k}={_to_r_literal_string(v)}" for k, v in kwargs.items() if v is not None
    ]
    return f"{prefix}({','.join([*varnames, *kwarg_strings])})"


@singledispatch
def _to_r_literal_string(arg: object) -> str:
    """Attempts to convert simple types into a string representation in R.

    Any (non string) sequence will be converted to a vector i.e. c(...). Strings are
    quoted, so wrap in _AsVar if it needs to be passed as a variable.
    """
    return f"'{arg!s}'"


@dataclass
class _AsVar:
    varname: str


@_to_r_literal_string.register
def _(arg: _AsVar) -> str:
    return arg.varname


@_to_r_literal_string.register
def _(arg: bool) -> str:  # noqa: FBT001
    return str(arg).upper()


@_to_r_literal_string.register
def _(arg: int) -> str:
    return str(arg)


@_to_r_literal_string.register
def _(arg: Sequence) -> str:
    if isinstance(arg, str):
        return f"'{arg}'"
    return f"c({','.join([_to_r_literal_string(item) for item in arg])})"


def _effect_and_se(
    matrix: np.ndarray,
    coefficients: np.ndarray,
    covariance: np.ndarray,
) -> tuple[np.ndarray, np.ndarray]:
    fit = matrix @ coefficients
    variance = np.sum((matrix @ covariance) * matrix, axis=1)
    return fit, np.sqrt(np.maximum(variance, 0))


def _parametric_partial_effect(
    term: Linear | Interaction,
    data: pd.DataFrame,
    gam: Any,
) -> tuple[np.ndarray, np.ndarray]:
    """Partial effect of a parametric term, from its prediction matrix columns.

    mgcv's ``assign`` attribute maps each parametric coefficient to the index of its
    term (0 for the intercept). Only the variables of the term are required, as the
    other covariates do not affect the term's columns.
    """
    term_labels = list(rbase.attr(gam.rgam.rx2["pterms"], "term.labels"))
    if term.label not in term_labels:
        raise ValueError(f"Term {term.label} not found in the fitted model.")
    gam.specification.check_covariates(data, term.varnames)
    assign = np.asarray(to_py(gam.rgam.rx2["assign"]), dtype=int)
    idx = np.flatnonzero(assign == term_labels.index(term.label) + 1)

    newdata = _hold_other_covariates(data[list(term.varnames)], gam)
    rmatrix = rstats.predict(
        gam.rgam,
        newdata=data_to_rdf(newdata),
        type="lpmatrix",
    )
    return _effect_and_se(
        to_matrix(rmatrix)[:, idx],
        gam.coefficients[idx],
        gam.covariance[np.ix_(idx, idx)],
    )


def _hold_other_covariates(data: pd.DataFrame, gam: Any) -> pd.DataFrame:
    """Add the remaining model covariates, fixed at their first fitted value."""
    data = data.reset_index(drop=True)
    first_rows = np.zeros(len(data), dtype=int)
    for name in gam.specification.required_covariates:
        if name not in data.columns:
            # Keeps the dtype, so factor levels match the fit.
            data[name] = gam.data[name].iloc[first_rows].reset_index(drop=True)
    return data



def _smooth_partial_effect(
    term: Smooth | TensorSmooth,
    data: pd.DataFrame,
    gam: Any,
) -> tuple[np.ndarray, np.ndarray]:
    """Partial effect of a smooth term, using only the variables of the smooth."""
    smooths = list(gam.rgam.rx2["smooth"])
    labels = [str(smooth.rx2["label"][0]) for smooth in smooths]
    if term.label not in labels:
        raise ValueError(f"Term {term.label} not found in the fitted model.")
    smooth = smooths[labels.index(term.label)]

    required = list(term.varnames) + ([term.by] if term.by is not None else [])
    gam.specification.check_covariates(data, required)

    predict_mat = to_matrix(mgcv.PredictMat(smooth, data_to_rdf(data[required])))
    first = round(smooth.rx2["first.para"][0]) - 1
    last = round(smooth.rx2["last.para"][0])
    return _effect_and_se(
        predict_mat,
        gam.coefficients[first:last],
        gam.covariance[first:last, first:last],
    )
