"""Core GAM fitting and model specification functionality.

Models are fitted with R's mgcv library through rpy2. mgcv is treated as an opaque
fitting routine: after fitting, predictions are formed from the coefficients, their
covariance matrix and the prediction matrix, so that arbitrary linear combinations
of predictions (contrasts) can be evaluated along with their uncertainty.
"""

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Literal

import numpy as np
import pandas as pd
import rpy2.robjects as ro
from rpy2.robjects.packages import importr

from gamcontrast.contrast import ContrastResult, evaluate_contrast
from gamcontrast.converters import data_to_rdf, r_names, to_matrix, to_py
from gamcontrast.errors import MissingCovariateError
from gamcontrast.families import AbstractFamily, Gaussian
from gamcontrast.prediction import linear_predictor, prediction_matrix
from gamcontrast.terms import Offset, TermLike

logger = logging.getLogger(__name__)

mgcv = importr("mgcv")
rbase = importr("base")
rutils = importr("utils")
rstats = importr("stats")


@dataclass
class ModelSpecification:
    """Defines the model to use.

    Args:
        response: Name of the response variable.
        terms: The terms of the linear predictor. An intercept is always included.
        family: The error distribution and link function.
    """

    response: str
    terms: list[TermLike]
    family: AbstractFamily = field(default_factory=Gaussian)

    def __post_init__(self):
        self.terms = list(self.terms)
        if not self.terms:
            raise ValueError("At least one term must be provided.")

        labels = set()
        for term in self.terms:
            if not isinstance(term, TermLike):
                raise TypeError(f"Expected a term, got {type(term).__name__}.")
            if term.label in labels:
                raise ValueError(
                    f"Duplicate term '{term.label}' found in the model terms.",
                )
            labels.add(term.label)

    @property
    def formula(self) -> str:
        """The mgcv formula, e.g. ``"y~s(x)+z"``."""
        return f"{self.response}~{'+'.join(map(str, self.terms))}"

    @property
    def required_covariates(self) -> tuple[str, ...]:
        """All variables required to form predictions, in order of first use."""
        names = []
        for term in self.terms:
            names.extend(term.varnames)
            if term.by is not None:
                names.append(term.by)
        return tuple(dict.fromkeys(names))

    def check_covariates(
        self,
        data: pd.DataFrame,
        names: Iterable[str] | None = None,
    ) -> None:
        """Check that the data contains the variables.

        Args:
            data: DataFrame of covariates.
            names: The variable names to check for. Defaults to
                ``required_covariates``.

        Raises:
            MissingCovariateError: If any variables are missing.
        """
        names = self.required_covariates if names is None else names
        missing = [name for name in names if name not in data.columns]
        if missing:
            raise MissingCovariateError(missing)


@dataclass
class FittedGAM:
    """The fitted GAM model with methods for predicting and analyzing.

    Generally returned by [`gam`][gamcontrast.gam.gam] rather than constructed
    directly. The model is read-only once fitted.

    Args:
        rgam: The underlying R mgcv model object from fitting.
        data: Original DataFrame used for model fitting.
        specification: The ModelSpecification used to create this model.
    """

    rgam: ro.vectors.ListVector
    data: pd.DataFrame
    specification: ModelSpecification

    @property
    def family(self) -> AbstractFamily:
        return self.specification.family

    @property
    def coefficients(self) -> np.ndarray:
        """The coefficients, one per column of the prediction matrix."""
        return np.asarray(to_py(self.rgam.rx2["coefficients"]), dtype=float)

    @property
    def coefficient_names(self) -> list[str]:
        """Names of the coefficients, e.g. ``["(Intercept)", "s(x).1", ...]``."""
        return r_names(self.rgam.rx2["coefficients"])

    @property
    def covariance(self) -> np.ndarray:
        """The Bayesian posterior covariance matrix of the coefficients (``Vp``)."""
        return to_matrix(self.rgam.rx2["Vp"])

    @property
    def scale(self) -> float:
        """The (estimated or fixed) scale parameter."""
        return float(self.rgam.rx2["sig2"][0])

    def prediction_matrix(self, data: pd.DataFrame) -> pd.DataFrame:
        """The matrix mapping the coefficients to the linear predictor for data.

        See [`prediction_matrix`][gamcontrast.prediction.prediction_matrix].
        """
        return prediction_matrix(self, data)

    def offset(self, data: pd.DataFrame) -> np.ndarray:
        """The total offset for each row of data (zeros if there are no offsets)."""
        offset = np.zeros(len(data))
        for term in self.specification.terms:
            if isinstance(term, Offset):
                offset += term._partial_effect(data, self)[0]
        return offset

    def linear_predictor(self, data: pd.DataFrame) -> np.ndarray:
        """Compute the linear predictor X·β (plus any offset) for data."""
        eta = linear_predictor(self.prediction_matrix(data), self.coefficients)
        return eta + self.offset(data)

    def response(self, data: pd.DataFrame) -> np.ndarray:
        """Compute predictions on the response scale, by applying the inverse link."""
        return self.family.inverse_link(self.linear_predictor(data))

    def predict(
        self,
        data: pd.DataFrame,
        type: Literal["link", "response"] = "link",
    ) -> pd.DataFrame:
        """Compute predictions and standard errors directly with mgcv.

        Args:
            data: DataFrame containing all the covariates used by the model.
            type: Whether to predict on the link (linear predictor) scale, or the
                response scale. Response scale standard errors use the delta method.

        Returns:
            DataFrame with columns "fit" and "se", indexed as data.
        """
        self.specification.check_covariates(data)
        covariates = list(self.specification.required_covariates)
        predictions = rstats.predict(
            self.rgam,
            newdata=data_to_rdf(data[covariates]),
            type=type,
            se=True,
        )
        return pd.DataFrame(
            {
                "fit": np.asarray(to_py(predictions.rx2["fit"]), dtype=float),
                "se": np.asarray(to_py(predictions.rx2["se.fit"]), dtype=float),
            },
            index=data.index,
        )

    def contrast(
        self,
        data: pd.DataFrame,
        contrast: Sequence[float] | np.ndarray,
    ) -> ContrastResult:
        """Evaluate a linear combination of link scale predictions.

        Offsets are included in the estimate (they have no variance).

        Args:
            data: DataFrame with one row per prediction to combine.
            contrast: The weight of each row, e.g. ``[1, -1]`` for the difference
                between the predictions for the first and second rows.

        Example:
            ```python
            data = pd.DataFrame({"Girth": [11, 18]})
            result = fitted.contrast(data, [1, -1])
            result.confidence_interval(0.95)
            ```
        """
        result = evaluate_contrast(
            self.prediction_matrix(data).to_numpy(),
            self.coefficients,
            self.covariance,
            contrast,
        )
        offset = self.offset(data)
        if np.any(offset != 0):
            offset_estimate = float(np.dot(np.asarray(contrast, dtype=float), offset))
            result = ContrastResult(result.estimate + offset_estimate, result.variance)
        return result

    def partial_effect(
        self,
        term: TermLike,
        data: pd.DataFrame | None = None,
    ) -> pd.DataFrame:
        """Compute the partial effect for a single model term.

        The partial effect is the contribution of the term to the linear predictor,
        using only the prediction matrix columns (and coefficients) of the term.

        Args:
            term: The term, matching one used in the model specification.
            data: DataFrame containing the variables of the term. Defaults to the
                data used for fitting.

        Returns:
            DataFrame with columns "fit" (the partial effect) and "se" (its standard
            error).
        """
        data = self.data if data is None else data
        effect, se = term._partial_effect(data, self)
        return pd.DataFrame({"fit": effect, "se": se}, index=data.index)

    def partial_residuals(self, term: TermLike) -> pd.Series:
        """Compute partial residuals of a term, for the data used in fitting.

        The partial residuals are the working residuals plus the partial effect of
        the term. Plotted against the term's variable, systematic departures from
        the partial effect suggest the term is misspecified.
        """
        working = np.asarray(
            to_py(rstats.residuals(self.rgam, type="working")),
            dtype=float,
        )
        effect = self.partial_effect(term)["fit"]
        return pd.Series(working, index=self.data.index) + effect

    def summary(self) -> str:
        """The text of the mgcv summary of the fitted model."""
        strvec = rutils.capture_output(rbase.summary(self.rgam))
        return "\n".join(tuple(strvec))


FitMethodOptions = Literal[
    "GCV.Cp",
    "GACV.Cp",
    "NCV",
    "QNCV",
    "REML",
    "P-REML",
    "ML",
    "P-ML",
]


def gam(
    specification: ModelSpecification,
    data: pd.DataFrame,
    method: FitMethodOptions = "GCV.Cp",
) -> FittedGAM:
    """Fit a Generalized Additive Model.

    Args:
        specification: ModelSpecification object defining the response, the terms and
            the family (including the link function).
        data: DataFrame containing all variables referenced in the specification.
        method: Method for smoothing parameter estimation, matching the mgcv
            options, including:
            - "GCV.Cp": Generalized Cross Validation (default)
            - "REML": Restricted Maximum Likelihood

    Returns:
        FittedGAM object containing the fitted model.
    """
    specification.check_covariates(
        data,
        (specification.response, *specification.required_covariates),
    )
    _check_valid_varnames(data.columns)

    logger.debug(
        "Fitting %s with family %r using %s",
        specification.formula,
        specification.family,
        method,
    )
    rgam = mgcv.gam(
        ro.Formula(specification.formula),
        data=data_to_rdf(data),
        family=specification.family.rfamily,
        method=method,
    )
    return FittedGAM(rgam, data=data.copy(), specification=specification)


def _check_valid_varnames(varnames: Iterable[str]) -> None:
    """Validate variable names don't conflict with mgcv syntax.

    Raises:
        ValueError: If any variable name contains reserved mgcv syntax.
    """
    disallowed = ["Intercept", "intercept", "s(", "te(", "ti(", "t2(", ":", "*"]

    for var in varnames:
        if any(dis in var for dis in disallowed):
            raise ValueError(
                f"Variable name '{var}' risks clashing with terms generated by mgcv, "
                "please rename this variable.",
            )
