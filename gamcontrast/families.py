"""Families supported by gamcontrast.

Each family wraps the corresponding R ``stats`` family object, which is what is
passed to mgcv when fitting, so the link, inverse link and variance functions are
exactly those used by mgcv.
"""

from abc import ABC, abstractmethod
from typing import Literal

import numpy as np
import rpy2.robjects as ro
from rpy2.robjects.packages import importr

from gamcontrast.converters import to_py, to_rpy

rstats = importr("stats")


class AbstractFamily(ABC):
    """Provides the link, variance and likelihood methods shared by all families.

    Subclasses set ``rfamily`` and provide the log density of the response.
    """

    rfamily: ro.ListVector
    links: tuple[str, ...]

    def _check_link(self, link: str) -> None:
        if link not in self.links:
            raise ValueError(
                f"Link '{link}' not supported for {type(self).__name__}, expected one "
                f"of {self.links}.",
            )

    @property
    def name(self) -> str:
        """The R name of the family, e.g. "Gamma"."""
        return str(self.rfamily.rx2["family"][0])

    @property
    def link_name(self) -> str:
        """The name of the link function, e.g. "log"."""
        return str(self.rfamily.rx2["link"][0])

    def link(self, x: np.ndarray) -> np.ndarray:
        """Compute the link function."""
        return self._call("linkfun", x)

    def inverse_link(self, x: np.ndarray) -> np.ndarray:
        """Compute the inverse link function."""
        return self._call("linkinv", x)

    def dmu_deta(self, x: np.ndarray) -> np.ndarray:
        """Compute the derivative dmu/deta of the inverse link function."""
        return self._call("mu.eta", x)

    def variance(self, mu: np.ndarray) -> np.ndarray:
        """Compute the variance function, i.e. the variance as a function of the mean.

        The variance of an observation is this multiplied by the scale parameter.
        """
        return self._call("variance", mu)

    def log_likelihood(
        self,
        y: np.ndarray,
        mu: np.ndarray,
        scale: float = 1,
        weights: np.ndarray | None = None,
    ) -> float:
        """Compute the log likelihood of the observations given the means.

        Args:
            y: The observed responses.
            mu: The means (response scale predictions) of each observation.
            scale: The scale parameter. Ignored for families with a fixed scale.
            weights: Prior weights. Defaults to ones.
        """
        y = np.asarray(y, dtype=float)
        mu = np.asarray(mu, dtype=float)
        weights = np.ones_like(y) if weights is None else weights
        y, mu, weights = (
            np.array(arr)
            for arr in np.broadcast_arrays(y, mu, np.asarray(weights, dtype=float))
        )
        if scale <= 0:
            raise ValueError(f"Scale must be positive, got {scale}.")
        log_density = np.asarray(
            to_py(self._log_density(y, mu, scale, weights)),
            dtype=float,
        )
        return float(np.sum(log_density))

    @abstractmethod
    def _log_density(
        self,
        y: np.ndarray,
        mu: np.ndarray,
        scale: float,
        weights: np.ndarray,
    ) -> ro.FloatVector:
        """Log density of each observation, as an R vector."""

    def _call(self, method: str, x: np.ndarray) -> np.ndarray:
        x = np.asarray(x, dtype=float)
        result = to_py(self.rfamily.rx2[method](to_rpy(x)))
        return np.broadcast_to(np.asarray(result, dtype=float), x.shape).copy()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(link='{self.link_name}')"


class Gaussian(AbstractFamily):
    """Gaussian family with specified link function.

    Args:
        link: The link function.
    """

    links = ("identity", "log", "inverse")

    def __init__(self, link: Literal["identity", "log", "inverse"] = "identity"):
        self._check_link(link)
        self.rfamily = rstats.gaussian(link=link)

    def _log_density(self, y, mu, scale, weights):
        return rstats.dnorm(
            to_rpy(y),
            mean=to_rpy(mu),
            sd=to_rpy(np.sqrt(scale / weights)),
            log=True,
        )


class Gamma(AbstractFamily):
    """Gamma family with specified link function.

    The scale parameter is the reciprocal of the shape, so that the variance is
    ``scale * mu**2``.

    Args:
        link: The link function for the Gamma family.
    """

    links = ("inverse", "identity", "log")

    def __init__(self, link: Literal["inverse", "identity", "log"] = "inverse"):
        self._check_link(link)
        self.rfamily = rstats.Gamma(link=link)

    def _log_density(self, y, mu, scale, weights):
        return rstats.dgamma(
            to_rpy(y),
            shape=to_rpy(weights / scale),
            scale=to_rpy(mu * scale / weights),
            log=True,
        )


class Poisson(AbstractFamily):
    """Poisson family with specified link function.

    Args:
        link: The link function for the Poisson family.
    """

    links = ("log", "identity", "sqrt")

    def __init__(self, link: Literal["log", "identity", "sqrt"] = "log"):
        self._check_link(link)
        self.rfamily = rstats.poisson(link=link)

    def _log_density(self, y, mu, scale, weights):
        # Weighted as in R's poisson()$aic.
        return to_rpy(
            to_py(rstats.dpois(to_rpy(y), to_rpy(mu), log=True)) * weights,
        )


class Binomial(AbstractFamily):
    """Binomial family with specified link function.

    The response is the proportion of successes, with the number of trials given
    by the prior weights (ones for binary data).

    Args:
        link: The link function. "logit", "probit" and "cauchit", correspond to
            logistic, normal and Cauchy CDFs respectively. "cloglog" is the
            complementary log-log.
    """

    links = ("logit", "probit", "cauchit", "log", "cloglog")

    def __init__(
        self,
        link: Literal["logit", "probit", "cauchit", "log", "cloglog"] = "logit",
    ):
        self._check_link(link)
        self.rfamily = rstats.binomial(link=link)

    def _log_density(self, y, mu, scale, weights):
        return rstats.dbinom(
            to_rpy(np.round(y * weights)),
            size=to_rpy(np.round(weights)),
            prob=to_rpy(mu),
            log=True,
        )

