"""gamcontrast: prediction matrices and contrasts for mgcv GAMs in Python."""

from .contrast import ContrastResult, evaluate_contrast
from .errors import DimensionMismatchError, MissingCovariateError
from .families import Binomial, Gamma, Gaussian, Poisson
from .gam import FittedGAM, ModelSpecification, gam
from .prediction import linear_predictor, prediction_matrix

__all__ = [
    "Binomial",
    "ContrastResult",
    "DimensionMismatchError",
    "FittedGAM",
    "Gamma",
    "Gaussian",
    "MissingCovariateError",
    "ModelSpecification",
    "Poisson",
    "evaluate_contrast",
    "gam",
    "linear_predictor",
    "prediction_matrix",
]

# Version information
__version__ = "0.1.0"
