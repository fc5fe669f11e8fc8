import logging

import numpy as np
import pandas as pd
import pytest
import rpy2.robjects as ro

from gamcontrast import prediction
from gamcontrast.errors import DimensionMismatchError, MissingCovariateError
from gamcontrast.prediction import linear_predictor, prediction_matrix

from . import gam_test_cases as tc

test_cases = tc.get_test_cases()


@pytest.mark.parametrize("test_case", test_cases.values(), ids=list(test_cases))
def test_linear_predictor_matches_mgcv_prediction(test_case: tc.GAMTestCase):
    fitted = test_case.fit()
    data = test_case.data.iloc[:20]
    expected = fitted.predict(data)["fit"].to_numpy()
    np.testing.assert_allclose(
        fitted.linear_predictor(data),
        expected,
        rtol=tc.RTOL,
        atol=1e-12,
    )


@pytest.mark.parametrize("test_case", test_cases.values(), ids=list(test_cases))
def test_prediction_matrix_shape(test_case: tc.GAMTestCase):
    fitted = test_case.fit()
    data = test_case.data.iloc[5:12]
    matrix = prediction_matrix(fitted, data)

    assert matrix.shape == (7, len(fitted.coefficients))
    assert list(matrix.columns) == fitted.coefficient_names
    assert list(matrix.index) == list(data.index)
    assert np.all(np.isfinite(matrix.to_numpy()))


def test_prediction_matrix_without_response():
    fitted = tc.create_trees_gamma_gam().fit()
    query = pd.DataFrame({"Girth": [11.0, 18.0]})
    matrix = fitted.prediction_matrix(query)
    assert matrix.shape == (2, len(fitted.coefficients))
    assert matrix["(Intercept)"].tolist() == [1.0, 1.0]


def test_prediction_matrix_duplicate_rows():
    fitted = tc.create_trees_gamma_gam().fit()
    query = pd.DataFrame({"Girth": [12.0, 12.0]}, index=[3, 3])
    matrix = fitted.prediction_matrix(query).to_numpy()
    np.testing.assert_array_equal(matrix[0], matrix[1])


def test_prediction_matrix_missing_covariate():
    fitted = tc.create_trees_two_smooth_gam().fit()
    query = pd.DataFrame({"Girth": [11.0, 18.0]})

    with pytest.raises(MissingCovariateError) as exc_info:
        fitted.prediction_matrix(query)
    assert exc_info.value.missing == ("Height",)


def test_prediction_matrix_missing_by_variable():
    fitted = tc.create_offset_and_by_gam().fit()
    query = fitted.data.drop(columns=["z"])
    with pytest.raises(MissingCovariateError, match="'z'"):
        fitted.prediction_matrix(query)


def test_prediction_outside_fit_range_warns(caplog):
    fitted = tc.create_trees_gamma_gam().fit()
    query = pd.DataFrame({"Girth": [11.0, 40.0]})

    with caplog.at_level(logging.WARNING, logger="gamcontrast.prediction"):
        matrix = fitted.prediction_matrix(query)

    assert matrix.shape[0] == 2
    assert "Girth" in caplog.text
    assert "outside the range" in caplog.text


def test_prediction_inside_fit_range_does_not_warn(caplog):
    fitted = tc.create_trees_gamma_gam().fit()
    query = pd.DataFrame({"Girth": [11.0, 18.0]})
    with caplog.at_level(logging.WARNING, logger="gamcontrast.prediction"):
        fitted.prediction_matrix(query)
    assert not [r for r in caplog.records if r.name == "gamcontrast.prediction"]


def test_linear_predictor():
    matrix = np.array([[1.0, 2.0], [1.0, -1.0], [0.0, 0.5]])
    coefficients = np.array([0.5, 2.0])
    np.testing.assert_allclose(
        linear_predictor(matrix, coefficients),
        [4.5, -1.5, 1.0],
    )


@pytest.mark.parametrize(
    ("matrix_shape", "coefficients_shape"),
    [
        ((2, 2), (3,)),
        ((4, 3), (2,)),
        ((3,), (3,)),
        ((2, 3), (3, 1)),
    ],
)
def test_linear_predictor_dimension_mismatch(matrix_shape, coefficients_shape):
    with pytest.raises(DimensionMismatchError):
        linear_predictor(np.ones(matrix_shape), np.ones(coefficients_shape))


def test_prediction_matrix_wrong_column_count(monkeypatch):
    fitted = tc.create_trees_gamma_gam().fit()
    query = pd.DataFrame({"Girth": [11.0, 18.0]})
    drop_first_column = ro.r("function(m) m[, -1, drop=FALSE]")
    real_predict = prediction.rstats.predict
    monkeypatch.setattr(
        prediction.rstats,
        "predict",
        lambda *args, **kwargs: drop_first_column(real_predict(*args, **kwargs)),
    )

    with pytest.raises(DimensionMismatchError, match="coefficients"):
        prediction_matrix(fitted, query)
