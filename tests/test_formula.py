import pytest
import numpy as np

from vsp.exceptions import ConfigurationError
from vsp.generation.formula import Formula


def test_variables_and_evaluation():
    formula = Formula("bio1 + 2 * bio12 - bio1 / 4")
    assert formula.variables == frozenset({"bio1", "bio12"})
    result = formula.evaluate({"bio1": np.array([4.0, 8.0]), "bio12": np.array([1.0, 2.0])})
    np.testing.assert_allclose(result, [5.0, 10.0])


def test_parentheses_and_unary_minus():
    formula = Formula("-(a + b) * 3")
    assert formula.evaluate({"a": 1.0, "b": 2.0}) == pytest.approx(-9.0)


@pytest.mark.parametrize("text", [
    "bio1 ** 2",
    "__import__('os').system('ls')",
    "bio1 if bio12 else 0",
    "bio1 +",
    "",
])
def test_rejected_formulas(text):
    with pytest.raises(ConfigurationError):
        Formula(text)


def test_check_variables():
    formula = Formula("bio1 * bio12")
    formula.check_variables(["bio1", "bio12"])

    with pytest.raises(ConfigurationError, match="spelled"):
        formula.check_variables(["bio1", "bio2"])

    with pytest.raises(ConfigurationError, match="missing"):
        formula.check_variables(["bio1", "bio12", "bio5"])
