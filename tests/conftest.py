import pytest
from numpy import inf
from presolvekit import ProblemBuilder
from presolvekit.names import *


def build_problem(obj, rows, lhs, rhs, lb, ub, integral=None, name='test'):
    """Build a problem from dense rows"""
    builder = ProblemBuilder()
    builder.set_num_cols(len(obj))
    builder.set_num_rows(len(rows))
    builder.set_problem_name(name)
    builder.set_obj_all(obj)
    builder.set_col_lb_all(lb)
    builder.set_col_ub_all(ub)
    if integral is not None:
        builder.set_col_integral_all(integral)
    builder.set_row_lhs_all(lhs)
    builder.set_row_rhs_all(rhs)
    for i, row in enumerate(rows):
        for j, val in enumerate(row):
            if val != 0:
                builder.add_entry(i, j, val)
    return builder.build()


@pytest.fixture(params=[PRIMAL, FULL], scope="session")
def postsolve_type(request: pytest.FixtureRequest) -> str:
    """Provide session-level fixture for both postsolve modes."""
    return request.param


@pytest.fixture
def two_row_problem():
    """2x + y + z = 2, z + w = 1, all columns integral in [0, 1]"""
    return build_problem([3.0, 1.0, 1.0, 1.0], [[2, 1, 1, 0], [0, 0, 1, 1]], [2.0, 1.0], [2.0, 1.0], [0.0] * 4,
                         [1.0] * 4, [True] * 4)


@pytest.fixture
def slack_problem():
    """y - s = 1 with y in [0, 100] and s in [3, 10]"""
    return build_problem([1.0, 0.0], [[1, -1]], [1.0], [1.0], [0.0, 3.0], [100.0, 10.0])


@pytest.fixture
def chain_problem():
    """x0 + x1 = 4, x1 - x2 = 1, x0 + x2 <= 10 with free columns"""
    return build_problem([0.0, 0.0, 1.0], [[1, 1, 0], [0, 1, -1], [1, 0, 1]], [4.0, 1.0, -inf], [4.0, 1.0, 10.0],
                         [-inf] * 3, [inf] * 3)


@pytest.fixture
def parallel_problem():
    """x + 2y <= 4 with x in [0, 1] and y in [0, 3]"""
    return build_problem([1.0, 2.0], [[1, 2]], [-inf], [4.0], [0.0, 0.0], [1.0, 3.0])


@pytest.fixture
def gcd_problem():
    """6x + 8y = 37 with integral x, y in [0, 5]"""
    return build_problem([0.0, 0.0], [[6, 8]], [37.0], [37.0], [0.0, 0.0], [5.0, 5.0], [True, True])
