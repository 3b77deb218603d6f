"""Applying reductions to the problem."""
import logging
import pytest
from numpy import inf
from presolvekit import *
from conftest import build_problem


def make_update(problem, postsolve_type=PRIMAL, **kwargs):
    storage = PostsolveStorage(problem, postsolve_type)
    return ProblemUpdate(problem, storage, Statistics(), Num(), **kwargs)


def test_replace_column(two_row_problem):
    """x = 1 - y folds column 0 into column 1, the row sides and the objective."""
    update = make_update(two_row_problem)
    log = ReductionLog(two_row_problem)
    with log.transaction():
        log.lock_row(0)
        log.lock_row(1)
        log.replace_col(0, 1, -1.0, 1.0)
    assert update.apply_reductions(1, log) == ApplyResult(REDUCED, 1, 1)
    problem = two_row_problem
    assert problem.matrix.col_size(0) == 0
    assert problem.is_col_substituted(0)
    assert list(problem.objective) == [0.0, -2.0, 1.0, 1.0]
    assert problem.objective_offset == 3.0
    assert problem.matrix.get_row_entries(0) == [(1, -1.0), (2, 1.0)]
    assert (problem.lhs[0], problem.rhs[0]) == (0.0, 0.0)
    assert problem.matrix.get_row_entries(1) == [(2, 1.0), (3, 1.0)]
    assert (problem.lhs[1], problem.rhs[1]) == (1.0, 1.0)
    assert (problem.lower_bounds[1], problem.upper_bounds[1]) == (0.0, 1.0)
    assert update.stats.ndeletedcols == 1
    assert update.stats.ncoefchgs == 1


def test_replace_column_fixes_replacement(two_row_problem):
    """x = -y with x and y in [0, 1] leaves y fixed at 0."""
    update = make_update(two_row_problem)
    log = ReductionLog(two_row_problem)
    log.replace_col(0, 1, -1.0, 0.0)
    assert update.apply_reductions(1, log).status == REDUCED
    assert two_row_problem.is_col_substituted(0)
    assert two_row_problem.is_col_fixed(1)
    assert two_row_problem.upper_bounds[1] == 0.0
    assert list(two_row_problem.objective) == [0.0, 0.0, 1.0, 1.0]
    assert two_row_problem.matrix.get_row_entries(0) == [(2, 1.0)]
    assert (two_row_problem.lhs[0], two_row_problem.rhs[0]) == (2.0, 2.0)


def test_replace_column_moves_huge_bounds():
    """x0 in [0, 1e9] replaced by x1 hands its upper bound 1e9 to x1."""
    problem = build_problem([0.0, 0.0], [[1, 1]], [0.0], [inf], [0.0, 0.0], [1e9, inf])
    update = make_update(problem)
    log = ReductionLog(problem)
    log.replace_col(0, 1, 1.0, 0.0)
    assert update.apply_reductions(1, log).status == REDUCED
    assert (problem.lower_bounds[1], problem.upper_bounds[1]) == (0.0, 1e9)
    assert problem.matrix.get_row_entries(0) == [(1, 2.0)]
    log = ReductionLog(problem)
    log.change_col_ub(1, 5e8)
    assert update.apply_reductions(2, log).status == UNCHANGED


def test_replace_column_skipped_for_dual_postsolve(two_row_problem, caplog):
    """A replacement has no row to carry its dual, it is not applied with full postsolve."""
    update = make_update(two_row_problem, FULL)
    log = ReductionLog(two_row_problem)
    log.replace_col(0, 1, -1.0, 1.0)
    with caplog.at_level(logging.WARNING):
        assert update.apply_reductions(1, log) == ApplyResult(UNCHANGED, 1, 0)
    assert 'do not support dual postsolve' in caplog.text
    assert not two_row_problem.is_col_substituted(0)
    assert len(update.postsolve) == 0


def test_implied_slack_keeps_row_range(slack_problem):
    """A singleton column with coefficient -1 and bounds [3, 10] turns rhs 1 into the range [4, 11]."""
    update = make_update(slack_problem)
    log = ReductionLog(slack_problem)
    with log.transaction():
        log.lock_col_bounds(1)
        log.lock_row(0)
        log.aggregate_free_col(1, 0)
    assert update.apply_reductions(1, log).status == REDUCED
    assert slack_problem.lhs[0] == 4.0
    assert slack_problem.rhs[0] == 11.0
    assert not slack_problem.is_row_redundant(0)
    assert not slack_problem.is_row_equation(0)
    assert slack_problem.matrix.get_row_entries(0) == [(0, 1.0)]
    assert slack_problem.is_col_substituted(1)


def test_aggregate_free_column(two_row_problem):
    """Aggregating the implied free column w by z + w = 1 removes the row."""
    update = make_update(two_row_problem)
    log = ReductionLog(two_row_problem)
    with log.transaction():
        log.lock_col_bounds(3)
        log.lock_row(1)
        log.aggregate_free_col(3, 1)
    assert update.apply_reductions(1, log) == ApplyResult(REDUCED, 1, 1)
    problem = two_row_problem
    assert list(problem.objective) == [3.0, 1.0, 0.0, 0.0]
    assert problem.objective_offset == 1.0
    assert list(problem.lower_bounds) == [0.0] * 4
    assert list(problem.upper_bounds) == [1.0] * 4
    assert problem.get_col_sizes() == [1, 1, 1, 0]
    assert problem.is_col_substituted(3)
    assert problem.is_row_redundant(1)
    assert problem.get_row_sizes() == [3, 0]


def test_substitute_in_objective_then_redundant_row(two_row_problem):
    """The singleton column of a redundant equation is recovered from that equation."""
    update = make_update(two_row_problem)
    log = ReductionLog(two_row_problem)
    with log.transaction():
        log.lock_col_bounds(3)
        log.lock_row(1)
        log.substitute_col_in_objective(3, 1)
        log.mark_row_redundant(1)
    assert update.apply_reductions(1, log).status == REDUCED
    problem = two_row_problem
    assert list(problem.objective) == [3.0, 1.0, 0.0, 0.0]
    assert problem.is_col_substituted(3)
    assert problem.is_row_redundant(1)
    assert problem.get_row_sizes() == [3, 0]
    assert update.postsolve.types == [ReductionType.SUBSTITUTED_COL]


def test_chained_aggregation(chain_problem):
    """Aggregating a column rewrites every other row it appears in."""
    update = make_update(chain_problem)
    log = ReductionLog(chain_problem)
    log.aggregate_free_col(0, 0)
    assert update.apply_reductions(1, log).status == REDUCED
    assert chain_problem.matrix.get_row_entries(2) == [(1, -1.0), (2, 1.0)]
    assert (chain_problem.lhs[2], chain_problem.rhs[2]) == (-inf, 6.0)
    assert chain_problem.is_row_redundant(0)
    log = ReductionLog(chain_problem)
    log.aggregate_free_col(1, 1)
    assert update.apply_reductions(2, log).status == REDUCED
    assert chain_problem.matrix.get_row_entries(2) == []
    assert chain_problem.rhs[2] == 7.0
    assert chain_problem.active_cols() == [2]


def test_gcd_infeasible_equation(gcd_problem):
    """6x + 8y = 37 has no integral solution."""
    update = make_update(gcd_problem)
    log = ReductionLog(gcd_problem)
    log.aggregate_free_col(0, 0)
    assert update.apply_reductions(1, log) == ApplyResult(INFEASIBLE, 1, 0)
    assert not gcd_problem.is_col_eliminated(0)
    assert make_update(gcd_problem).trivial_presolve() == INFEASIBLE


def test_conflicting_bound_lock(parallel_problem):
    """A lock on bounds changed earlier in the round skips the whole transaction."""
    update = make_update(parallel_problem)
    log = ReductionLog(parallel_problem)
    with log.transaction():
        log.change_col_ub(1, 2.0)
    with log.transaction():
        log.lock_col_bounds(1)
        log.change_col_lb(1, 1.0)
    assert update.apply_reductions(1, log) == ApplyResult(REDUCED, 2, 1)
    assert update.stats.ntsxconflicts == 1
    assert update.stats.ntsxapplied == 1
    assert parallel_problem.lower_bounds[1] == 0.0
    assert parallel_problem.upper_bounds[1] == 2.0
    retry = ReductionLog(parallel_problem)
    with retry.transaction():
        retry.lock_col_bounds(1)
        retry.change_col_lb(1, 1.0)
    assert update.apply_reductions(2, retry) == ApplyResult(REDUCED, 1, 1)
    assert parallel_problem.lower_bounds[1] == 1.0


def test_locked_column_is_frozen(parallel_problem):
    """Columns locked by an applied transaction cannot be changed later in the same round."""
    update = make_update(parallel_problem)
    log = ReductionLog(parallel_problem)
    with log.transaction():
        log.lock_col(0)
        log.change_col_ub(1, 2.0)
    log.change_col_lb(0, 0.5)
    assert update.apply_reductions(1, log) == ApplyResult(REDUCED, 2, 1)
    assert parallel_problem.lower_bounds[0] == 0.0


def test_lock_on_eliminated_column_conflicts(parallel_problem):
    """Locking a column that is already gone is a conflict, not an error."""
    update = make_update(parallel_problem)
    log = ReductionLog(parallel_problem)
    log.fix_col(0, 1.0)
    with log.transaction():
        log.lock_col(0)
        log.change_col_ub(1, 1.0)
    assert update.apply_reductions(1, log) == ApplyResult(REDUCED, 2, 1)
    assert parallel_problem.upper_bounds[1] == 3.0
    assert update.stats.ntsxconflicts == 1


def test_bound_change_fixes_column(parallel_problem):
    """Meeting bounds remove the column and move it into the row sides and the offset."""
    update = make_update(parallel_problem)
    log = ReductionLog(parallel_problem)
    log.change_col_lb(0, 1.0)
    assert update.apply_reductions(1, log).status == REDUCED
    assert parallel_problem.is_col_fixed(0)
    assert parallel_problem.rhs[0] == 3.0
    assert parallel_problem.objective_offset == 1.0
    assert parallel_problem.matrix.get_row_entries(0) == [(1, 2.0)]
    assert update.stats.nboundchgs == 1


def test_empty_bound_interval_is_infeasible(parallel_problem):
    """A lower bound above the upper bound stops application."""
    update = make_update(parallel_problem)
    log = ReductionLog(parallel_problem)
    log.change_col_lb(0, 2.0)
    log.change_col_ub(1, 1.0)
    assert update.apply_reductions(1, log) == ApplyResult(INFEASIBLE, 1, 0)
    assert parallel_problem.upper_bounds[1] == 3.0


def test_postponed_substitution(two_row_problem):
    """Substitutions are held back until flushed."""
    update = make_update(two_row_problem, postpone_substitutions=True)
    log = ReductionLog(two_row_problem)
    with log.transaction():
        log.lock_row(0)
        log.replace_col(0, 1, -1.0, 1.0)
    assert update.apply_reductions(1, log) == ApplyResult(UNCHANGED, 1, 0)
    assert not two_row_problem.is_col_substituted(0)
    assert update.has_postponed()
    assert update.flush_postponed() == ApplyResult(REDUCED, 1, 1)
    assert two_row_problem.is_col_substituted(0)
    assert not update.has_postponed()


def test_model_violations(parallel_problem):
    """Reductions that contradict the problem raise."""
    update = make_update(parallel_problem)
    log = ReductionLog(parallel_problem)
    log.aggregate_free_col(0, 0)
    with pytest.raises(ReductionError):
        update.apply_reductions(1, log)
    log = ReductionLog(parallel_problem)
    log.mark_parallel_cols(1, 0, 3.0)
    with pytest.raises(ReductionError):
        update.apply_reductions(2, log)
    log = ReductionLog(parallel_problem)
    log.fix_col(0, 1.0)
    log.change_col_ub(0, 0.5)
    with pytest.raises(ReductionError):
        update.apply_reductions(3, log)


def test_merge_parallel_columns(parallel_problem):
    """Column y = 2 * column x merges into x with bounds [0, 1 + 2 * 3]."""
    update = make_update(parallel_problem)
    log = ReductionLog(parallel_problem)
    log.mark_parallel_cols(1, 0, 2.0)
    assert update.apply_reductions(1, log).status == REDUCED
    assert parallel_problem.is_col_substituted(1)
    assert (parallel_problem.lower_bounds[0], parallel_problem.upper_bounds[0]) == (0.0, 7.0)
    assert parallel_problem.matrix.get_row_entries(0) == [(0, 1.0)]


@pytest.mark.parametrize("obj,expected", [([0.0, 1.0], REDUCED), ([-1.0, 1.0], UNBND_OR_INFEAS)])
def test_fix_column_at_infinity(obj, expected):
    """x - y >= 1 does not restrict x from above, fixing x at +inf removes the row."""
    problem = build_problem(obj, [[1, -1]], [1.0], [inf], [0.0, 0.0], [inf, 5.0])
    update = make_update(problem)
    log = ReductionLog(problem)
    log.fix_col_positive_infinity(0)
    assert update.apply_reductions(1, log).status == expected
    assert problem.is_row_redundant(0) == (expected == REDUCED)
    assert problem.is_col_eliminated(0) == (expected == REDUCED)


def test_fix_column_at_infinity_blocked_by_row():
    """A finite rhs with a positive coefficient blocks fixing at +inf."""
    problem = build_problem([0.0, 1.0], [[1, -1]], [-inf], [1.0], [0.0, 0.0], [inf, 5.0])
    log = ReductionLog(problem)
    log.fix_col_positive_infinity(0)
    with pytest.raises(ReductionError):
        make_update(problem).apply_reductions(1, log)


@pytest.mark.parametrize("lhs,fixed", [(-inf, False), (1.0, True)])
def test_trivial_presolve_singleton_row(lhs, fixed):
    """The singleton row z <= 1 (or z = 1) becomes a bound and is removed."""
    problem = build_problem([0.0, 0.0, 0.0], [[2, 1, 1], [0, 0, 1]], [-inf, lhs], [3.0, 1.0], [0.0] * 3,
                            [3.0, 7.0, 7.0], [True] * 3)
    update = make_update(problem)
    assert update.trivial_presolve() == REDUCED
    assert problem.upper_bounds[2] == 1.0
    assert problem.is_row_redundant(1)
    if fixed:
        assert problem.lower_bounds[2] == 1.0
        assert problem.is_col_fixed(2)
        assert problem.rhs[0] == 2.0
        assert update.get_singleton_cols_count() == 2
    else:
        assert problem.lower_bounds[2] == 0.0
        assert update.get_singleton_cols_count() == 3


def test_trivial_presolve_keeps_singleton_row_with_huge_side():
    """x0 <= 2e8 is too large to become a bound, so the row stays."""
    problem = build_problem([-1.0, 0.0], [[1, 0], [1, 1]], [-inf, -inf], [2e8, inf], [0.0, 0.0], [inf, inf])
    update = make_update(problem)
    assert update.trivial_presolve() == REDUCED
    assert not problem.is_row_redundant(0)
    assert problem.upper_bounds[0] == inf
    assert problem.matrix.get_row_entries(0) == [(0, 1.0)]
    assert problem.is_row_redundant(1)
    assert problem.is_col_fixed(1)
    assert update.trivial_presolve() == UNCHANGED


def test_trivial_presolve_columns():
    """Integral bounds are rounded, empty columns are fixed at their best bound."""
    problem = build_problem([1.0, -1.0, 0.0], [[1, 0, 0]], [-inf], [10.0], [0.5, 0.0, -inf], [4.5, 2.0, inf],
                            [True, False, False])
    update = make_update(problem)
    assert update.trivial_presolve() == REDUCED
    assert problem.is_col_fixed(1)
    assert problem.upper_bounds[1] == 2.0
    assert problem.is_col_fixed(2)
    assert problem.lower_bounds[2] == 0.0
    assert problem.objective_offset == -1.0
    assert problem.is_col_fixed(0)
    assert problem.lower_bounds[0] == 1.0


@pytest.mark.parametrize("obj,lhs,expected", [([-1.0], -inf, UNBND_OR_INFEAS), ([0.0], 1.0, INFEASIBLE)])
def test_trivial_presolve_terminal(obj, lhs, expected):
    """An empty column that improves without limit, or an empty row that cannot be satisfied."""
    problem = build_problem(obj, [[0]], [lhs], [inf], [0.0], [inf])
    assert make_update(problem).trivial_presolve() == expected


def test_row_side_changes(parallel_problem):
    """Row sides can be tightened and relaxed, crossing sides are infeasible."""
    update = make_update(parallel_problem)
    log = ReductionLog(parallel_problem)
    log.change_row_lhs(0, 1.0)
    log.change_row_rhs_inf(0)
    assert update.apply_reductions(1, log).status == REDUCED
    assert (parallel_problem.lhs[0], parallel_problem.rhs[0]) == (1.0, inf)
    assert update.stats.nsidechgs == 2
    log = ReductionLog(parallel_problem)
    log.change_row_rhs(0, 0.0)
    assert update.apply_reductions(2, log).status == INFEASIBLE


def test_change_matrix_entry_and_objective(parallel_problem):
    """Coefficient and objective changes are applied as given."""
    update = make_update(parallel_problem)
    log = ReductionLog(parallel_problem)
    log.change_matrix_entry(0, 1, 0.0)
    log.change_col_obj(0, 5.0)
    log.implied_integer(1)
    assert update.apply_reductions(1, log) == ApplyResult(REDUCED, 3, 3)
    assert parallel_problem.matrix.get_row_entries(0) == [(0, 1.0)]
    assert parallel_problem.objective[0] == 5.0
    assert parallel_problem.is_integral(1)
    assert update.stats.ncoefchgs == 1
