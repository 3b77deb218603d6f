#!/usr/bin/env python3
#
# Copyright 2022 Max Planck Insitute Magdeburg
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#
#
#
"""Application of committed reductions to the live problem

ProblemUpdate applies the transactions of a ReductionLog to a Problem and
mirrors every change into the PostsolveStorage, in the order in which the
changes are made to the problem. Within a presolve round it tracks which rows
and columns were modified or locked, so that a transaction whose locks are
contradicted by an earlier transaction of the same round is skipped as a whole.
"""

from enum import IntFlag
from math import gcd
from typing import NamedTuple
from numpy import inf, isinf
from presolvekit.names import UNCHANGED, REDUCED, INFEASIBLE, UNBND_OR_INFEAS, TERMINAL_STATUS
from presolvekit.num import Num
from presolvekit.problem import ColFlag, RowFlag
from presolvekit.reductions import *
from presolvekit.statistics import Statistics
import logging


class State(IntFlag):
    """Per-round modification state of a row or column"""
    NONE = 0
    MODIFIED = 1
    BOUNDS_MODIFIED = 2
    LOCKED = 4
    BOUNDS_LOCKED = 8


class ApplyResult(NamedTuple):
    """Outcome of apply_reductions

    status is UNCHANGED, REDUCED or a terminal status, num_processed counts
    the transactions and single reductions looked at (including skipped and
    postponed ones), num_applied those that changed the problem.
    """
    status: str
    num_processed: int
    num_applied: int


BOUND_REDUCTIONS = (ChangeColLB, ChangeColUB, FixCol)
ROW_MODIFICATIONS = (ChangeRowLHS, ChangeRowRHS, ChangeRowLHSInf, ChangeRowRHSInf, ForcedRowBound, MarkRowRedundant,
                     ChangeMatrixEntry, SubstituteCol, SubstituteColInObjective)
SUBSTITUTIONS = (ReplaceCol, SubstituteCol)


def row_gcd_infeasible(problem, row, num) -> bool:
    """True if an integral equation has no integral solution because the gcd of its coefficients
    does not divide its side, e.g. 6x + 8y = 37"""
    if not problem.is_row_equation(row) or not problem.matrix.rows[row]:
        return False
    coefs = []
    for col, val in problem.matrix.rows[row].items():
        if not problem.is_integral(col) or not num.is_integral(val):
            return False
        coefs.append(abs(int(round(val))))
    side = problem.rhs[row]
    if not num.is_integral(side):
        return True
    g = 0
    for c in coefs:
        g = gcd(g, c)
    if g == 0:
        return False
    return int(round(side)) % g != 0


class ProblemUpdate:
    """Applies reductions to a problem and records them for postsolve

    Args:
        problem (Problem):
            The problem that is modified in place.

        postsolve (PostsolveStorage):
            Storage that receives one record per change.

        statistics (Statistics):
            (Optional) Counters incremented for every change.

        num (Num):
            (Optional) Tolerance service for all comparisons.

        postpone_substitutions (bool):
            (Default: False) Queue transactions that replace or substitute columns
            and apply them only on flush_postponed().
    """

    def __init__(self, problem, postsolve, statistics=None, num=None, postpone_substitutions=False):
        self.problem = problem
        self.postsolve = postsolve
        self.stats = statistics if statistics is not None else Statistics()
        self.num = num if num is not None else Num()
        self.postpone_substitutions = postpone_substitutions
        self.col_state = [State.NONE] * problem.get_n_cols()
        self.row_state = [State.NONE] * problem.get_n_rows()
        self.round = None
        self._postponed = []
        self._handlers = {
            ChangeColLB: lambda r: self.change_col_lb(r.col, r.value),
            ChangeColUB: lambda r: self.change_col_ub(r.col, r.value),
            FixCol: lambda r: self.fix_col(r.col, r.value),
            FixColInfinity: lambda r: self.fix_col_infinity(r.col, r.direction),
            ChangeColObj: lambda r: self.change_col_obj(r.col, r.value),
            ImpliedInteger: lambda r: self.implied_integer(r.col),
            SubstituteCol: lambda r: self.substitute_col(r.col, r.row),
            SubstituteColInObjective: lambda r: self.substitute_col_in_objective(r.col, r.row),
            ReplaceCol: lambda r: self.replace_col(r.col, r.replacement_col, r.scale, r.offset),
            ParallelCols: lambda r: self.merge_parallel_cols(r.col, r.remaining_col, r.scale),
            ChangeMatrixEntry: lambda r: self.change_matrix_entry(r.row, r.col, r.value),
            ChangeRowLHS: lambda r: self.change_row_lhs(r.row, r.value),
            ChangeRowRHS: lambda r: self.change_row_rhs(r.row, r.value),
            ChangeRowLHSInf: lambda r: self.change_row_lhs(r.row, -inf),
            ChangeRowRHSInf: lambda r: self.change_row_rhs(r.row, inf),
            ForcedRowBound:
                lambda r: self.change_row_bound_forced(r.row, r.is_lhs, r.value, r.reason_row, r.factor),
            MarkRowRedundant: lambda r: self.mark_row_redundant(r.row),
            LockCol: self._lock,
            LockColBounds: self._lock,
            LockRow: self._lock,
        }

    # ====================================================
    # Round and transaction handling
    # ====================================================
    def clear_states(self):
        self.col_state = [State.NONE] * len(self.col_state)
        self.row_state = [State.NONE] * len(self.row_state)

    def apply_reductions(self, round_number, log) -> ApplyResult:
        """Apply all committed reductions of a log

        Every committed transaction is applied as one unit, reductions appended
        outside of a transaction as single units. A unit that conflicts with
        changes or locks of an earlier unit of the same round is skipped. The
        per-round states are reset when a new round number is passed.

        Returns:
            (ApplyResult):
                Status, number of processed and number of applied units. Application stops
                at the first unit that proves infeasibility or unboundedness.
        """
        if round_number != self.round:
            self.clear_states()
            self.round = round_number
        status, nprocessed, napplied = UNCHANGED, 0, 0
        for _, reductions in log.units():
            nprocessed += 1
            if self.postpone_substitutions and any(isinstance(r, SUBSTITUTIONS) for r in reductions):
                self._postponed.append(reductions)
                continue
            unit_status = self._apply_unit(reductions)
            if unit_status in TERMINAL_STATUS:
                return ApplyResult(unit_status, nprocessed, napplied)
            if unit_status == REDUCED:
                status = REDUCED
                napplied += 1
        return ApplyResult(status, nprocessed, napplied)

    def flush_postponed(self) -> ApplyResult:
        """Apply the queued substitution transactions"""
        postponed, self._postponed = self._postponed, []
        status, napplied = UNCHANGED, 0
        for nprocessed, reductions in enumerate(postponed, 1):
            unit_status = self._apply_unit(reductions)
            if unit_status in TERMINAL_STATUS:
                return ApplyResult(unit_status, nprocessed, napplied)
            if unit_status == REDUCED:
                status = REDUCED
                napplied += 1
        return ApplyResult(status, len(postponed), napplied)

    def has_postponed(self) -> bool:
        return bool(self._postponed)

    def _apply_unit(self, reductions):
        if self.postsolve.is_full() and any(isinstance(r, ReplaceCol) for r in reductions):
            logging.warning('Skipped transaction of ' + str(len(reductions)) + ' reductions: column replacements '
                            'do not support dual postsolve.')
            return UNCHANGED
        conflict = self._find_conflict(reductions)
        if conflict is not None:
            self.stats.ntsxconflicts += 1
            logging.warning('Skipped transaction of ' + str(len(reductions)) + ' reductions: ' + conflict + '.')
            return UNCHANGED
        status = UNCHANGED
        for reduction in reductions:
            red_status = self._handlers[type(reduction)](reduction)
            if red_status in TERMINAL_STATUS:
                logging.warning('Reduction ' + repr(reduction) + ' proved the problem ' + red_status + '.')
                return red_status
            if red_status == REDUCED:
                status = REDUCED
        if status == REDUCED:
            self.stats.ntsxapplied += 1
            logging.debug('Applied transaction of ' + str(len(reductions)) + ' reductions.')
        return status

    def _find_conflict(self, reductions):
        """Reason why a unit cannot be applied in the current round, None if it can"""
        problem = self.problem
        for r in reductions:
            if isinstance(r, LockColBounds):
                if problem.is_col_eliminated(r.col):
                    return 'column ' + str(r.col) + ' is eliminated'
                if self.col_state[r.col] & State.BOUNDS_MODIFIED:
                    return 'bounds of column ' + str(r.col) + ' were modified'
            elif isinstance(r, LockCol):
                if problem.is_col_eliminated(r.col):
                    return 'column ' + str(r.col) + ' is eliminated'
                if self.col_state[r.col] & (State.MODIFIED | State.BOUNDS_MODIFIED):
                    return 'column ' + str(r.col) + ' was modified'
            elif isinstance(r, LockRow):
                if problem.is_row_redundant(r.row):
                    return 'row ' + str(r.row) + ' is redundant'
                if self.row_state[r.row] & State.MODIFIED:
                    return 'row ' + str(r.row) + ' was modified'
            else:
                for col in referenced_cols(r):
                    if self.col_state[col] & State.LOCKED or (isinstance(r, BOUND_REDUCTIONS) and
                                                              self.col_state[col] & State.BOUNDS_LOCKED):
                        return 'column ' + str(col) + ' is locked'
                if isinstance(r, ROW_MODIFICATIONS):
                    for row in referenced_rows(r):
                        if self.row_state[row] & State.LOCKED:
                            return 'row ' + str(row) + ' is locked'
        return None

    def _lock(self, reduction):
        if isinstance(reduction, LockColBounds):
            self.col_state[reduction.col] |= State.BOUNDS_LOCKED
        elif isinstance(reduction, LockCol):
            self.col_state[reduction.col] |= State.LOCKED
        else:
            self.row_state[reduction.row] |= State.LOCKED
        return UNCHANGED

    # ====================================================
    # Helpers
    # ====================================================
    def _require_col(self, col):
        if self.problem.is_col_eliminated(col):
            raise ReductionError('Column ' + str(col) + ' is already eliminated.')

    def _require_row(self, row):
        if self.problem.is_row_redundant(row):
            raise ReductionError('Row ' + str(row) + ' is already redundant.')

    def _mark_col_modified(self, col, bounds=False):
        self.col_state[col] |= State.MODIFIED
        if bounds:
            self.col_state[col] |= State.BOUNDS_MODIFIED

    def _mark_row_modified(self, row):
        self.row_state[row] |= State.MODIFIED
        for col in self.problem.matrix.rows[row]:
            self.col_state[col] |= State.MODIFIED

    def _shift_row_sides(self, row, delta):
        """Add delta to the finite sides of a row"""
        matrix = self.problem.matrix
        if delta == 0.0:
            return
        if not isinf(matrix.lhs[row]):
            matrix.set_lhs(row, matrix.lhs[row] + delta)
        if not isinf(matrix.rhs[row]):
            matrix.set_rhs(row, matrix.rhs[row] + delta)
        self._mark_row_modified(row)

    def _fold_col_into_objective(self, col, row, a):
        """Express the objective coefficient of col by the equation row"""
        problem = self.problem
        cost = problem.objective[col]
        if cost == 0.0:
            return False
        factor = cost / a
        for j, a_j in problem.matrix.rows[row].items():
            problem.objective[j] -= factor * a_j
            self.col_state[j] |= State.MODIFIED
        problem.objective[col] = 0.0
        problem.objective_offset += factor * problem.rhs[row]
        self.postsolve.store_dual_value(False, row, factor)
        return True

    def _eliminate_col(self, col, flag):
        problem = self.problem
        problem.matrix.remove_col_entries(col)
        problem.objective[col] = 0.0
        problem.col_flags[col] |= flag
        self._mark_col_modified(col, bounds=True)
        self.stats.inc_deleted_cols()

    # ====================================================
    # Column bounds
    # ====================================================
    def change_col_lb(self, col, value, reason_row=-1, reason_coef=0.0, force=False):
        """Tighten the lower bound, fixes the column if its bounds meet

        Huge values are ignored unless force is set, e.g. for bounds that are
        moved from an eliminated column to the column that replaces it.
        """
        self._require_col(col)
        problem, num = self.problem, self.num
        if problem.is_integral(col):
            value = num.feas_ceil(value)
        lb, ub = problem.lower_bounds[col], problem.upper_bounds[col]
        if isinf(value) or (num.is_huge(value) and not force) or num.is_le(value, lb):
            return UNCHANGED
        if num.is_feas_gt(value, ub):
            return INFEASIBLE
        value = min(value, ub)
        self.postsolve.store_var_bound_change(col, True, value, lb, reason_row, reason_coef)
        problem.set_col_lb(col, value)
        self.stats.inc_bound_changes()
        self._mark_col_modified(col, bounds=True)
        if num.is_eq(value, ub):
            self.remove_fixed_col(col, value)
        return REDUCED

    def change_col_ub(self, col, value, reason_row=-1, reason_coef=0.0, force=False):
        """Tighten the upper bound, fixes the column if its bounds meet"""
        self._require_col(col)
        problem, num = self.problem, self.num
        if problem.is_integral(col):
            value = num.feas_floor(value)
        lb, ub = problem.lower_bounds[col], problem.upper_bounds[col]
        if isinf(value) or (num.is_huge(value) and not force) or num.is_ge(value, ub):
            return UNCHANGED
        if num.is_feas_lt(value, lb):
            return INFEASIBLE
        value = max(value, lb)
        self.postsolve.store_var_bound_change(col, False, value, ub, reason_row, reason_coef)
        problem.set_col_ub(col, value)
        self.stats.inc_bound_changes()
        self._mark_col_modified(col, bounds=True)
        if num.is_eq(value, lb):
            self.remove_fixed_col(col, value)
        return REDUCED

    def fix_col(self, col, value):
        self._require_col(col)
        problem, num = self.problem, self.num
        if isinf(value):
            raise ReductionError('Use FixColInfinity to fix column ' + str(col) + ' at an infinite value.')
        if num.is_feas_lt(value, problem.lower_bounds[col]) or num.is_feas_gt(value, problem.upper_bounds[col]):
            return INFEASIBLE
        if problem.is_integral(col) and not num.is_feas_integral(value):
            return INFEASIBLE
        if problem.is_integral(col):
            value = float(round(value))
        self.remove_fixed_col(col, value)
        return REDUCED

    def remove_fixed_col(self, col, value):
        """Move a column with the given value into the row sides and the objective offset"""
        problem = self.problem
        entries = problem.matrix.get_col_entries(col)
        cost = problem.objective[col]
        self.postsolve.store_fixed_col(col, value, cost, entries)
        for row, a in entries:
            self._shift_row_sides(row, -a * value)
        problem.objective_offset += cost * value
        problem.set_col_lb(col, value)
        problem.set_col_ub(col, value)
        self._eliminate_col(col, ColFlag.FIXED)

    def fix_col_infinity(self, col, direction):
        """Fix a column at an infinite value, all of its rows become redundant

        The column must be unbounded in the given direction, have no objective
        coefficient and must not be restricted by any of its rows in that
        direction. A cost that improves in the direction proves the problem
        unbounded or infeasible.
        """
        self._require_col(col)
        problem = self.problem
        if direction not in (-1, 1):
            raise ReductionError('Direction of an infinite fixing must be -1 or 1.')
        bound = problem.lower_bounds[col] if direction > 0 else problem.upper_bounds[col]
        if not isinf(problem.upper_bounds[col] if direction > 0 else problem.lower_bounds[col]):
            raise ReductionError('Column ' + str(col) + ' is bounded in the direction of the infinite fixing.')
        cost = problem.objective[col]
        if cost * direction < 0:
            return UNBND_OR_INFEAS
        if cost != 0.0:
            raise ReductionError('Column ' + str(col) + ' has a cost that prevents an infinite fixing.')
        rows = []
        for row, a in problem.matrix.get_col_entries(col):
            blocking_side = problem.rhs[row] if a * direction > 0 else problem.lhs[row]
            if not isinf(blocking_side):
                raise ReductionError('Row ' + str(row) + ' restricts column ' + str(col) + ' in the direction of '
                                     'the infinite fixing.')
            rows.append((row, problem.lhs[row], problem.rhs[row], problem.row_flags[row],
                         problem.matrix.get_row_entries(row)))
        self.postsolve.store_fixed_inf_col(col, direction, bound, rows)
        for row, _, _, _, _ in rows:
            self.mark_row_redundant(row, substitute_singletons=False)
        self._eliminate_col(col, ColFlag.FIXED)
        return REDUCED

    # ====================================================
    # Other column reductions
    # ====================================================
    def change_col_obj(self, col, value):
        self._require_col(col)
        old = self.problem.objective[col]
        if old == value:
            return UNCHANGED
        self.postsolve.store_dual_value(True, col, old - value)
        self.problem.objective[col] = value
        self._mark_col_modified(col)
        return REDUCED

    def implied_integer(self, col):
        self._require_col(col)
        problem = self.problem
        if problem.is_integral(col):
            return UNCHANGED
        problem.col_flags[col] |= ColFlag.IMPLIED_INTEGRAL
        self._mark_col_modified(col)
        for change, bound in ((self.change_col_lb, problem.lower_bounds[col]),
                              (self.change_col_ub, problem.upper_bounds[col])):
            if problem.is_col_eliminated(col):
                break
            if change(col, bound) in TERMINAL_STATUS:
                return INFEASIBLE
        return REDUCED

    def change_matrix_entry(self, row, col, value):
        self._require_col(col)
        self._require_row(row)
        matrix = self.problem.matrix
        old = matrix.get_value(row, col)
        if old == value:
            return UNCHANGED
        problem = self.problem
        self.postsolve.store_saved_row(row, problem.lhs[row], problem.rhs[row], problem.row_flags[row],
                                       matrix.get_row_entries(row))
        self.postsolve.store_coefficient_change(row, col, value, old)
        matrix.change_entry(row, col, value)
        self.stats.inc_coef_changes()
        self._mark_row_modified(row)
        self._mark_col_modified(col)
        return REDUCED

    def substitute_col_in_objective(self, col, row):
        """Remove the objective coefficient of col using the equation row"""
        self._require_col(col)
        self._require_row(row)
        problem = self.problem
        if not problem.is_row_equation(row):
            raise ReductionError('Row ' + str(row) + ' is not an equation.')
        a = problem.matrix.get_value(row, col)
        if a == 0.0:
            raise ReductionError('Column ' + str(col) + ' does not appear in row ' + str(row) + '.')
        return REDUCED if self._fold_col_into_objective(col, row, a) else UNCHANGED

    def substitute_col(self, col, row):
        """Eliminate col by solving the equation row for it

        A column that appears only in this row is an implied slack. It leaves the
        row, which keeps the range of the remaining activity, and the row becomes
        redundant if its remaining activity cannot leave that range. Otherwise the
        column is aggregated out of all other rows and the defining row becomes
        redundant.
        """
        self._require_col(col)
        self._require_row(row)
        problem, num, matrix = self.problem, self.num, self.problem.matrix
        if not problem.is_row_equation(row):
            raise ReductionError('Row ' + str(row) + ' is not an equation.')
        a = matrix.get_value(row, col)
        if a == 0.0:
            raise ReductionError('Column ' + str(col) + ' does not appear in row ' + str(row) + '.')
        if row_gcd_infeasible(problem, row, num):
            return INFEASIBLE
        side = problem.rhs[row]
        row_entries = matrix.get_row_entries(row)
        if problem.is_integral(col):
            for j, a_j in row_entries:
                if j != col and not (problem.is_integral(j) and num.is_integral(a_j / a)):
                    raise ReductionError('Substituting integral column ' + str(col) + ' by row ' + str(row) +
                                         ' does not preserve integrality.')
            if not num.is_integral(side / a):
                return INFEASIBLE
        if matrix.col_size(col) == 1:
            lb, ub = problem.lower_bounds[col], problem.upper_bounds[col]
            lo, hi = (side - a * ub, side - a * lb) if a > 0 else (side - a * lb, side - a * ub)
            minact, maxact, ninfmin, ninfmax = problem.compute_row_activity(row, skip_col=col)
            implied_free = (isinf(lo) or (ninfmin == 0 and num.is_feas_ge(minact, lo))) and \
                (isinf(hi) or (ninfmax == 0 and num.is_feas_le(maxact, hi)))
            self.postsolve.store_substitution(col, row, side, row_entries, problem.objective[col],
                                              matrix.get_col_entries(col), row_kept=not implied_free)
            self._fold_col_into_objective(col, row, a)
            self._eliminate_col(col, ColFlag.SUBSTITUTED)
            if implied_free:
                self.mark_row_redundant(row, substitute_singletons=False)
            else:
                self.postsolve.store_row_bound_change(row, True, lo, side)
                self.postsolve.store_row_bound_change(row, False, hi, side)
                matrix.set_lhs(row, lo)
                matrix.set_rhs(row, hi)
                self.stats.inc_side_changes(2)
                self._mark_row_modified(row)
            return REDUCED
        self.postsolve.store_substitution(col, row, side, row_entries, problem.objective[col],
                                          matrix.get_col_entries(col))
        self._fold_col_into_objective(col, row, a)
        for r, a_r in matrix.get_col_entries(col):
            if r == row:
                continue
            factor = a_r / a
            for j, a_j in row_entries:
                if j == col:
                    matrix.change_entry(r, j, 0.0)
                    continue
                new = matrix.get_value(r, j) - factor * a_j
                matrix.change_entry(r, j, 0.0 if num.is_zero(new) else new)
                self.stats.inc_coef_changes()
            self._shift_row_sides(r, -factor * side)
            self._mark_row_modified(r)
        self._eliminate_col(col, ColFlag.SUBSTITUTED)
        self.mark_row_redundant(row, substitute_singletons=False)
        return REDUCED

    def replace_col(self, col, replacement, scale, offset):
        """Eliminate col = scale * replacement + offset"""
        self._require_col(col)
        self._require_col(replacement)
        problem, num, matrix = self.problem, self.num, self.problem.matrix
        if problem.is_integral(col) and not (problem.is_integral(replacement) and num.is_integral(scale) and
                                             num.is_integral(offset)):
            raise ReductionError('Replacing integral column ' + str(col) + ' does not preserve integrality.')
        cost = problem.objective[col]
        entries = matrix.get_col_entries(col)
        self.postsolve.store_replaced_col(col, scale, replacement, offset, cost, entries)
        for row, a in entries:
            new = matrix.get_value(row, replacement) + a * scale
            matrix.change_entry(row, col, 0.0)
            matrix.change_entry(row, replacement, 0.0 if num.is_zero(new) else new)
            self.stats.inc_coef_changes()
            self._shift_row_sides(row, -a * offset)
            self._mark_row_modified(row)
        problem.objective[replacement] += cost * scale
        problem.objective_offset += cost * offset
        lb, ub = problem.lower_bounds[col], problem.upper_bounds[col]
        self._eliminate_col(col, ColFlag.SUBSTITUTED)
        self._mark_col_modified(replacement)
        new_lb, new_ub = ((lb - offset) / scale, (ub - offset) / scale) if scale > 0 else \
            ((ub - offset) / scale, (lb - offset) / scale)
        if self.change_col_lb(replacement, new_lb, force=True) in TERMINAL_STATUS:
            return INFEASIBLE
        if not problem.is_col_eliminated(replacement) and \
                self.change_col_ub(replacement, new_ub, force=True) in TERMINAL_STATUS:
            return INFEASIBLE
        return REDUCED

    def merge_parallel_cols(self, col, remaining, scale):
        """Merge col into remaining, where column col of the matrix is scale times column remaining

        The remaining column afterwards stands for remaining + scale * col.
        """
        self._require_col(col)
        self._require_col(remaining)
        problem, num, matrix = self.problem, self.num, self.problem.matrix
        col_entries, rem_entries = matrix.cols[col], matrix.cols[remaining]
        if set(col_entries) != set(rem_entries) or \
                any(not num.is_eq(v, scale * rem_entries[r]) for r, v in col_entries.items()) or \
                not num.is_eq(problem.objective[col], scale * problem.objective[remaining]):
            raise ReductionError('Columns ' + str(col) + ' and ' + str(remaining) + ' are not parallel with scale ' +
                                 str(scale) + '.')
        col_int, rem_int = problem.is_integral(col), problem.is_integral(remaining)
        lb_c, ub_c = problem.lower_bounds[col], problem.upper_bounds[col]
        lb_r, ub_r = problem.lower_bounds[remaining], problem.upper_bounds[remaining]
        if col_int != rem_int:
            raise ReductionError('Parallel columns ' + str(col) + ' and ' + str(remaining) +
                                 ' must agree in integrality.')
        if col_int and not (num.is_integral(scale) and not isinf(lb_r) and not isinf(ub_r) and
                            num.is_le(abs(scale), ub_r - lb_r + 1)):
            raise ReductionError('Integral parallel columns ' + str(col) + ' and ' + str(remaining) +
                                 ' cannot be merged with scale ' + str(scale) + '.')
        self.postsolve.store_parallel_cols(col, lb_c, ub_c, problem.col_flags[col], remaining, lb_r, ub_r,
                                           problem.col_flags[remaining], scale)
        if scale > 0:
            new_lb, new_ub = lb_r + scale * lb_c, ub_r + scale * ub_c
        else:
            new_lb, new_ub = lb_r + scale * ub_c, ub_r + scale * lb_c
        self._eliminate_col(col, ColFlag.SUBSTITUTED)
        problem.set_col_lb(remaining, new_lb)
        problem.set_col_ub(remaining, new_ub)
        self.stats.inc_bound_changes(2)
        self._mark_col_modified(remaining, bounds=True)
        return REDUCED

    # ====================================================
    # Rows
    # ====================================================
    def change_row_lhs(self, row, value, forced_by=None):
        return self._change_row_side(row, True, value, forced_by)

    def change_row_rhs(self, row, value, forced_by=None):
        return self._change_row_side(row, False, value, forced_by)

    def change_row_bound_forced(self, row, is_lhs, value, reason_row, factor):
        """Side of row set to value because reason_row is factor times row"""
        return self._change_row_side(row, is_lhs, value, (reason_row, factor))

    def _change_row_side(self, row, is_lhs, value, forced_by):
        self._require_row(row)
        problem, num = self.problem, self.num
        old = problem.lhs[row] if is_lhs else problem.rhs[row]
        other = problem.rhs[row] if is_lhs else problem.lhs[row]
        if value == old:
            return UNCHANGED
        if is_lhs and num.is_feas_gt(value, other) or not is_lhs and num.is_feas_lt(value, other):
            return INFEASIBLE
        if not isinf(value) and num.is_feas_eq(value, other):
            value = other
        if forced_by is None:
            self.postsolve.store_row_bound_change(row, is_lhs, value, old)
        else:
            self.postsolve.store_row_bound_change_forced_by_row(row, is_lhs, value, old, forced_by[0], forced_by[1])
        if is_lhs:
            problem.modify_row_lhs(row, value)
        else:
            problem.modify_row_rhs(row, value)
        self.stats.inc_side_changes()
        self._mark_row_modified(row)
        return REDUCED

    def mark_row_redundant(self, row, substitute_singletons=True):
        """Remove all entries of a row and flag it redundant

        The first column that appears only in a redundant equation is
        recovered from that equation during postsolve.
        """
        problem, matrix = self.problem, self.problem.matrix
        if problem.is_row_redundant(row):
            return UNCHANGED
        if substitute_singletons and problem.is_row_equation(row):
            for col, a in matrix.get_row_entries(row):
                if matrix.col_size(col) == 1:
                    self.postsolve.store_substitution(col, row, problem.rhs[row], matrix.get_row_entries(row),
                                                      problem.objective[col], matrix.get_col_entries(col))
                    self._fold_col_into_objective(col, row, a)
                    self._eliminate_col(col, ColFlag.SUBSTITUTED)
                    break
        self.postsolve.store_redundant_row(row)
        self._mark_row_modified(row)
        matrix.remove_row_entries(row)
        matrix.row_flags[row] |= RowFlag.REDUNDANT
        self.stats.inc_deleted_rows()
        return REDUCED

    # ====================================================
    # Trivial presolve
    # ====================================================
    def trivial_presolve(self):
        """Round integral bounds, remove fixed and empty columns, remove empty, free and singleton rows

        Returns:
            (str):
                UNCHANGED, REDUCED, INFEASIBLE or UNBND_OR_INFEAS.
        """
        status = UNCHANGED
        changed = True
        while changed:
            changed = False
            col_status = self._trivial_column_presolve()
            if col_status in TERMINAL_STATUS:
                return col_status
            row_status = self._trivial_row_presolve()
            if row_status in TERMINAL_STATUS:
                return row_status
            if REDUCED in (col_status, row_status):
                status = REDUCED
                changed = True
        return status

    def _trivial_column_presolve(self):
        problem, num = self.problem, self.num
        status = UNCHANGED
        for col in range(problem.get_n_cols()):
            if problem.is_col_eliminated(col):
                continue
            lb, ub = problem.lower_bounds[col], problem.upper_bounds[col]
            if problem.is_integral(col):
                if not isinf(lb) and not num.is_integral(lb) and \
                        self.change_col_lb(col, num.feas_ceil(lb)) in TERMINAL_STATUS:
                    return INFEASIBLE
                if not problem.is_col_eliminated(col) and not isinf(ub) and not num.is_integral(ub) and \
                        self.change_col_ub(col, num.feas_floor(ub)) in TERMINAL_STATUS:
                    return INFEASIBLE
                if problem.is_col_eliminated(col):
                    status = REDUCED
                    continue
                lb, ub = problem.lower_bounds[col], problem.upper_bounds[col]
            if num.is_feas_gt(lb, ub):
                return INFEASIBLE
            if num.is_eq(lb, ub):
                self.remove_fixed_col(col, lb)
                status = REDUCED
            elif problem.matrix.col_size(col) == 0:
                cost = problem.objective[col]
                if cost > 0:
                    value = lb
                elif cost < 0:
                    value = ub
                else:
                    value = lb if not isinf(lb) else (ub if not isinf(ub) else 0.0)
                if isinf(value):
                    return UNBND_OR_INFEAS
                self.remove_fixed_col(col, value)
                status = REDUCED
        return status

    def _trivial_row_presolve(self):
        problem, num = self.problem, self.num
        status = UNCHANGED
        for row in range(problem.get_n_rows()):
            if problem.is_row_redundant(row):
                continue
            lhs, rhs = problem.lhs[row], problem.rhs[row]
            size = problem.matrix.row_size(row)
            if size == 0:
                if num.is_feas_gt(lhs, 0.0) or num.is_feas_lt(rhs, 0.0):
                    return INFEASIBLE
                self.mark_row_redundant(row, substitute_singletons=False)
                status = REDUCED
            elif isinf(lhs) and isinf(rhs):
                self.mark_row_redundant(row, substitute_singletons=False)
                status = REDUCED
            elif size == 1:
                (col, a), = problem.matrix.get_row_entries(row)
                if a > 0:
                    new_lb, new_ub = lhs / a, rhs / a
                else:
                    new_lb, new_ub = rhs / a, lhs / a
                lb_status = self.change_col_lb(col, new_lb, row, a)
                if lb_status in TERMINAL_STATUS:
                    return INFEASIBLE
                ub_status = UNCHANGED
                if not problem.is_col_eliminated(col):
                    ub_status = self.change_col_ub(col, new_ub, row, a)
                    if ub_status in TERMINAL_STATUS:
                        return INFEASIBLE
                if REDUCED in (lb_status, ub_status):
                    status = REDUCED
                # a huge side is not moved to the bounds, the row then stays
                if problem.is_col_eliminated(col) or self._bounds_imply(col, new_lb, new_ub):
                    self.mark_row_redundant(row, substitute_singletons=False)
                    status = REDUCED
            elif row_gcd_infeasible(problem, row, num):
                return INFEASIBLE
        return status

    def _bounds_imply(self, col, lb, ub):
        """True if the bounds of col lie within [lb, ub]"""
        problem, num = self.problem, self.num
        return (isinf(lb) or num.is_feas_ge(problem.lower_bounds[col], lb)) and \
            (isinf(ub) or num.is_feas_le(problem.upper_bounds[col], ub))

    # ====================================================
    # Queries and finalization
    # ====================================================
    def get_singleton_cols_count(self) -> int:
        problem = self.problem
        return sum(1 for col in range(problem.get_n_cols())
                   if not problem.is_col_eliminated(col) and problem.matrix.col_size(col) == 1)

    def compress(self):
        """Build the compact reduced problem and close the postsolve storage

        Returns:
            (Problem):
                The reduced problem containing only active rows and columns.
        """
        problem = self.problem
        rows, cols = problem.active_rows(), problem.active_cols()
        self.postsolve.store_reduced_bounds_and_cost(problem, rows, cols)
        reduced = problem.extract(rows, cols)
        self.postsolve.compress(rows, cols)
        logging.info('Reduced problem has ' + str(len(rows)) + ' rows, ' + str(len(cols)) + ' columns and ' +
                     str(reduced.get_nnz()) + ' nonzeros.')
        return reduced
