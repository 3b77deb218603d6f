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
"""Postsolve engine: recover a solution of the original problem from a solution of the reduced problem

The engine copies the reduced solution into original index space through the
mapping tables of the PostsolveStorage and then undoes the stored records in
reverse order, the last reduction first. Reductions are not commutative, a
substituted column depends on values of columns that were still present when
it was substituted and that are therefore recovered before it.

Records of row side changes, saved rows, coefficient changes and the reduced
bounds and costs only have their payload checked. The engine keeps no row
sides or coefficients of its own, primal and dual values follow from the other
records and the basis status is computed from the original problem, so
restoring the previous row state would change nothing that is returned.

A structurally broken storage (payload outside the arrays, unknown record
type, index out of range) or a solution that does not fit the storage ends
postsolve with status ERROR and no solution.
"""

from enum import Enum
from numpy import isinf
from presolvekit.names import OK, ERROR
from presolvekit.num import Num
from presolvekit.postsolve_storage import PostsolveStorageError, ReductionType, BOUND_IS_LOWER
from presolvekit.problem import ColFlag
from presolvekit.solution import Solution, VarBasisStatus
import numpy as np
import logging


# smallest payload of every record kind, checked before a record is decoded
MIN_SLOTS = {
    ReductionType.FIXED_COL: 1,
    ReductionType.SUBSTITUTED_COL_WITH_DUAL: 4,
    ReductionType.SUBSTITUTED_COL: 1,
    ReductionType.PARALLEL_COL: 5,
    ReductionType.FIXED_INF_COL: 2,
    ReductionType.VAR_BOUND_CHANGE: 3,
    ReductionType.REDUNDANT_ROW: 1,
    ReductionType.ROW_BOUND_CHANGE: 2,
    ReductionType.REASON_FOR_ROW_BOUND_CHANGE_FORCED_BY_ROW: 2,
    ReductionType.ROW_BOUND_CHANGE_FORCED_BY_ROW: 2,
    ReductionType.SAVE_ROW: 3,
    ReductionType.REDUCED_BOUNDS_COST: 2,
    ReductionType.COLUMN_DUAL_VALUE: 1,
    ReductionType.ROW_DUAL_VALUE: 1,
    ReductionType.COEFFICIENT_CHANGE: 2,
    ReductionType.REPLACED_COL: 2,
}


class PostsolveState(Enum):
    READY_TO_UNDO = 'ready_to_undo'
    REPLAYING = 'replaying'
    DONE = 'done'
    FAILED = 'failed'


class _Values:
    """Original space vectors that are filled while replaying"""

    def __init__(self, storage, with_duals):
        self.x = np.zeros(storage.n_cols_original)
        self.with_duals = with_duals
        if with_duals:
            self.d = np.zeros(storage.n_cols_original)
            self.y = np.zeros(storage.n_rows_original)


class Postsolve:
    """Undo presolve on solutions of the reduced problem

    Args:
        num (Num):
            (Optional) Tolerance service used for integrality rounding and basis status.

    Example:
        status, solution = Postsolve().undo(Solution(x_reduced), result.postsolve)
    """

    def __init__(self, num=None):
        self.num = num if num is not None else Num()
        self.state = PostsolveState.READY_TO_UNDO
        self._handlers = {
            ReductionType.FIXED_COL: self._undo_fixed_col,
            ReductionType.SUBSTITUTED_COL: self._undo_substituted_col,
            ReductionType.SUBSTITUTED_COL_WITH_DUAL: self._undo_substituted_col_with_dual,
            ReductionType.PARALLEL_COL: self._undo_parallel_col,
            ReductionType.FIXED_INF_COL: self._undo_fixed_inf_col,
            ReductionType.VAR_BOUND_CHANGE: self._undo_var_bound_change,
            ReductionType.REDUNDANT_ROW: self._undo_redundant_row,
            ReductionType.ROW_BOUND_CHANGE: self._check_row_bound_change,
            ReductionType.REASON_FOR_ROW_BOUND_CHANGE_FORCED_BY_ROW: self._check_reason,
            ReductionType.ROW_BOUND_CHANGE_FORCED_BY_ROW: self._undo_row_bound_change_forced,
            ReductionType.SAVE_ROW: self._check_saved_row,
            ReductionType.REDUCED_BOUNDS_COST: self._check_reduced_bounds_cost,
            ReductionType.COLUMN_DUAL_VALUE: self._undo_col_dual_value,
            ReductionType.ROW_DUAL_VALUE: self._undo_row_dual_value,
            ReductionType.COEFFICIENT_CHANGE: self._check_coefficient_change,
            ReductionType.REPLACED_COL: self._undo_replaced_col,
        }

    def undo(self, reduced_solution, storage):
        """Recover the original space solution

        Args:
            reduced_solution (Solution):
                Solution of the reduced problem. Duals are recovered only if the
                solution carries them and the storage was written in FULL mode.

            storage (PostsolveStorage):
                Records of the presolve session. It is only read.

        Returns:
            (tuple):
                (status, solution), with status OK and the original space Solution,
                or status ERROR and None.
        """
        return self.replay(reduced_solution, storage, reversed(range(len(storage))))

    def replay(self, reduced_solution, storage, order):
        """Undo the records of the storage in the given order of record indices"""
        self.state = PostsolveState.REPLAYING
        try:
            storage.check_consistency()
            values = self._setup(reduced_solution, storage)
            for i in order:
                record = storage.get_record(i)
                if len(record.indices) < MIN_SLOTS[record.type]:
                    raise PostsolveStorageError('Record ' + str(i) + ' of type ' + record.type.name +
                                                ' has a truncated payload.')
                self._handlers[record.type](i, record, storage, values)
            solution = self._finish(values, storage)
        except PostsolveStorageError as e:
            logging.error('Postsolve failed: ' + str(e))
            self.state = PostsolveState.FAILED
            return ERROR, None
        self.state = PostsolveState.DONE
        logging.info('Postsolve recovered a solution with ' + str(storage.n_cols_original) + ' columns from ' +
                     str(len(storage)) + ' records.')
        return OK, solution

    def _setup(self, reduced_solution, storage):
        if len(reduced_solution.primal) != storage.n_cols_reduced:
            raise PostsolveStorageError('Solution has ' + str(len(reduced_solution.primal)) + ' values, the reduced '
                                        'problem has ' + str(storage.n_cols_reduced) + ' columns.')
        with_duals = reduced_solution.col_duals is not None
        if with_duals and not storage.is_full():
            logging.warning('Postsolve storage holds primal records only, dual values are not recovered.')
            with_duals = False
        values = _Values(storage, with_duals)
        cols = storage.orig_col_mapping[:storage.n_cols_reduced]
        values.x[cols] = reduced_solution.primal
        if with_duals:
            if len(reduced_solution.col_duals) != storage.n_cols_reduced or \
                    len(reduced_solution.row_duals) != storage.n_rows_reduced:
                raise PostsolveStorageError('Dual values do not match the reduced problem.')
            values.d[cols] = reduced_solution.col_duals
            values.y[storage.orig_row_mapping[:storage.n_rows_reduced]] = reduced_solution.row_duals
        return values

    def _finish(self, values, storage):
        if not values.with_duals:
            return Solution(values.x)
        num, problem = self.num, storage.original_problem
        col_basis = []
        for j, x in enumerate(values.x):
            lb, ub = problem.lower_bounds[j], problem.upper_bounds[j]
            if num.is_eq(lb, ub):
                col_basis.append(VarBasisStatus.FIXED)
            elif num.is_feas_eq(x, lb):
                col_basis.append(VarBasisStatus.ON_LOWER)
            elif num.is_feas_eq(x, ub):
                col_basis.append(VarBasisStatus.ON_UPPER)
            elif isinf(lb) and isinf(ub) and num.is_feas_zero(x):
                col_basis.append(VarBasisStatus.ZERO)
            else:
                col_basis.append(VarBasisStatus.BASIC)
        row_basis = []
        for i, act in enumerate(problem.primal_activities(values.x)):
            lhs, rhs = problem.lhs[i], problem.rhs[i]
            if num.is_eq(lhs, rhs):
                row_basis.append(VarBasisStatus.FIXED)
            elif num.is_feas_eq(act, lhs) and not num.is_feas_zero(values.y[i]):
                row_basis.append(VarBasisStatus.ON_LOWER)
            elif num.is_feas_eq(act, rhs) and not num.is_feas_zero(values.y[i]):
                row_basis.append(VarBasisStatus.ON_UPPER)
            else:
                row_basis.append(VarBasisStatus.BASIC)
        return Solution(values.x, values.d, values.y, col_basis, row_basis)

    # ====================================================
    # Payload checks
    # ====================================================
    def _expect_length(self, i, record, n):
        if len(record.indices) != n:
            raise PostsolveStorageError('Record ' + str(i) + ' of type ' + record.type.name + ' has ' +
                                        str(len(record.indices)) + ' payload slots, expected ' + str(n) + '.')

    def _col(self, storage, col):
        if not 0 <= col < storage.n_cols_original:
            raise PostsolveStorageError('Column index ' + str(col) + ' out of range.')
        return int(col)

    def _row(self, storage, row):
        if not 0 <= row < storage.n_rows_original:
            raise PostsolveStorageError('Row index ' + str(row) + ' out of range.')
        return int(row)

    def _count(self, record, pos):
        if pos >= len(record.indices) or record.indices[pos] < 0:
            raise PostsolveStorageError('Record of type ' + record.type.name + ' has an invalid length slot.')
        return int(record.indices[pos])

    def _entries(self, storage, record, first, n, is_col):
        if first + n > len(record.indices):
            raise PostsolveStorageError('Entries of a ' + record.type.name + ' record exceed its payload.')
        check = self._col if is_col else self._row
        return [(check(storage, record.indices[k]), float(record.values[k])) for k in range(first, first + n)]

    def _dual_activity(self, values, col_entries):
        return sum(a * values.y[r] for r, a in col_entries)

    # ====================================================
    # Column records
    # ====================================================
    def _undo_fixed_col(self, i, record, storage, values):
        col = self._col(storage, record.indices[0])
        values.x[col] = record.values[0]
        if storage.is_full():
            n = self._count(record, 1)
            self._expect_length(i, record, 2 + n)
            if values.with_duals:
                entries = self._entries(storage, record, 2, n, False)
                values.d[col] = record.values[1] - self._dual_activity(values, entries)
        else:
            self._expect_length(i, record, 1)

    def _solve_row_for_col(self, i, col, side, row_entries, values):
        a_col, activity = 0.0, 0.0
        for j, a in row_entries:
            if j == col:
                a_col = a
            else:
                activity += a * values.x[j]
        if a_col == 0.0:
            raise PostsolveStorageError('Record ' + str(i) + ' does not contain column ' + str(col) +
                                        ' in its defining row.')
        return (side - activity) / a_col, a_col

    def _undo_substituted_col(self, i, record, storage, values):
        col = self._col(storage, record.indices[0])
        entries = self._entries(storage, record, 1, len(record.indices) - 1, True)
        values.x[col], _ = self._solve_row_for_col(i, col, record.values[0], entries, values)

    def _undo_substituted_col_with_dual(self, i, record, storage, values):
        col = self._col(storage, record.indices[0])
        row = self._row(storage, record.indices[1])
        cost = record.values[1]
        rowlen = self._count(record, 2)
        row_kept = record.values[2] != 0.0
        row_entries = self._entries(storage, record, 3, rowlen, True)
        collen = self._count(record, 3 + rowlen)
        self._expect_length(i, record, 4 + rowlen + collen)
        col_entries = self._entries(storage, record, 4 + rowlen, collen, False)
        values.x[col], a_col = self._solve_row_for_col(i, col, record.values[0], row_entries, values)
        if not values.with_duals:
            return
        if row_kept:
            values.d[col] = cost - self._dual_activity(values, col_entries)
        else:
            others = [(r, a) for r, a in col_entries if r != row]
            values.y[row] = (cost - self._dual_activity(values, others)) / a_col
            values.d[col] = 0.0

    def _undo_parallel_col(self, i, record, storage, values):
        self._expect_length(i, record, 5)
        num = self.num
        col = self._col(storage, record.indices[0])
        rem = self._col(storage, record.indices[2])
        lb_c, ub_c = record.values[0], record.values[1]
        lb_r, ub_r = record.values[2], record.values[3]
        scale = record.values[4]
        integral = bool(record.indices[1] & ColFlag.INTEGRAL)
        merged = values.x[rem]
        if scale > 0:
            lo, hi = (merged - ub_r) / scale, (merged - lb_r) / scale
        else:
            lo, hi = (merged - lb_r) / scale, (merged - ub_r) / scale
        lo, hi = max(lo, lb_c), min(hi, ub_c)
        if integral:
            lo, hi = num.feas_ceil(lo), num.feas_floor(hi)
        x_col = min(max(0.0, lo), hi)
        values.x[col] = x_col
        values.x[rem] = merged - scale * x_col
        if values.with_duals:
            values.d[col] = scale * values.d[rem]

    def _undo_fixed_inf_col(self, i, record, storage, values):
        num = self.num
        col = self._col(storage, record.indices[0])
        direction = record.values[0]
        nrows = self._count(record, 1)
        bound = record.values[1]
        candidates = [] if isinf(bound) else [bound]
        rows = []
        pos = 2
        for _ in range(nrows):
            if pos + 3 > len(record.indices):
                raise PostsolveStorageError('Record ' + str(i) + ' has a truncated payload.')
            row = self._row(storage, record.indices[pos])
            lhs, rhs = record.values[pos], record.values[pos + 1]
            n = self._count(record, pos + 2)
            entries = self._entries(storage, record, pos + 3, n, True)
            pos += 3 + n
            rows.append(row)
            a_col, activity = 0.0, 0.0
            for j, a in entries:
                if j == col:
                    a_col = a
                else:
                    activity += a * values.x[j]
            if a_col == 0.0:
                raise PostsolveStorageError('Record ' + str(i) + ' lists a row without the fixed column.')
            side = lhs if (a_col > 0) == (direction > 0) else rhs
            if not isinf(side):
                candidates.append((side - activity) / a_col)
        self._expect_length(i, record, pos)
        if not candidates:
            value = 0.0
        elif direction > 0:
            value = max(candidates)
        else:
            value = min(candidates)
        if storage.original_problem.is_integral(col):
            value = num.feas_ceil(value) if direction > 0 else num.feas_floor(value)
        values.x[col] = value
        if values.with_duals:
            values.d[col] = 0.0
            values.y[rows] = 0.0

    def _undo_replaced_col(self, i, record, storage, values):
        col = self._col(storage, record.indices[0])
        rep = self._col(storage, record.indices[1])
        scale, offset = record.values[0], record.values[1]
        values.x[col] = scale * values.x[rep] + offset
        if storage.is_full():
            n = self._count(record, 2)
            self._expect_length(i, record, 3 + n)
            if values.with_duals:
                entries = self._entries(storage, record, 3, n, False)
                d_col = record.values[2] - self._dual_activity(values, entries)
                values.d[col] = d_col
                values.d[rep] -= scale * d_col
        else:
            self._expect_length(i, record, 2)

    def _undo_var_bound_change(self, i, record, storage, values):
        self._expect_length(i, record, 3)
        col = self._col(storage, record.indices[0])
        reason_row = int(record.indices[2])
        if reason_row < 0 or not values.with_duals:
            return
        reason_row = self._row(storage, reason_row)
        num = self.num
        new, old = record.values[0], record.values[1]
        is_lower = bool(record.indices[1] & BOUND_IS_LOWER)
        d = values.d[col]
        if not num.is_feas_eq(values.x[col], new) or (not isinf(old) and num.is_eq(new, old)):
            return
        if (is_lower and num.is_gt(d, 0.0)) or (not is_lower and num.is_lt(d, 0.0)):
            values.y[reason_row] += d / record.values[2]
            values.d[col] = 0.0

    def _undo_col_dual_value(self, i, record, storage, values):
        self._expect_length(i, record, 1)
        col = self._col(storage, record.indices[0])
        if values.with_duals:
            values.d[col] += record.values[0]

    # ====================================================
    # Row records
    # ====================================================
    def _undo_redundant_row(self, i, record, storage, values):
        self._expect_length(i, record, 1)
        row = self._row(storage, record.indices[0])
        if values.with_duals:
            values.y[row] = 0.0

    def _undo_row_dual_value(self, i, record, storage, values):
        self._expect_length(i, record, 1)
        row = self._row(storage, record.indices[0])
        if values.with_duals:
            values.y[row] += record.values[0]

    def _check_row_bound_change(self, i, record, storage, values):
        self._expect_length(i, record, 2)
        self._row(storage, record.indices[0])

    def _check_reason(self, i, record, storage, values):
        self._expect_length(i, record, 2)
        self._row(storage, record.indices[0])
        self._row(storage, record.indices[1])

    def _undo_row_bound_change_forced(self, i, record, storage, values):
        """Move the dual of the tightened side to the row it came from"""
        self._expect_length(i, record, 2)
        row = self._row(storage, record.indices[0])
        if i == 0 or storage.get_record(i - 1).type != ReductionType.REASON_FOR_ROW_BOUND_CHANGE_FORCED_BY_ROW:
            raise PostsolveStorageError('Forced row bound change ' + str(i) + ' is not preceded by its reason.')
        reason = storage.get_record(i - 1)
        self._expect_length(i - 1, reason, 2)
        if self._row(storage, reason.indices[0]) != row:
            raise PostsolveStorageError('Forced row bound change ' + str(i) + ' does not match its reason.')
        deleted = self._row(storage, reason.indices[1])
        factor = reason.values[0]
        if not values.with_duals:
            return
        is_lhs = bool(record.indices[1] & BOUND_IS_LOWER)
        y = values.y[row]
        if (is_lhs and self.num.is_gt(y, 0.0)) or (not is_lhs and self.num.is_lt(y, 0.0)):
            values.y[deleted] = y / factor
            values.y[row] = 0.0

    def _check_saved_row(self, i, record, storage, values):
        self._row(storage, record.indices[0])
        n = self._count(record, 2)
        self._expect_length(i, record, 3 + n)
        self._entries(storage, record, 3, n, True)

    def _check_reduced_bounds_cost(self, i, record, storage, values):
        ncols = self._count(record, 0)
        nrows = self._count(record, 1)
        self._expect_length(i, record, 2 + 3 * ncols + 2 * nrows)
        for k in range(ncols):
            self._col(storage, record.indices[2 + 3 * k])
        for k in range(nrows):
            self._row(storage, record.indices[2 + 3 * ncols + 2 * k])

    def _check_coefficient_change(self, i, record, storage, values):
        self._expect_length(i, record, 2)
        self._row(storage, record.indices[0])
        self._col(storage, record.indices[1])
