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
"""Problem model: sparse constraint matrix with row and column views, bounds, objective and flags"""

from enum import IntFlag
from numpy import isinf, array
from scipy import sparse
import numpy as np


class ColFlag(IntFlag):
    """Column flags"""
    NONE = 0
    LB_INF = 1
    UB_INF = 2
    INTEGRAL = 4
    IMPLIED_INTEGRAL = 8
    FIXED = 16
    SUBSTITUTED = 32
    INACTIVE = FIXED | SUBSTITUTED


class RowFlag(IntFlag):
    """Row flags"""
    NONE = 0
    LHS_INF = 1
    RHS_INF = 2
    REDUNDANT = 4
    EQUATION = 8


def row_flags_for(lhs, rhs) -> RowFlag:
    flags = RowFlag.NONE
    if isinf(lhs):
        flags |= RowFlag.LHS_INF
    if isinf(rhs):
        flags |= RowFlag.RHS_INF
    if not isinf(lhs) and lhs == rhs:
        flags |= RowFlag.EQUATION
    return flags


def col_flags_for(lb, ub, integral=False) -> ColFlag:
    flags = ColFlag.NONE
    if isinf(lb):
        flags |= ColFlag.LB_INF
    if isinf(ub):
        flags |= ColFlag.UB_INF
    if integral:
        flags |= ColFlag.INTEGRAL
    return flags


class ConstraintMatrix:
    """Sparse constraint matrix lhs <= A x <= rhs

    The nonzeros are held twice, in a row-major and a column-major view, both
    as one dict per row (column -> coefficient) and one dict per column
    (row -> coefficient). Every change goes through change_entry so that both
    views always describe the same matrix. Row slots are never reused, a
    redundant row keeps its slot with degree 0.

    Args:
        A (scipy.sparse matrix):
            Coefficient matrix of shape (nrows, ncols).

        lhs, rhs (list of float):
            Row sides. -inf/inf for missing sides.
    """

    def __init__(self, A, lhs, rhs):
        A = sparse.csr_matrix(A, dtype=float)
        A.sum_duplicates()
        A.eliminate_zeros()
        self.nrows, self.ncols = A.shape
        if len(lhs) != self.nrows or len(rhs) != self.nrows:
            raise ValueError('Number of row sides does not match the number of matrix rows.')
        self.rows = [dict() for _ in range(self.nrows)]
        self.cols = [dict() for _ in range(self.ncols)]
        for i in range(self.nrows):
            for k in range(A.indptr[i], A.indptr[i + 1]):
                j = int(A.indices[k])
                self.rows[i][j] = float(A.data[k])
                self.cols[j][i] = float(A.data[k])
        self.lhs = array(lhs, dtype=float)
        self.rhs = array(rhs, dtype=float)
        self.row_flags = [row_flags_for(l, r) for l, r in zip(self.lhs, self.rhs)]

    def get_row_entries(self, row):
        """Sorted (column, value) pairs of a row"""
        return sorted(self.rows[row].items())

    def get_col_entries(self, col):
        """Sorted (row, value) pairs of a column"""
        return sorted(self.cols[col].items())

    def row_size(self, row) -> int:
        return len(self.rows[row])

    def col_size(self, col) -> int:
        return len(self.cols[col])

    def get_row_sizes(self):
        return [len(r) for r in self.rows]

    def get_col_sizes(self):
        return [len(c) for c in self.cols]

    def get_value(self, row, col) -> float:
        return self.rows[row].get(col, 0.0)

    def nnz(self) -> int:
        return sum(len(r) for r in self.rows)

    def change_entry(self, row, col, value):
        """Set a coefficient, a value of zero deletes the entry"""
        if value == 0.0:
            self.rows[row].pop(col, None)
            self.cols[col].pop(row, None)
        else:
            self.rows[row][col] = value
            self.cols[col][row] = value

    def remove_row_entries(self, row):
        for col in self.rows[row]:
            del self.cols[col][row]
        self.rows[row] = dict()

    def remove_col_entries(self, col):
        for row in self.cols[col]:
            del self.rows[row][col]
        self.cols[col] = dict()

    def set_lhs(self, row, value):
        self.lhs[row] = value
        self._update_side_flags(row)

    def set_rhs(self, row, value):
        self.rhs[row] = value
        self._update_side_flags(row)

    def _update_side_flags(self, row):
        redundant = self.row_flags[row] & RowFlag.REDUNDANT
        self.row_flags[row] = row_flags_for(self.lhs[row], self.rhs[row]) | redundant

    def is_row_redundant(self, row) -> bool:
        return bool(self.row_flags[row] & RowFlag.REDUNDANT)

    def to_csr(self, rows=None, cols=None):
        """Export (a submatrix of) the matrix to scipy.sparse csr format

        Args:
            rows, cols (list of int):
                Row and column indices to keep, in the order of the result.
                All rows/columns are kept if not given.

        Returns:
            (scipy.sparse.csr_matrix):
                Matrix of shape (len(rows), len(cols)).
        """
        if rows is None:
            rows = range(self.nrows)
        if cols is None:
            cols = range(self.ncols)
        col_pos = {c: k for k, c in enumerate(cols)}
        data, ri, ci = [], [], []
        for k, i in enumerate(rows):
            for j, v in self.rows[i].items():
                if j in col_pos:
                    data.append(v)
                    ri.append(k)
                    ci.append(col_pos[j])
        return sparse.csr_matrix((data, (ri, ci)), shape=(len(rows), len(col_pos)))


class Problem:
    """Linear or mixed-integer problem

    min  c^T x + offset
    s.t. lhs <= A x <= rhs
         lb <= x <= ub
         x_j integral for integral columns

    Args:
        objective (list of float):
            Objective coefficients c.

        A (scipy.sparse matrix):
            Constraint matrix.

        lhs, rhs (list of float):
            Row sides, use -inf/inf for one-sided rows.

        lb, ub (list of float):
            Column bounds, use -inf/inf for unbounded columns.

        integral (list of bool):
            (Optional) Integrality of the columns.

        offset (float):
            (Optional) Constant objective offset.

        name (str), col_names (list of str), row_names (list of str):
            (Optional) Names of the problem, the columns and the rows.
    """

    def __init__(self,
                 objective,
                 A,
                 lhs,
                 rhs,
                 lb,
                 ub,
                 integral=None,
                 offset=0.0,
                 name='',
                 col_names=None,
                 row_names=None):
        self.matrix = ConstraintMatrix(A, lhs, rhs)
        ncols = self.matrix.ncols
        if len(objective) != ncols or len(lb) != ncols or len(ub) != ncols:
            raise ValueError('Objective and bound vectors must have one entry per matrix column.')
        if integral is None:
            integral = [False] * ncols
        self.name = name
        self.objective = array(objective, dtype=float)
        self.objective_offset = float(offset)
        self.lower_bounds = array(lb, dtype=float)
        self.upper_bounds = array(ub, dtype=float)
        self.col_flags = [col_flags_for(l, u, i) for l, u, i in zip(self.lower_bounds, self.upper_bounds, integral)]
        self.col_names = list(col_names) if col_names is not None else ['x' + str(j) for j in range(ncols)]
        self.row_names = list(row_names) if row_names is not None else ['c' + str(i) for i in range(self.matrix.nrows)]

    # sizes
    def get_n_rows(self) -> int:
        return self.matrix.nrows

    def get_n_cols(self) -> int:
        return self.matrix.ncols

    def get_nnz(self) -> int:
        return self.matrix.nnz()

    def get_num_integral_cols(self) -> int:
        return sum(1 for f in self.col_flags if f & ColFlag.INTEGRAL and not f & ColFlag.INACTIVE)

    def get_num_continuous_cols(self) -> int:
        return sum(1 for f in self.col_flags if not f & ColFlag.INTEGRAL and not f & ColFlag.INACTIVE)

    def get_row_sizes(self):
        return self.matrix.get_row_sizes()

    def get_col_sizes(self):
        return self.matrix.get_col_sizes()

    @property
    def lhs(self):
        return self.matrix.lhs

    @property
    def rhs(self):
        return self.matrix.rhs

    @property
    def row_flags(self):
        return self.matrix.row_flags

    # flags
    def is_integral(self, col) -> bool:
        return bool(self.col_flags[col] & (ColFlag.INTEGRAL | ColFlag.IMPLIED_INTEGRAL))

    def is_col_eliminated(self, col) -> bool:
        return bool(self.col_flags[col] & ColFlag.INACTIVE)

    def is_col_substituted(self, col) -> bool:
        return bool(self.col_flags[col] & ColFlag.SUBSTITUTED)

    def is_col_fixed(self, col) -> bool:
        return bool(self.col_flags[col] & ColFlag.FIXED)

    def is_row_redundant(self, row) -> bool:
        return self.matrix.is_row_redundant(row)

    def is_row_equation(self, row) -> bool:
        return bool(self.matrix.row_flags[row] & RowFlag.EQUATION)

    def active_cols(self):
        return [j for j in range(self.matrix.ncols) if not self.is_col_eliminated(j)]

    def active_rows(self):
        return [i for i in range(self.matrix.nrows) if not self.is_row_redundant(i)]

    # modifications
    def set_col_lb(self, col, value):
        self.lower_bounds[col] = value
        if isinf(value):
            self.col_flags[col] |= ColFlag.LB_INF
        else:
            self.col_flags[col] &= ~ColFlag.LB_INF

    def set_col_ub(self, col, value):
        self.upper_bounds[col] = value
        if isinf(value):
            self.col_flags[col] |= ColFlag.UB_INF
        else:
            self.col_flags[col] &= ~ColFlag.UB_INF

    def modify_row_lhs(self, row, value):
        self.matrix.set_lhs(row, value)

    def modify_row_rhs(self, row, value):
        self.matrix.set_rhs(row, value)

    def compute_row_activity(self, row, skip_col=None):
        """Minimal and maximal activity of a row over the column bounds

        Returns:
            (tuple):
                (min_activity, max_activity, n_inf_min, n_inf_max) where the activities
                sum only the finite contributions and n_inf_* count the infinite ones.
        """
        minact, maxact, ninfmin, ninfmax = 0.0, 0.0, 0, 0
        for col, val in self.matrix.rows[row].items():
            if col == skip_col:
                continue
            lb, ub = self.lower_bounds[col], self.upper_bounds[col]
            if val > 0:
                lo, hi = lb, ub
            else:
                lo, hi = ub, lb
            if isinf(lo):
                ninfmin += 1
            else:
                minact += val * lo
            if isinf(hi):
                ninfmax += 1
            else:
                maxact += val * hi
        return minact, maxact, ninfmin, ninfmax

    def primal_activities(self, x):
        return array([sum(v * x[j] for j, v in r.items()) for r in self.matrix.rows])

    def is_primal_feasible(self, x, tol=1e-6) -> bool:
        """Check bounds, row sides and integrality of a solution vector"""
        x = np.asarray(x, dtype=float)
        if len(x) != self.matrix.ncols:
            return False
        if np.any(x < self.lower_bounds - tol) or np.any(x > self.upper_bounds + tol):
            return False
        for j, f in enumerate(self.col_flags):
            if f & ColFlag.INTEGRAL and abs(x[j] - round(x[j])) > tol:
                return False
        act = self.matrix.to_csr().dot(x)
        return bool(np.all(act >= self.matrix.lhs - tol) and np.all(act <= self.matrix.rhs + tol))

    def objective_value(self, x) -> float:
        return float(np.dot(self.objective, x)) + self.objective_offset

    def extract(self, rows, cols):
        """Build a new compact problem from a subset of rows and columns

        Flags of the kept rows and columns are carried over apart from the
        elimination flags, which do not apply to kept entries.
        """
        rows, cols = list(rows), list(cols)
        sub = Problem(self.objective[cols],
                      self.matrix.to_csr(rows, cols),
                      self.matrix.lhs[rows],
                      self.matrix.rhs[rows],
                      self.lower_bounds[cols],
                      self.upper_bounds[cols],
                      offset=self.objective_offset,
                      name=self.name,
                      col_names=[self.col_names[j] for j in cols],
                      row_names=[self.row_names[i] for i in rows])
        sub.col_flags = [self.col_flags[j] & ~ColFlag.INACTIVE for j in cols]
        sub.matrix.row_flags = [self.matrix.row_flags[i] & ~RowFlag.REDUNDANT for i in rows]
        return sub

    def copy(self):
        cp = self.extract(range(self.matrix.nrows), range(self.matrix.ncols))
        cp.col_flags = list(self.col_flags)
        cp.matrix.row_flags = list(self.matrix.row_flags)
        return cp

    def __repr__(self):
        return 'Problem(' + repr(self.name) + ', rows=' + str(self.matrix.nrows) + ', cols=' + str(
            self.matrix.ncols) + ', nnz=' + str(self.get_nnz()) + ')'
