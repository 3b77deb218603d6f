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
"""Incremental construction of a Problem"""

from numpy import inf
from scipy import sparse
from presolvekit.problem import Problem


class ProblemBuilder:
    """Collect a problem column by column, row by row or entry by entry

    Columns default to continuous with bounds [0, inf), rows default to free
    (-inf, inf). Matrix entries given more than once for the same position
    are summed when the problem is built.

    Example:
        builder = ProblemBuilder()
        builder.set_num_cols(2)
        builder.set_num_rows(1)
        builder.add_row_entries(0, [0, 1], [1.0, 2.0])
        builder.set_row_rhs(0, 4.0)
        problem = builder.build()
    """

    def __init__(self):
        self.ncols = 0
        self.nrows = 0
        self.name = ''
        self.obj = []
        self.offset = 0.0
        self.lb = []
        self.ub = []
        self.integral = []
        self.lhs = []
        self.rhs = []
        self.col_names = []
        self.row_names = []
        self._entry_rows = []
        self._entry_cols = []
        self._entry_vals = []

    def reserve(self, nnz, nrows, ncols):
        """Kept for API compatibility, Python lists grow on demand"""
        if nnz < 0 or nrows < 0 or ncols < 0:
            raise ValueError('Sizes must be non-negative.')

    def set_num_cols(self, ncols):
        if ncols < self.ncols:
            del self.obj[ncols:], self.lb[ncols:], self.ub[ncols:], self.integral[ncols:], self.col_names[ncols:]
            self._drop_entries(lambda i, j: j < ncols)
        while len(self.obj) < ncols:
            j = len(self.obj)
            self.obj.append(0.0)
            self.lb.append(0.0)
            self.ub.append(inf)
            self.integral.append(False)
            self.col_names.append('x' + str(j))
        self.ncols = ncols

    def set_num_rows(self, nrows):
        if nrows < self.nrows:
            del self.lhs[nrows:], self.rhs[nrows:], self.row_names[nrows:]
            self._drop_entries(lambda i, j: i < nrows)
        while len(self.lhs) < nrows:
            self.lhs.append(-inf)
            self.rhs.append(inf)
            self.row_names.append('c' + str(len(self.row_names)))
        self.nrows = nrows

    def _drop_entries(self, keep):
        """Remove the matrix entries of rows or columns cut off by a smaller size"""
        kept = [(i, j, v) for i, j, v in zip(self._entry_rows, self._entry_cols, self._entry_vals) if keep(i, j)]
        self._entry_rows = [i for i, _, _ in kept]
        self._entry_cols = [j for _, j, _ in kept]
        self._entry_vals = [v for _, _, v in kept]

    def _check_col(self, col):
        if not 0 <= col < self.ncols:
            raise IndexError('Column index ' + str(col) + ' out of range.')

    def _check_row(self, row):
        if not 0 <= row < self.nrows:
            raise IndexError('Row index ' + str(row) + ' out of range.')

    def _check_all(self, values, n, what):
        if len(values) != n:
            raise ValueError('Expected ' + str(n) + ' values for ' + what + ', got ' + str(len(values)) + '.')

    # objective
    def set_obj(self, col, value):
        self._check_col(col)
        self.obj[col] = float(value)

    def set_obj_all(self, values):
        self._check_all(values, self.ncols, 'the objective')
        self.obj = [float(v) for v in values]

    def set_obj_offset(self, value):
        self.offset = float(value)

    # column bounds
    def set_col_lb(self, col, value):
        self._check_col(col)
        self.lb[col] = float(value)

    def set_col_lb_all(self, values):
        self._check_all(values, self.ncols, 'the lower bounds')
        self.lb = [float(v) for v in values]

    def set_col_lb_inf(self, col, is_inf=True):
        self._check_col(col)
        if is_inf:
            self.lb[col] = -inf

    def set_col_ub(self, col, value):
        self._check_col(col)
        self.ub[col] = float(value)

    def set_col_ub_all(self, values):
        self._check_all(values, self.ncols, 'the upper bounds')
        self.ub = [float(v) for v in values]

    def set_col_ub_inf(self, col, is_inf=True):
        self._check_col(col)
        if is_inf:
            self.ub[col] = inf

    def set_col_integral(self, col, is_integral=True):
        self._check_col(col)
        self.integral[col] = bool(is_integral)

    def set_col_integral_all(self, values):
        self._check_all(values, self.ncols, 'the integrality')
        self.integral = [bool(v) for v in values]

    # row sides
    def set_row_lhs(self, row, value):
        self._check_row(row)
        self.lhs[row] = float(value)

    def set_row_lhs_all(self, values):
        self._check_all(values, self.nrows, 'the left hand sides')
        self.lhs = [float(v) for v in values]

    def set_row_lhs_inf(self, row, is_inf=True):
        self._check_row(row)
        if is_inf:
            self.lhs[row] = -inf

    def set_row_rhs(self, row, value):
        self._check_row(row)
        self.rhs[row] = float(value)

    def set_row_rhs_all(self, values):
        self._check_all(values, self.nrows, 'the right hand sides')
        self.rhs = [float(v) for v in values]

    def set_row_rhs_inf(self, row, is_inf=True):
        self._check_row(row)
        if is_inf:
            self.rhs[row] = inf

    # matrix entries
    def add_entry(self, row, col, value):
        self._check_row(row)
        self._check_col(col)
        self._entry_rows.append(row)
        self._entry_cols.append(col)
        self._entry_vals.append(float(value))

    def add_entry_all(self, rows, cols, values):
        if not len(rows) == len(cols) == len(values):
            raise ValueError('Row, column and value lists must have the same length.')
        for i, j, v in zip(rows, cols, values):
            self.add_entry(i, j, v)

    def add_row_entries(self, row, cols, values):
        self._check_all(values, len(cols), 'the row entries')
        for j, v in zip(cols, values):
            self.add_entry(row, j, v)

    def add_col_entries(self, col, rows, values):
        self._check_all(values, len(rows), 'the column entries')
        for i, v in zip(rows, values):
            self.add_entry(i, col, v)

    # names
    def set_problem_name(self, name):
        self.name = str(name)

    def set_col_name(self, col, name):
        self._check_col(col)
        self.col_names[col] = str(name)

    def set_col_name_all(self, names):
        self._check_all(names, self.ncols, 'the column names')
        self.col_names = [str(n) for n in names]

    def set_row_name(self, row, name):
        self._check_row(row)
        self.row_names[row] = str(name)

    def set_row_name_all(self, names):
        self._check_all(names, self.nrows, 'the row names')
        self.row_names = [str(n) for n in names]

    def build(self) -> Problem:
        """Create the Problem, summing duplicate entries"""
        A = sparse.coo_matrix((self._entry_vals, (self._entry_rows, self._entry_cols)),
                              shape=(self.nrows, self.ncols)).tocsr()
        return Problem(self.obj,
                       A,
                       self.lhs,
                       self.rhs,
                       self.lb,
                       self.ub,
                       integral=self.integral,
                       offset=self.offset,
                       name=self.name,
                       col_names=self.col_names,
                       row_names=self.row_names)
