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
"""Reduction log: typed reduction records grouped into atomically committed transactions

Presolve methods propose changes to a problem by appending reductions to a
ReductionLog. Each reduction kind is its own immutable record type. Reductions
appended between begin_transaction() and end_transaction() stay invisible to
readers of the log until the transaction is committed, and are discarded if the
transaction is aborted or never ended.

    log = ReductionLog(problem)
    with log.transaction():
        log.lock_col_bounds(3)
        log.lock_row(1)
        log.aggregate_free_col(3, 1)
"""

from contextlib import contextmanager
from numbers import Integral
from typing import NamedTuple
import logging


class ReductionError(Exception):
    """A reduction violates the problem model, e.g. refers to a non-existing or eliminated index"""


# Column reductions
class ChangeColLB(NamedTuple):
    col: int
    value: float


class ChangeColUB(NamedTuple):
    col: int
    value: float


class FixCol(NamedTuple):
    col: int
    value: float


class FixColInfinity(NamedTuple):
    """Fix a column at -inf (direction -1) or +inf (direction 1), the rows it is in become redundant"""
    col: int
    direction: int


class ChangeColObj(NamedTuple):
    col: int
    value: float


class ImpliedInteger(NamedTuple):
    col: int


class LockCol(NamedTuple):
    col: int


class LockColBounds(NamedTuple):
    col: int


class SubstituteCol(NamedTuple):
    """Solve the equation row for col and eliminate col from the problem"""
    col: int
    row: int


class SubstituteColInObjective(NamedTuple):
    """Remove the objective coefficient of col using the equation row"""
    col: int
    row: int


class ReplaceCol(NamedTuple):
    """col = scale * replacement_col + offset"""
    col: int
    replacement_col: int
    scale: float
    offset: float


class ParallelCols(NamedTuple):
    """Column col is scale times column remaining_col, both merge into remaining_col"""
    col: int
    remaining_col: int
    scale: float


# Matrix reductions
class ChangeMatrixEntry(NamedTuple):
    row: int
    col: int
    value: float


# Row reductions
class ChangeRowLHS(NamedTuple):
    row: int
    value: float


class ChangeRowRHS(NamedTuple):
    row: int
    value: float


class ChangeRowLHSInf(NamedTuple):
    row: int


class ChangeRowRHSInf(NamedTuple):
    row: int


class ForcedRowBound(NamedTuple):
    """Side of row tightened to value because reason_row is factor times row"""
    row: int
    is_lhs: bool
    value: float
    reason_row: int
    factor: float


class MarkRowRedundant(NamedTuple):
    row: int


class LockRow(NamedTuple):
    row: int


COL_REDUCTIONS = (ChangeColLB, ChangeColUB, FixCol, FixColInfinity, ChangeColObj, ImpliedInteger, LockCol,
                  LockColBounds, SubstituteCol, SubstituteColInObjective, ReplaceCol, ParallelCols)
ROW_REDUCTIONS = (ChangeRowLHS, ChangeRowRHS, ChangeRowLHSInf, ChangeRowRHSInf, ForcedRowBound, MarkRowRedundant,
                  LockRow)
LOCKS = (LockCol, LockColBounds, LockRow)


class Transaction(NamedTuple):
    """Half-open range [start, end) of committed reductions"""
    start: int
    end: int
    nlocks: int
    naddcoeffs: int


def referenced_cols(reduction):
    """All column indices a reduction refers to"""
    if isinstance(reduction, ReplaceCol):
        return (reduction.col, reduction.replacement_col)
    if isinstance(reduction, ParallelCols):
        return (reduction.col, reduction.remaining_col)
    if isinstance(reduction, (ChangeMatrixEntry,) + COL_REDUCTIONS):
        return (reduction.col,)
    return ()


def referenced_rows(reduction):
    """All row indices a reduction refers to"""
    if isinstance(reduction, ForcedRowBound):
        return (reduction.row, reduction.reason_row)
    if isinstance(reduction, (ChangeMatrixEntry, SubstituteCol, SubstituteColInObjective) + ROW_REDUCTIONS):
        return (reduction.row,)
    return ()


class ReductionLog:
    """Append-only sequence of reductions with transaction index

    Args:
        problem (Problem):
            (Optional) Problem the reductions refer to. If given, every appended
            reduction is checked against its dimensions.

        nrows, ncols (int):
            (Optional) Dimensions to check against if no problem is given.
    """

    def __init__(self, problem=None, nrows=None, ncols=None):
        if problem is not None:
            nrows, ncols = problem.get_n_rows(), problem.get_n_cols()
        self.nrows = nrows
        self.ncols = ncols
        self._reductions = []
        self._transactions = []
        self._pending = None

    # transaction handling
    def begin_transaction(self):
        if self._pending is not None:
            raise ReductionError('Transactions cannot be nested.')
        self._pending = []

    def end_transaction(self):
        """Commit the open transaction, its reductions become visible at once"""
        if self._pending is None:
            raise ReductionError('No transaction to end.')
        pending, self._pending = self._pending, None
        if not pending:
            return None
        start = len(self._reductions)
        self._reductions.extend(pending)
        tsx = Transaction(start, len(self._reductions), sum(1 for r in pending if isinstance(r, LOCKS)),
                          sum(1 for r in pending if isinstance(r, ChangeMatrixEntry)))
        self._transactions.append(tsx)
        return tsx

    def abort_transaction(self):
        if self._pending is None:
            raise ReductionError('No transaction to abort.')
        logging.debug('Discarding ' + str(len(self._pending)) + ' uncommitted reductions.')
        self._pending = None

    def in_transaction(self) -> bool:
        return self._pending is not None

    @contextmanager
    def transaction(self):
        """Commit on normal exit, discard on exception"""
        self.begin_transaction()
        try:
            yield self
        except BaseException:
            self.abort_transaction()
            raise
        self.end_transaction()

    def _check_index(self, index, size, what):
        if not isinstance(index, Integral) or isinstance(index, bool):
            raise ReductionError(what + ' index must be an integer, got ' + repr(index) + '.')
        if index < 0 or (size is not None and index >= size):
            raise ReductionError(what + ' index ' + str(index) + ' out of range.')

    def append(self, reduction):
        """Append any reduction record, provisionally while a transaction is open"""
        for col in referenced_cols(reduction):
            self._check_index(col, self.ncols, 'Column')
        for row in referenced_rows(reduction):
            self._check_index(row, self.nrows, 'Row')
        if self._pending is not None:
            self._pending.append(reduction)
        else:
            self._reductions.append(reduction)
        return reduction

    # column reductions
    def change_col_lb(self, col, value):
        return self.append(ChangeColLB(col, float(value)))

    def change_col_ub(self, col, value):
        return self.append(ChangeColUB(col, float(value)))

    def fix_col(self, col, value):
        return self.append(FixCol(col, float(value)))

    def fix_col_positive_infinity(self, col):
        return self.append(FixColInfinity(col, 1))

    def fix_col_negative_infinity(self, col):
        return self.append(FixColInfinity(col, -1))

    def change_col_obj(self, col, value):
        return self.append(ChangeColObj(col, float(value)))

    def implied_integer(self, col):
        return self.append(ImpliedInteger(col))

    def lock_col(self, col):
        return self.append(LockCol(col))

    def lock_col_bounds(self, col):
        return self.append(LockColBounds(col))

    def replace_col(self, col, replacement_col, scale, offset):
        """col = scale * replacement_col + offset"""
        if col == replacement_col:
            raise ReductionError('Column ' + str(col) + ' cannot replace itself.')
        if scale == 0:
            raise ReductionError('Scale of a column replacement must be nonzero.')
        return self.append(ReplaceCol(col, replacement_col, float(scale), float(offset)))

    def substitute_col_in_objective(self, col, row):
        return self.append(SubstituteColInObjective(col, row))

    def aggregate_free_col(self, col, row):
        """Eliminate col by the equation row, which becomes redundant"""
        return self.append(SubstituteCol(col, row))

    def substitute_col(self, col, row):
        return self.append(SubstituteCol(col, row))

    def mark_parallel_cols(self, col, remaining_col, scale):
        if col == remaining_col:
            raise ReductionError('Column ' + str(col) + ' cannot be parallel to itself.')
        if scale == 0:
            raise ReductionError('Scale of parallel columns must be nonzero.')
        return self.append(ParallelCols(col, remaining_col, float(scale)))

    # matrix reductions
    def change_matrix_entry(self, row, col, value):
        return self.append(ChangeMatrixEntry(row, col, float(value)))

    # row reductions
    def change_row_lhs(self, row, value):
        return self.append(ChangeRowLHS(row, float(value)))

    def change_row_rhs(self, row, value):
        return self.append(ChangeRowRHS(row, float(value)))

    def change_row_lhs_inf(self, row):
        return self.append(ChangeRowLHSInf(row))

    def change_row_rhs_inf(self, row):
        return self.append(ChangeRowRHSInf(row))

    def change_row_bound_forced_by_row(self, row, is_lhs, value, reason_row, factor):
        if row == reason_row:
            raise ReductionError('Row ' + str(row) + ' cannot force its own bound.')
        if factor == 0:
            raise ReductionError('Factor between parallel rows must be nonzero.')
        return self.append(ForcedRowBound(row, bool(is_lhs), float(value), reason_row, float(factor)))

    def mark_row_redundant(self, row):
        return self.append(MarkRowRedundant(row))

    def lock_row(self, row):
        return self.append(LockRow(row))

    # access
    def get_reduction(self, index):
        return self._reductions[index]

    def get_reductions(self):
        return list(self._reductions)

    def get_transactions(self):
        return list(self._transactions)

    def size(self) -> int:
        return len(self._reductions)

    def __len__(self):
        return len(self._reductions)

    def __iter__(self):
        return iter(self._reductions)

    def units(self):
        """Committed transactions and single reductions outside of them, in log order

        Returns:
            (list of tuple):
                (Transaction or None, list of reductions) per unit.
        """
        units = []
        pos = 0
        for tsx in self._transactions:
            for k in range(pos, tsx.start):
                units.append((None, [self._reductions[k]]))
            units.append((tsx, self._reductions[tsx.start:tsx.end]))
            pos = tsx.end
        for k in range(pos, len(self._reductions)):
            units.append((None, [self._reductions[k]]))
        return units

    def clear(self):
        if self._pending is not None:
            raise ReductionError('Cannot clear the log while a transaction is open.')
        self._reductions = []
        self._transactions = []
