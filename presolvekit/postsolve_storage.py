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
"""Postsolve storage: the typed record history needed to undo presolve

The history is held in four parallel structures:

    types[i]     kind of the i-th record (ReductionType)
    start[i]     first payload slot of record i, len(start) == len(types) + 1
    indices[k]   integer part of payload slot k
    values[k]    real part of payload slot k

Record i owns the slots start[i] <= k < start[i+1]. Every slot is an
(index, value) pair, so one prefix array delimits both payload arrays. The
payload layout of every record kind is listed in RECORD_LAYOUTS.

Indices stored in records are indices of the presolve session. Rows and
columns keep their slot for the whole session, and the storage is created from
the original problem, so these equal the original indices. At the end of the
session compress() fills the mapping tables from indices of the reduced
problem to original indices and closes the storage for writing. The tables
always hold one entry per original column/row: surviving entries first (in
reduced order), eliminated entries after them.

The storage and the original problem snapshot are saved to and loaded from a
numpy .npz archive, which keeps dtypes, shapes and float bits unchanged.
"""

from enum import IntEnum
from typing import NamedTuple
from numpy import isinf
from scipy import sparse
from presolvekit.names import PRIMAL, FULL
from presolvekit.problem import Problem, ColFlag, RowFlag
import numpy as np
import logging

FORMAT_VERSION = 1


class PostsolveStorageError(Exception):
    """Postsolve storage is structurally invalid or used after being closed"""


class ReductionType(IntEnum):
    """Kinds of postsolve records, the integer values are part of the binary format"""
    FIXED_COL = 0
    SUBSTITUTED_COL_WITH_DUAL = 1
    SUBSTITUTED_COL = 2
    PARALLEL_COL = 3
    FIXED_INF_COL = 4
    VAR_BOUND_CHANGE = 5
    REDUNDANT_ROW = 6
    ROW_BOUND_CHANGE = 7
    REASON_FOR_ROW_BOUND_CHANGE_FORCED_BY_ROW = 8
    ROW_BOUND_CHANGE_FORCED_BY_ROW = 9
    SAVE_ROW = 10
    REDUCED_BOUNDS_COST = 11
    COLUMN_DUAL_VALUE = 12
    ROW_DUAL_VALUE = 13
    COEFFICIENT_CHANGE = 14
    REPLACED_COL = 15


RECORD_LAYOUTS = {
    ReductionType.FIXED_COL: '(col, value) [full: (len, cost), len x (row, coef)]',
    ReductionType.SUBSTITUTED_COL_WITH_DUAL: '(col, side), (row, cost), (rowlen, kept), rowlen x (col_j, a_j), '
                                             '(collen, 0), collen x (row_r, a_r)',
    ReductionType.SUBSTITUTED_COL: '(col, side), len x (col_j, a_j)',
    ReductionType.PARALLEL_COL: '(col, lb), (colflags, ub), (remaining, lb), (colflags, ub), (-1, scale)',
    ReductionType.FIXED_INF_COL: '(col, direction), (nrows, bound), per row: (row, lhs), (rowflags, rhs), '
                                 '(len, 0), len x (col_j, a_j)',
    ReductionType.VAR_BOUND_CHANGE: '(col, new), (boundflags, old), (reason_row or -1, reason_coef)',
    ReductionType.REDUNDANT_ROW: '(row, 0)',
    ReductionType.ROW_BOUND_CHANGE: '(row, new), (boundflags, old)',
    ReductionType.REASON_FOR_ROW_BOUND_CHANGE_FORCED_BY_ROW: '(remaining_row, factor), (deleted_row, 0)',
    ReductionType.ROW_BOUND_CHANGE_FORCED_BY_ROW: '(row, new), (boundflags, old)',
    ReductionType.SAVE_ROW: '(row, lhs), (rowflags, rhs), (len, 0), len x (col_j, a_j)',
    ReductionType.REDUCED_BOUNDS_COST: '(ncols, 0), (nrows, 0), per col (col, lb), (colflags, ub), (-1, cost); '
                                       'per row (row, lhs), (rowflags, rhs)',
    ReductionType.COLUMN_DUAL_VALUE: '(col, value)',
    ReductionType.ROW_DUAL_VALUE: '(row, value)',
    ReductionType.COEFFICIENT_CHANGE: '(row, new), (col, old)',
    ReductionType.REPLACED_COL: '(col, scale), (replacement, offset) [full: (len, cost), len x (row, coef)]',
}

# records that only serve dual postsolve
DUAL_ONLY = frozenset((ReductionType.VAR_BOUND_CHANGE, ReductionType.REDUNDANT_ROW, ReductionType.ROW_BOUND_CHANGE,
                       ReductionType.REASON_FOR_ROW_BOUND_CHANGE_FORCED_BY_ROW,
                       ReductionType.ROW_BOUND_CHANGE_FORCED_BY_ROW, ReductionType.SAVE_ROW,
                       ReductionType.REDUCED_BOUNDS_COST, ReductionType.COLUMN_DUAL_VALUE,
                       ReductionType.ROW_DUAL_VALUE, ReductionType.COEFFICIENT_CHANGE))

# bits of the boundflags slot
BOUND_IS_LOWER = 1
BOUND_NEW_INF = 2
BOUND_OLD_INF = 4


def bound_flags(is_lower, new, old) -> int:
    flags = 0
    if is_lower:
        flags |= BOUND_IS_LOWER
    if isinf(new):
        flags |= BOUND_NEW_INF
    if isinf(old):
        flags |= BOUND_OLD_INF
    return flags


class Record(NamedTuple):
    """One decoded postsolve record"""
    type: ReductionType
    indices: np.ndarray
    values: np.ndarray


class PostsolveStorage:
    """Record history of a presolve session and snapshot of the original problem

    Args:
        problem (Problem):
            The original problem. A copy is kept as snapshot.

        postsolve_type (str):
            PRIMAL records only what is needed to recover primal values, FULL
            additionally records what is needed for row duals, reduced costs and
            basis status.
    """

    def __init__(self, problem: Problem, postsolve_type: str = PRIMAL):
        if postsolve_type not in (PRIMAL, FULL):
            raise ValueError('Unknown postsolve type ' + repr(postsolve_type) + '.')
        self.original_problem = problem.copy()
        self.postsolve_type = postsolve_type
        self.n_rows_original = problem.get_n_rows()
        self.n_cols_original = problem.get_n_cols()
        self.n_rows_reduced = self.n_rows_original
        self.n_cols_reduced = self.n_cols_original
        self.orig_row_mapping = list(range(self.n_rows_original))
        self.orig_col_mapping = list(range(self.n_cols_original))
        self.types = []
        self.start = [0]
        self.indices = []
        self.values = []
        self.closed = False

    def __len__(self):
        return len(self.types)

    def is_full(self) -> bool:
        return self.postsolve_type == FULL

    def _push(self, kind, slots):
        if self.closed:
            raise PostsolveStorageError('Postsolve storage is closed for writing.')
        if kind in DUAL_ONLY and not self.is_full():
            return False
        for index, value in slots:
            self.indices.append(int(index))
            self.values.append(float(value))
        self.types.append(ReductionType(kind))
        self.start.append(len(self.indices))
        logging.debug('Stored postsolve record ' + ReductionType(kind).name + ' with ' + str(len(slots)) +
                      ' slots.')
        return True

    # record writers
    def store_fixed_col(self, col, value, cost=0.0, col_entries=()):
        slots = [(col, value)]
        if self.is_full():
            slots.append((len(col_entries), cost))
            slots.extend(col_entries)
        self._push(ReductionType.FIXED_COL, slots)

    def store_substitution(self, col, row, side, row_entries, cost=0.0, col_entries=(), row_kept=False):
        """Column col is recovered from the equation sum(a_j x_j) = side of row

        row_kept tells whether the row stays in the problem without col (implied
        slack) or is removed together with col.
        """
        if self.is_full():
            slots = [(col, side), (row, cost), (len(row_entries), 1.0 if row_kept else 0.0)]
            slots.extend(row_entries)
            slots.append((len(col_entries), 0.0))
            slots.extend(col_entries)
            self._push(ReductionType.SUBSTITUTED_COL_WITH_DUAL, slots)
        else:
            self._push(ReductionType.SUBSTITUTED_COL, [(col, side)] + list(row_entries))

    def store_parallel_cols(self, col, col_lb, col_ub, col_flags, remaining, rem_lb, rem_ub, rem_flags, scale):
        self._push(ReductionType.PARALLEL_COL, [(col, col_lb), (int(col_flags), col_ub), (remaining, rem_lb),
                                                (int(rem_flags), rem_ub), (-1, scale)])

    def store_fixed_inf_col(self, col, direction, bound, rows):
        """Column fixed at an infinite value

        Args:
            rows (list of tuple):
                (row, lhs, rhs, rowflags, entries) for every row of the column.
        """
        slots = [(col, direction), (len(rows), bound)]
        for row, lhs, rhs, flags, entries in rows:
            slots.extend([(row, lhs), (int(flags), rhs), (len(entries), 0.0)])
            slots.extend(entries)
        self._push(ReductionType.FIXED_INF_COL, slots)

    def store_replaced_col(self, col, scale, replacement, offset, cost=0.0, col_entries=()):
        slots = [(col, scale), (replacement, offset)]
        if self.is_full():
            slots.append((len(col_entries), cost))
            slots.extend(col_entries)
        self._push(ReductionType.REPLACED_COL, slots)

    def store_var_bound_change(self, col, is_lower, new, old, reason_row=-1, reason_coef=0.0):
        self._push(ReductionType.VAR_BOUND_CHANGE, [(col, new), (bound_flags(is_lower, new, old), old),
                                                    (reason_row, reason_coef)])

    def store_redundant_row(self, row):
        self._push(ReductionType.REDUNDANT_ROW, [(row, 0.0)])

    def store_row_bound_change(self, row, is_lhs, new, old):
        self._push(ReductionType.ROW_BOUND_CHANGE, [(row, new), (bound_flags(is_lhs, new, old), old)])

    def store_row_bound_change_forced_by_row(self, row, is_lhs, new, old, deleted_row, factor):
        """Two records, the reason always directly precedes the bound change"""
        if self._push(ReductionType.REASON_FOR_ROW_BOUND_CHANGE_FORCED_BY_ROW, [(row, factor), (deleted_row, 0.0)]):
            self._push(ReductionType.ROW_BOUND_CHANGE_FORCED_BY_ROW,
                       [(row, new), (bound_flags(is_lhs, new, old), old)])

    def store_saved_row(self, row, lhs, rhs, flags, entries):
        slots = [(row, lhs), (int(flags), rhs), (len(entries), 0.0)]
        slots.extend(entries)
        self._push(ReductionType.SAVE_ROW, slots)

    def store_reduced_bounds_and_cost(self, problem, rows, cols):
        slots = [(len(cols), 0.0), (len(rows), 0.0)]
        for j in cols:
            slots.extend([(j, problem.lower_bounds[j]), (int(problem.col_flags[j]), problem.upper_bounds[j]),
                          (-1, problem.objective[j])])
        for i in rows:
            slots.extend([(i, problem.lhs[i]), (int(problem.row_flags[i]), problem.rhs[i])])
        self._push(ReductionType.REDUCED_BOUNDS_COST, slots)

    def store_dual_value(self, is_col, index, value):
        self._push(ReductionType.COLUMN_DUAL_VALUE if is_col else ReductionType.ROW_DUAL_VALUE, [(index, value)])

    def store_coefficient_change(self, row, col, new, old):
        self._push(ReductionType.COEFFICIENT_CHANGE, [(row, new), (col, old)])

    # reading
    def get_record(self, i) -> Record:
        """Decode record i, raises PostsolveStorageError on structural errors"""
        if not 0 <= i < len(self.types):
            raise PostsolveStorageError('Record ' + str(i) + ' does not exist.')
        if i + 1 >= len(self.start):
            raise PostsolveStorageError('Record ' + str(i) + ' has no payload boundary.')
        first, last = self.start[i], self.start[i + 1]
        if first < 0 or last < first or last > len(self.indices) or last > len(self.values):
            raise PostsolveStorageError('Payload of record ' + str(i) + ' exceeds the payload arrays.')
        try:
            kind = ReductionType(int(self.types[i]))
        except ValueError:
            raise PostsolveStorageError('Unknown type tag ' + str(self.types[i]) + ' of record ' + str(i) + '.')
        return Record(kind, np.asarray(self.indices[first:last], dtype=np.int64),
                      np.asarray(self.values[first:last], dtype=float))

    def __iter__(self):
        for i in range(len(self.types)):
            yield self.get_record(i)

    def check_consistency(self):
        """Raise PostsolveStorageError if the structural invariants are violated"""
        if len(self.start) != len(self.types) + 1 or self.start[0] != 0:
            raise PostsolveStorageError('Prefix array must start at 0 and have one entry more than types.')
        if any(b < a for a, b in zip(self.start[:-1], self.start[1:])):
            raise PostsolveStorageError('Prefix array is not non-decreasing.')
        if len(self.indices) != len(self.values) or self.start[-1] != len(self.indices):
            raise PostsolveStorageError('Payload arrays do not match the prefix array.')
        valid = set(int(t) for t in ReductionType)
        if any(int(t) not in valid for t in self.types):
            raise PostsolveStorageError('Unknown record type tag.')
        if len(self.orig_col_mapping) != self.n_cols_original or sorted(self.orig_col_mapping) != list(
                range(self.n_cols_original)):
            raise PostsolveStorageError('Column mapping is not a permutation of the original columns.')
        if len(self.orig_row_mapping) != self.n_rows_original or sorted(self.orig_row_mapping) != list(
                range(self.n_rows_original)):
            raise PostsolveStorageError('Row mapping is not a permutation of the original rows.')
        if not (0 <= self.n_cols_reduced <= self.n_cols_original and 0 <= self.n_rows_reduced <= self.n_rows_original):
            raise PostsolveStorageError('Reduced dimensions exceed the original dimensions.')

    # mappings
    def compress(self, rows, cols):
        """Record which rows and columns survive and close the storage

        Args:
            rows, cols (list of int):
                Surviving session indices in the order of the reduced problem.
        """
        if self.closed:
            raise PostsolveStorageError('Postsolve storage is already compressed.')
        rows, cols = list(rows), list(cols)
        kept_rows, kept_cols = set(rows), set(cols)
        self.orig_row_mapping = [self.orig_row_mapping[i] for i in rows] + \
                                [r for k, r in enumerate(self.orig_row_mapping) if k not in kept_rows]
        self.orig_col_mapping = [self.orig_col_mapping[j] for j in cols] + \
                                [c for k, c in enumerate(self.orig_col_mapping) if k not in kept_cols]
        self.n_rows_reduced = len(rows)
        self.n_cols_reduced = len(cols)
        self.closed = True
        logging.info('Postsolve storage closed with ' + str(len(self.types)) + ' records, ' + str(len(rows)) +
                     ' of ' + str(self.n_rows_original) + ' rows and ' + str(len(cols)) + ' of ' +
                     str(self.n_cols_original) + ' columns remaining.')

    # persistence
    def save(self, target):
        """Write the storage to a path or a binary stream

        Entries follow the order: header with original sizes, mapping tables,
        postsolve type, types, start, indices, values, original problem.
        """
        prob = self.original_problem
        A = prob.matrix.to_csr()
        arrays = dict(
            header=np.array([FORMAT_VERSION, self.n_rows_original, self.n_cols_original, self.n_rows_reduced,
                             self.n_cols_reduced, int(self.closed)],
                            dtype=np.int64),
            orig_row_mapping=np.array(self.orig_row_mapping, dtype=np.int64),
            orig_col_mapping=np.array(self.orig_col_mapping, dtype=np.int64),
            postsolve_type=np.array([1 if self.is_full() else 0], dtype=np.int64),
            types=np.array([int(t) for t in self.types], dtype=np.int64),
            start=np.array(self.start, dtype=np.int64),
            indices=np.array(self.indices, dtype=np.int64),
            values=np.array(self.values, dtype=np.float64),
            problem_objective=np.asarray(prob.objective, dtype=np.float64),
            problem_offset=np.array([prob.objective_offset], dtype=np.float64),
            problem_lb=np.asarray(prob.lower_bounds, dtype=np.float64),
            problem_ub=np.asarray(prob.upper_bounds, dtype=np.float64),
            problem_col_flags=np.array([int(f) for f in prob.col_flags], dtype=np.int64),
            problem_lhs=np.asarray(prob.lhs, dtype=np.float64),
            problem_rhs=np.asarray(prob.rhs, dtype=np.float64),
            problem_row_flags=np.array([int(f) for f in prob.row_flags], dtype=np.int64),
            problem_A_data=np.asarray(A.data, dtype=np.float64),
            problem_A_indices=np.asarray(A.indices, dtype=np.int64),
            problem_A_indptr=np.asarray(A.indptr, dtype=np.int64),
            problem_name=np.array([prob.name], dtype=str),
            problem_col_names=np.array(prob.col_names, dtype=str),
            problem_row_names=np.array(prob.row_names, dtype=str),
        )
        if isinstance(target, str):
            with open(target, 'wb') as f:
                np.savez(f, **arrays)
        else:
            np.savez(target, **arrays)

    @classmethod
    def load(cls, source):
        """Read a storage from a path or a binary stream written by save()"""
        try:
            with np.load(source, allow_pickle=False) as data:
                header = data['header']
                if int(header[0]) != FORMAT_VERSION:
                    raise PostsolveStorageError('Unsupported postsolve storage format version ' + str(header[0]) +
                                                '.')
                nrows, ncols = int(header[1]), int(header[2])
                A = sparse.csr_matrix((data['problem_A_data'], data['problem_A_indices'], data['problem_A_indptr']),
                                      shape=(nrows, ncols))
                col_names = [str(n) for n in data['problem_col_names']]
                row_names = [str(n) for n in data['problem_row_names']]
                problem = Problem(data['problem_objective'],
                                  A,
                                  data['problem_lhs'],
                                  data['problem_rhs'],
                                  data['problem_lb'],
                                  data['problem_ub'],
                                  offset=float(data['problem_offset'][0]),
                                  name=str(data['problem_name'][0]),
                                  col_names=col_names if col_names else None,
                                  row_names=row_names if row_names else None)
                problem.col_flags = [ColFlag(int(f)) for f in data['problem_col_flags']]
                problem.matrix.row_flags = [RowFlag(int(f)) for f in data['problem_row_flags']]
                storage = cls(problem, FULL if int(data['postsolve_type'][0]) == 1 else PRIMAL)
                storage.n_rows_reduced, storage.n_cols_reduced = int(header[3]), int(header[4])
                storage.closed = bool(header[5])
                storage.orig_row_mapping = [int(i) for i in data['orig_row_mapping']]
                storage.orig_col_mapping = [int(i) for i in data['orig_col_mapping']]
                storage.types = [int(t) for t in data['types']]
                storage.start = [int(s) for s in data['start']]
                storage.indices = [int(i) for i in data['indices']]
                storage.values = [float(v) for v in data['values']]
        except KeyError as e:
            raise PostsolveStorageError('Postsolve storage misses entry ' + str(e) + '.')
        storage.check_consistency()
        storage.types = [ReductionType(t) for t in storage.types]
        return storage

    def save_to_file(self, filename):
        self.save(str(filename))

    @classmethod
    def load_from_file(cls, filename):
        with open(filename, 'rb') as f:
            return cls.load(f)
