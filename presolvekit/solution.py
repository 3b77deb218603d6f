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
"""Solution container for reduced and original problems"""

from enum import IntEnum
from presolvekit.names import PRIMAL, FULL
import numpy as np


class VarBasisStatus(IntEnum):
    ON_UPPER = 0
    ON_LOWER = 1
    FIXED = 2
    ZERO = 3
    BASIC = 4
    UNDEFINED = 5


class Solution:
    """Primal values and, for full solutions, duals and basis status

    Args:
        primal (list of float):
            Values of the columns.

        col_duals (list of float):
            (Optional) Reduced costs of the columns.

        row_duals (list of float):
            (Optional) Dual values of the rows.

        col_basis, row_basis (list of VarBasisStatus):
            (Optional) Basis status of columns and rows.

    A solution that carries dual values is of type FULL, otherwise PRIMAL.
    """

    def __init__(self, primal, col_duals=None, row_duals=None, col_basis=None, row_basis=None):
        self.primal = np.array(primal, dtype=float)
        self.col_duals = None if col_duals is None else np.array(col_duals, dtype=float)
        self.row_duals = None if row_duals is None else np.array(row_duals, dtype=float)
        self.col_basis = None if col_basis is None else [VarBasisStatus(s) for s in col_basis]
        self.row_basis = None if row_basis is None else [VarBasisStatus(s) for s in row_basis]
        if (self.col_duals is None) != (self.row_duals is None):
            raise ValueError('Column and row duals must be given together.')

    @property
    def type(self):
        return PRIMAL if self.col_duals is None else FULL

    def __repr__(self):
        return 'Solution(type=' + self.type + ', primal=' + str(list(self.primal)) + ')'
