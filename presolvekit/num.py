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
"""Tolerance service used for all numerical comparisons during presolve and postsolve"""

from math import floor, ceil, isinf


class Num:
    """Numerical comparisons with an absolute epsilon and a feasibility tolerance

    All presolve decisions (is a bound tighter, is a value integral, is an
    interval empty) are taken through one instance of this class, so that
    the applier itself never introduces rounding.

    Args:
        epsilon (float):
            Tolerance for equality of coefficients and values (default 1e-9).

        feastol (float):
            Tolerance for feasibility checks of bounds and sides (default 1e-6).

        hugeval (float):
            Values with absolute value above this are considered huge and are
            not used to derive new bounds (default 1e8).
    """

    def __init__(self, epsilon=1e-9, feastol=1e-6, hugeval=1e8):
        if epsilon < 0 or feastol < 0:
            raise ValueError('Tolerances must be non-negative.')
        self.epsilon = epsilon
        self.feastol = feastol
        self.hugeval = hugeval

    def __repr__(self):
        return 'Num(epsilon=' + str(self.epsilon) + ', feastol=' + str(self.feastol) + ', hugeval=' + str(
            self.hugeval) + ')'

    # equal infinities compare equal, a difference of them is nan
    def is_eq(self, a, b):
        return a == b or abs(a - b) <= self.epsilon

    def is_lt(self, a, b):
        return a != b and a - b < -self.epsilon

    def is_le(self, a, b):
        return a == b or a - b <= self.epsilon

    def is_gt(self, a, b):
        return a != b and a - b > self.epsilon

    def is_ge(self, a, b):
        return a == b or a - b >= -self.epsilon

    def is_zero(self, a):
        return abs(a) <= self.epsilon

    def is_feas_eq(self, a, b):
        return a == b or abs(a - b) <= self.feastol

    def is_feas_lt(self, a, b):
        return a != b and a - b < -self.feastol

    def is_feas_le(self, a, b):
        return a == b or a - b <= self.feastol

    def is_feas_gt(self, a, b):
        return a != b and a - b > self.feastol

    def is_feas_ge(self, a, b):
        return a == b or a - b >= -self.feastol

    def is_feas_zero(self, a):
        return abs(a) <= self.feastol

    def is_integral(self, a):
        if isinf(a):
            return False
        return abs(a - round(a)) <= self.epsilon

    def is_feas_integral(self, a):
        if isinf(a):
            return False
        return abs(a - round(a)) <= self.feastol

    def is_huge(self, a):
        return abs(a) >= self.hugeval

    def epsilon_floor(self, a):
        if isinf(a):
            return a
        return float(floor(a + self.epsilon))

    def epsilon_ceil(self, a):
        if isinf(a):
            return a
        return float(ceil(a - self.epsilon))

    def feas_floor(self, a):
        if isinf(a):
            return a
        return float(floor(a + self.feastol))

    def feas_ceil(self, a):
        if isinf(a):
            return a
        return float(ceil(a - self.feastol))

    def round_to_integral(self, a):
        """Round values that are integral up to epsilon, leave others untouched"""
        if self.is_integral(a):
            return float(round(a))
        return a

