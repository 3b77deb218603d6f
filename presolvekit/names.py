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
"""Static strings used in the presolvekit package

    Presolve status codes

        UNCHANGED = 'unchanged'

        REDUCED = 'reduced'

        INFEASIBLE = 'infeasible'

        UNBOUNDED = 'unbounded'

        UNBND_OR_INFEAS = 'unbounded_or_infeasible'

    Postsolve status codes

        OK = 'ok'

        ERROR = 'error'

    Postsolve modes

        PRIMAL = 'primal'

        FULL = 'full'

    Dual reductions

        DUALREDS_NONE = 0

        DUALREDS_WEAK = 1

        DUALREDS_ALL = 2
"""

UNCHANGED = 'unchanged'
REDUCED = 'reduced'
INFEASIBLE = 'infeasible'
UNBOUNDED = 'unbounded'
UNBND_OR_INFEAS = 'unbounded_or_infeasible'

OK = 'ok'
ERROR = 'error'

PRIMAL = 'primal'
FULL = 'full'

DUALREDS_NONE = 0
DUALREDS_WEAK = 1
DUALREDS_ALL = 2

# statuses that end a presolve run
TERMINAL_STATUS = (INFEASIBLE, UNBOUNDED, UNBND_OR_INFEAS)
