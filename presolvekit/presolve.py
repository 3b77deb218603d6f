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
"""Presolve driver running trivial presolve and rounds of registered presolve methods"""

from abc import ABC, abstractmethod
from time import time
from numpy import inf
from presolvekit.names import *
from presolvekit.num import Num
from presolvekit.postsolve_storage import PostsolveStorage
from presolvekit.problem_update import ProblemUpdate
from presolvekit.reductions import ReductionLog
from presolvekit.statistics import Statistics
import logging


class PresolveOptions:
    """Settings of a presolve run

    Args:
        dualreds (int):
            (Default: 2) Dual reductions allowed: DUALREDS_NONE, DUALREDS_WEAK or DUALREDS_ALL.
            Methods that use dual reductions are skipped with DUALREDS_NONE.

        max_rounds (int):
            (Default: 50) Maximum number of presolve rounds.

        epsilon, feastol, hugeval (float):
            Tolerances, see Num.

        postsolve_type (str):
            (Default: PRIMAL) PRIMAL or FULL postsolve records.

        postpone_substitutions (bool):
            (Default: False) Apply column substitutions at the end of each round.

        time_limit (float):
            (Default: inf) No new round is started after this many seconds.
    """

    def __init__(self,
                 dualreds=DUALREDS_ALL,
                 max_rounds=50,
                 epsilon=1e-9,
                 feastol=1e-6,
                 hugeval=1e8,
                 postsolve_type=PRIMAL,
                 postpone_substitutions=False,
                 time_limit=inf):
        if dualreds not in (DUALREDS_NONE, DUALREDS_WEAK, DUALREDS_ALL):
            raise ValueError('dualreds must be 0, 1 or 2.')
        if postsolve_type not in (PRIMAL, FULL):
            raise ValueError('postsolve_type must be ' + PRIMAL + ' or ' + FULL + '.')
        self.dualreds = dualreds
        self.max_rounds = max_rounds
        self.epsilon = epsilon
        self.feastol = feastol
        self.hugeval = hugeval
        self.postsolve_type = postsolve_type
        self.postpone_substitutions = postpone_substitutions
        self.time_limit = time_limit

    def num(self) -> Num:
        return Num(self.epsilon, self.feastol, self.hugeval)


class PresolveMethod(ABC):
    """Base class of presolve methods

    A method inspects the problem and appends the reductions it finds to the
    given log, grouping dependent reductions into transactions with locks on
    everything the reductions rely on. It must not modify the problem itself.
    """
    name = 'presolve_method'
    uses_dual_reductions = False

    @abstractmethod
    def execute(self, problem, problem_update, num, log):
        """Append reductions to log

        Returns:
            (str):
                UNCHANGED, REDUCED, or a terminal status if the method proves the
                problem infeasible or unbounded.
        """


class PresolveResult:
    """Outcome of Presolve.apply

    Attributes:
        status (str):
            UNCHANGED, REDUCED, INFEASIBLE, UNBOUNDED or UNBND_OR_INFEAS.

        problem (Problem):
            The compact reduced problem, None for a terminal status.

        postsolve (PostsolveStorage):
            Records needed to undo the presolve.

        statistics (Statistics):
            Counters of the run.

        reductions (list of ReductionLog):
            The logs that were handed to the applier, in order.
    """

    def __init__(self, status, problem, postsolve, statistics, reductions):
        self.status = status
        self.problem = problem
        self.postsolve = postsolve
        self.statistics = statistics
        self.reductions = reductions


class Presolve:
    """Presolve a problem with a set of presolve methods

    Example:
        presolve = Presolve(PresolveOptions(postsolve_type=FULL))
        presolve.add_presolve_method(MyMethod())
        result = presolve.apply(problem)
    """

    def __init__(self, options=None):
        self.options = options if options is not None else PresolveOptions()
        self.methods = []

    def add_presolve_method(self, method: PresolveMethod):
        if not isinstance(method, PresolveMethod):
            raise TypeError('Presolve methods must derive from PresolveMethod.')
        self.methods.append(method)

    def apply(self, problem) -> PresolveResult:
        """Presolve a copy of the problem

        Trivial presolve runs first and after every round. A round calls every
        method once and applies its reductions. Rounds continue until a round
        changes nothing, the round or time limit is reached, or a terminal
        status is found.
        """
        start_time = time()
        options = self.options
        num = options.num()
        problem = problem.copy()
        storage = PostsolveStorage(problem, options.postsolve_type)
        stats = Statistics()
        update = ProblemUpdate(problem, storage, stats, num, options.postpone_substitutions)
        logs = []
        logging.info('Presolving problem ' + repr(problem.name) + ' with ' + str(problem.get_n_rows()) + ' rows, ' +
                     str(problem.get_n_cols()) + ' columns and ' + str(problem.get_nnz()) + ' nonzeros.')

        status = update.trivial_presolve()
        changed = status == REDUCED
        round_number = 0
        while status not in TERMINAL_STATUS and round_number < options.max_rounds and self.methods:
            if time() - start_time > options.time_limit:
                logging.info('Presolve time limit reached.')
                break
            round_number += 1
            stats.nrounds = round_number
            status, round_changed = self._run_round(round_number, problem, update, num, stats, logs)
            if status in TERMINAL_STATUS:
                break
            status = update.trivial_presolve()
            round_changed = round_changed or status == REDUCED
            logging.info('Round ' + str(round_number) + ': ' + str(stats.ndeletedcols) + ' deleted columns, ' +
                         str(stats.ndeletedrows) + ' deleted rows.')
            changed = changed or round_changed
            if not round_changed:
                break

        stats.presolvetime = time() - start_time
        if status in TERMINAL_STATUS:
            logging.warning('Presolve detected status ' + status + '.')
            stats.log_summary()
            return PresolveResult(status, None, storage, stats, logs)
        reduced = update.compress()
        stats.log_summary()
        return PresolveResult(REDUCED if changed else UNCHANGED, reduced, storage, stats, logs)

    def _run_round(self, round_number, problem, update, num, stats, logs):
        round_changed = False
        for method in self.methods:
            if method.uses_dual_reductions and self.options.dualreds == DUALREDS_NONE:
                continue
            pstats = stats.get_presolver_stats(method.name)
            log = ReductionLog(problem)
            start = time()
            method_status = method.execute(problem, update, num, log)
            pstats.ncalls += 1
            if method_status in TERMINAL_STATUS:
                pstats.exectime += time() - start
                return method_status, round_changed
            if len(log) > 0:
                pstats.nsuccessful += 1
                logs.append(log)
                result = update.apply_reductions(round_number, log)
                pstats.ntransactions += result.num_processed
                pstats.napplied += result.num_applied
                if result.status in TERMINAL_STATUS:
                    pstats.exectime += time() - start
                    return result.status, round_changed
                round_changed = round_changed or result.status == REDUCED
            pstats.exectime += time() - start
        if update.has_postponed():
            result = update.flush_postponed()
            if result.status in TERMINAL_STATUS:
                return result.status, round_changed
            round_changed = round_changed or result.status == REDUCED
        return UNCHANGED, round_changed
