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
"""Counters of a presolve run"""

import logging


class PresolverStats:
    """Calls, successes and applied transactions of one presolve method"""

    def __init__(self, name):
        self.name = name
        self.ncalls = 0
        self.nsuccessful = 0
        self.ntransactions = 0
        self.napplied = 0
        self.exectime = 0.0

    def success_rate(self) -> float:
        return 100.0 * self.nsuccessful / self.ncalls if self.ncalls else 0.0

    def applied_rate(self) -> float:
        return 100.0 * self.napplied / self.ntransactions if self.ntransactions else 0.0


class Statistics:
    """
    Tracks the changes made to a problem during presolve.

    The applier increments the change counters, the presolve driver the round
    counter, the time and the per-method statistics.
    """

    _logger = logging.getLogger(__name__ + ".stats")

    def __init__(self):
        self.presolvetime = 0.0
        self.nrounds = 0
        self.ntsxapplied = 0
        self.ntsxconflicts = 0
        self.nboundchgs = 0
        self.nsidechgs = 0
        self.ncoefchgs = 0
        self.ndeletedcols = 0
        self.ndeletedrows = 0
        self.presolvers = []

    def get_presolver_stats(self, name) -> PresolverStats:
        for stats in self.presolvers:
            if stats.name == name:
                return stats
        stats = PresolverStats(name)
        self.presolvers.append(stats)
        return stats

    def inc_deleted_cols(self, n=1):
        self.ndeletedcols += n

    def inc_deleted_rows(self, n=1):
        self.ndeletedrows += n

    def inc_bound_changes(self, n=1):
        self.nboundchgs += n

    def inc_side_changes(self, n=1):
        self.nsidechgs += n

    def inc_coef_changes(self, n=1):
        self.ncoefchgs += n

    def log_summary(self):
        """Write a report of all counters to the statistics logger"""
        self._logger.info('presolve finished after ' + str(self.nrounds) + ' rounds in ' +
                          '{:.3f}'.format(self.presolvetime) + ' s')
        self._logger.info('  deleted columns: ' + str(self.ndeletedcols) + ', deleted rows: ' + str(self.ndeletedrows))
        self._logger.info('  bound changes: ' + str(self.nboundchgs) + ', side changes: ' + str(self.nsidechgs) +
                          ', coefficient changes: ' + str(self.ncoefchgs))
        self._logger.info('  transactions applied: ' + str(self.ntsxapplied) + ', conflicts: ' +
                          str(self.ntsxconflicts))
        for p in self.presolvers:
            self._logger.info('  {:<20} calls {:>5} success {:6.1f}% applied {:6.1f}% time {:.3f} s'.format(
                p.name, p.ncalls, p.success_rate(), p.applied_rate(), p.exectime))
