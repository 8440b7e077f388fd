# Copyright The OpenTelemetry Authors
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

from abc import ABC, abstractmethod
from threading import Lock
from time import time_ns


class Clock(ABC):
    """Source of the timestamps stamped on collected points."""

    @abstractmethod
    def now(self) -> int:
        """Returns the current epoch time in nanoseconds."""


class SystemClock(Clock):
    def now(self) -> int:
        return time_ns()


class ManualClock(Clock):
    """A clock that only moves when told to.

    Useful to get deterministic start and end timestamps out of collection
    cycles.
    """

    # 2019-05-07T07:00:00Z
    DEFAULT_EPOCH_NANOS = 1_557_212_400_000_000_000

    def __init__(self, epoch_nanos: int = DEFAULT_EPOCH_NANOS):
        self._lock = Lock()
        self._epoch_nanos = epoch_nanos

    def now(self) -> int:
        with self._lock:
            return self._epoch_nanos

    def set_time(self, epoch_nanos: int) -> None:
        with self._lock:
            self._epoch_nanos = epoch_nanos

    def advance_nanos(self, nanos: int) -> None:
        with self._lock:
            self._epoch_nanos += nanos

    def advance_millis(self, millis: int) -> None:
        self.advance_nanos(millis * 1_000_000)
