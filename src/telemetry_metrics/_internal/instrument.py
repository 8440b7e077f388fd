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

# pylint: disable=too-many-ancestors

from dataclasses import dataclass
from enum import Enum
from logging import getLogger
from re import compile as re_compile
from typing import Callable, Iterable, Optional, Union

from opentelemetry.metrics import Observation
from opentelemetry.util.types import Attributes

from telemetry_metrics._internal.labels import LabelSet

_logger = getLogger(__name__)

_NAME_PATTERN = re_compile(r"[A-Za-z][A-Za-z0-9_.\-]{0,62}")


class InstrumentType(Enum):
    COUNTER = "counter"
    UP_DOWN_COUNTER = "up_down_counter"
    VALUE_RECORDER = "value_recorder"
    SUM_OBSERVER = "sum_observer"
    UP_DOWN_SUM_OBSERVER = "up_down_sum_observer"
    VALUE_OBSERVER = "value_observer"

    @property
    def is_synchronous(self) -> bool:
        return self in (
            InstrumentType.COUNTER,
            InstrumentType.UP_DOWN_COUNTER,
            InstrumentType.VALUE_RECORDER,
        )

    @property
    def is_monotonic(self) -> bool:
        return self in (InstrumentType.COUNTER, InstrumentType.SUM_OBSERVER)


class InstrumentValueType(Enum):
    LONG = "long"
    DOUBLE = "double"


@dataclass(frozen=True)
class InstrumentDescriptor:
    """The identity of one metric stream."""

    name: str
    description: str
    unit: str
    instrument_type: InstrumentType
    value_type: InstrumentValueType

    def __post_init__(self):
        if not isinstance(self.name, str) or not _NAME_PATTERN.fullmatch(
            self.name
        ):
            raise ValueError(
                f"Invalid instrument name {self.name!r}, names must start "
                "with a letter, contain only letters, digits, '_', '.' or "
                "'-' and be at most 63 characters long"
            )
        if not isinstance(self.instrument_type, InstrumentType):
            raise TypeError(
                f"Invalid instrument type {self.instrument_type!r}"
            )
        if not isinstance(self.value_type, InstrumentValueType):
            raise TypeError(f"Invalid value type {self.value_type!r}")


class _Instrument:
    def __init__(self, descriptor: InstrumentDescriptor, accumulator):
        self._descriptor = descriptor
        self._accumulator = accumulator

    @property
    def descriptor(self) -> InstrumentDescriptor:
        return self._descriptor

    @property
    def name(self) -> str:
        return self._descriptor.name

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(name={self._descriptor.name!r}, "
            f"value_type={self._descriptor.value_type.name})"
        )


class _SynchronousInstrument(_Instrument):
    def _record(
        self, value: Union[int, float], labels: Union[LabelSet, Attributes]
    ) -> None:
        aggregator = self._accumulator.bind(labels)
        try:
            aggregator.record(value)
        finally:
            aggregator.release()

    def _bind(self, labels: Union[LabelSet, Attributes]):
        return self._accumulator.bind(labels)

    def collect_all(self, epoch_nanos: Optional[int] = None):
        return self._accumulator.collect_all(epoch_nanos)


class _BoundInstrument:
    """A synchronous instrument bound to one label set.

    Holds a reference on the live aggregator of the label set until
    `release` is called; the handle can't be used afterwards.
    """

    def __init__(self, instrument: _SynchronousInstrument, aggregator):
        self._instrument = instrument
        self._aggregator = aggregator
        self._released = False

    def _record(self, value: Union[int, float]) -> None:
        if self._released:
            _logger.warning(
                "Dropping measurement on released bound instrument of %s",
                self._instrument.name,
            )
            return
        self._aggregator.record(value)

    def release(self) -> None:
        if self._released:
            _logger.warning(
                "Bound instrument of %s already released",
                self._instrument.name,
            )
            return
        self._released = True
        self._aggregator.release()


class BoundCounter(_BoundInstrument):
    def add(self, amount: Union[int, float]) -> None:
        """Increases the bound counter by a non negative ``amount``."""
        self._record(amount)


class BoundUpDownCounter(_BoundInstrument):
    def add(self, amount: Union[int, float]) -> None:
        self._record(amount)


class BoundValueRecorder(_BoundInstrument):
    def record(self, value: Union[int, float]) -> None:
        self._record(value)


class Counter(_SynchronousInstrument):
    """A synchronous instrument whose sum can only increase.

    Adding a negative amount raises `ValueError` and leaves the counter as it
    was.
    """

    def add(
        self,
        amount: Union[int, float],
        labels: Union[LabelSet, Attributes] = None,
    ) -> None:
        self._record(amount, labels)

    def bind(self, labels: Union[LabelSet, Attributes]) -> BoundCounter:
        return BoundCounter(self, self._bind(labels))


class UpDownCounter(_SynchronousInstrument):
    """A synchronous instrument whose sum can increase and decrease."""

    def add(
        self,
        amount: Union[int, float],
        labels: Union[LabelSet, Attributes] = None,
    ) -> None:
        self._record(amount, labels)

    def bind(self, labels: Union[LabelSet, Attributes]) -> BoundUpDownCounter:
        return BoundUpDownCounter(self, self._bind(labels))


class ValueRecorder(_SynchronousInstrument):
    """A synchronous instrument recording arbitrary values, such as request
    latencies."""

    def record(
        self,
        value: Union[int, float],
        labels: Union[LabelSet, Attributes] = None,
    ) -> None:
        self._record(value, labels)

    def bind(self, labels: Union[LabelSet, Attributes]) -> BoundValueRecorder:
        return BoundValueRecorder(self, self._bind(labels))


class _AsynchronousInstrument(_Instrument):
    """An instrument reporting its values from a callback.

    The callback is called with an ``ObserverResult`` once per collection. It
    can report observations by calling ``result.observe(value, labels)``
    and/or by returning (or yielding) `opentelemetry.metrics.Observation`
    objects.
    """

    def __init__(
        self,
        descriptor: InstrumentDescriptor,
        accumulator,
        callback: Optional[Callable] = None,
    ):
        super().__init__(descriptor, accumulator)
        self._callback = callback

    def set_callback(self, callback: Optional[Callable]) -> None:
        self._callback = callback

    def collect_all(self, epoch_nanos: Optional[int] = None):
        callback = self._callback

        if callback is None:
            return self._accumulator.collect_all(None, epoch_nanos)

        def run_callback(result) -> None:
            observations: Optional[Iterable[Observation]] = callback(result)
            if observations is None:
                return
            for observation in observations:
                result.observe(observation.value, observation.attributes)

        return self._accumulator.collect_all(run_callback, epoch_nanos)


class SumObserver(_AsynchronousInstrument):
    """Observes monotonically increasing totals."""


class UpDownSumObserver(_AsynchronousInstrument):
    """Observes totals that can increase and decrease."""


class ValueObserver(_AsynchronousInstrument):
    """Observes current values, such as a temperature or a queue size."""
