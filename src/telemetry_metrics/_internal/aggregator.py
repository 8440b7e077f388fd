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
from bisect import bisect_left
from math import inf, isinf, isnan
from threading import Lock
from typing import Generic, List, Optional, Sequence, Tuple, TypeVar, Union

from telemetry_metrics._internal.instrument import InstrumentValueType
from telemetry_metrics._internal.labels import LabelSet
from telemetry_metrics._internal.point import (
    DoublePoint,
    HistogramPoint,
    LongPoint,
    SummaryPoint,
)

_PointVarT = TypeVar("_PointVarT")


def check_value(value_type: InstrumentValueType, value) -> None:
    """Raises `TypeError` if ``value`` can't be recorded as ``value_type``."""

    # bool is a subclass of int but is never a valid measurement
    if isinstance(value, bool):
        raise TypeError(f"Invalid measurement {value!r}")

    if value_type is InstrumentValueType.LONG:
        if not isinstance(value, int):
            raise TypeError(
                f"Long instruments only accept int values, got {value!r}"
            )

    elif not isinstance(value, (int, float)):
        raise TypeError(
            f"Double instruments only accept float values, got {value!r}"
        )


class Aggregator(ABC, Generic[_PointVarT]):
    """Accumulates the measurements of one label set of an instrument.

    An aggregator is built for one `InstrumentValueType` and only accepts
    measurements through the matching ``record_long`` or ``record_double``
    path. Every method is safe to call from any thread; in particular
    `merge_into` may run while other threads keep recording into the same
    instance.
    """

    def __init__(self, value_type: InstrumentValueType):
        self._lock = Lock()
        self._value_type = value_type
        self._ref_lock = Lock()
        # Number of bound handles, -1 once unmapped by a collection
        self._ref_count = 0

    @property
    def value_type(self) -> InstrumentValueType:
        return self._value_type

    def record_long(self, value: int) -> None:
        if self._value_type is not InstrumentValueType.LONG:
            raise TypeError(
                f"{type(self).__name__} aggregates double values"
            )
        check_value(InstrumentValueType.LONG, value)
        self._record(value)

    def record_double(self, value: float) -> None:
        if self._value_type is not InstrumentValueType.DOUBLE:
            raise TypeError(f"{type(self).__name__} aggregates long values")
        check_value(InstrumentValueType.DOUBLE, value)
        self._record(float(value))

    def record(self, value: Union[int, float]) -> None:
        """Records through the path matching this aggregator's value type."""
        if self._value_type is InstrumentValueType.LONG:
            self.record_long(value)
        else:
            self.record_double(value)

    def merge_into(self, target: "Aggregator") -> None:
        """Moves the current state into ``target`` and resets this
        aggregator to the identity of its aggregation."""
        if type(target) is not type(self) or (
            target.value_type is not self._value_type
        ):
            raise TypeError(
                f"Can't merge {type(self).__name__} ({self._value_type.name})"
                f" into {type(target).__name__} ({target.value_type.name})"
            )
        self._merge_into(target)

    @abstractmethod
    def _record(self, value: Union[int, float]) -> None:
        pass

    @abstractmethod
    def _merge_into(self, target: "Aggregator") -> None:
        pass

    @abstractmethod
    def to_point(
        self, start_epoch_nanos: int, epoch_nanos: int, labels: LabelSet
    ) -> Optional[_PointVarT]:
        """Returns a point for the current state, ``None`` if nothing was
        recorded."""

    def acquire(self) -> bool:
        """Takes a reference, fails once the aggregator has been unmapped."""
        with self._ref_lock:
            if self._ref_count < 0:
                return False
            self._ref_count += 1
            return True

    def release(self) -> None:
        with self._ref_lock:
            if self._ref_count > 0:
                self._ref_count -= 1

    def try_unmap(self) -> bool:
        """Marks the aggregator as unmapped if nothing references it."""
        with self._ref_lock:
            if self._ref_count != 0:
                return False
            self._ref_count = -1
            return True


class NoopAggregator(Aggregator[None]):
    def _record(self, value: Union[int, float]) -> None:
        pass

    def _merge_into(self, target: Aggregator) -> None:
        pass

    def to_point(
        self, start_epoch_nanos: int, epoch_nanos: int, labels: LabelSet
    ) -> None:
        return None


class SumAggregator(Aggregator[Union[LongPoint, DoublePoint]]):
    def __init__(self, value_type: InstrumentValueType, monotonic: bool):
        super().__init__(value_type)
        self._monotonic = monotonic
        self._value = self._zero()
        self._has_value = False

    def _zero(self) -> Union[int, float]:
        return 0 if self._value_type is InstrumentValueType.LONG else 0.0

    def _record(self, value: Union[int, float]) -> None:
        if self._monotonic and value < 0:
            raise ValueError(
                f"Monotonic sums can only increase, got {value!r}"
            )
        with self._lock:
            self._value = self._value + value
            self._has_value = True

    def _merge_into(self, target: "SumAggregator") -> None:
        with self._lock:
            if not self._has_value:
                return
            value = self._value
            self._value = self._zero()
            self._has_value = False

        with target._lock:
            target._value = target._value + value
            target._has_value = True

    def to_point(
        self, start_epoch_nanos: int, epoch_nanos: int, labels: LabelSet
    ) -> Optional[Union[LongPoint, DoublePoint]]:
        with self._lock:
            if not self._has_value:
                return None
            value = self._value

        if self._value_type is InstrumentValueType.LONG:
            return LongPoint(start_epoch_nanos, epoch_nanos, labels, value)
        return DoublePoint(start_epoch_nanos, epoch_nanos, labels, value)


class CountAggregator(Aggregator[LongPoint]):
    """Counts the recorded measurements, ignoring their values."""

    def __init__(self, value_type: InstrumentValueType):
        super().__init__(value_type)
        self._count = 0

    def _record(self, value: Union[int, float]) -> None:
        with self._lock:
            self._count += 1

    def _merge_into(self, target: "CountAggregator") -> None:
        with self._lock:
            count = self._count
            self._count = 0

        if count:
            with target._lock:
                target._count += count

    def to_point(
        self, start_epoch_nanos: int, epoch_nanos: int, labels: LabelSet
    ) -> Optional[LongPoint]:
        with self._lock:
            count = self._count

        if count == 0:
            return None
        return LongPoint(start_epoch_nanos, epoch_nanos, labels, count)


class LastValueAggregator(Aggregator[Union[LongPoint, DoublePoint]]):
    """Keeps the most recently recorded value.

    Nothing orders concurrent recorders, so when several threads record into
    the same instance without synchronizing with each other, any of their
    values may be the one that is kept.
    """

    def __init__(self, value_type: InstrumentValueType):
        super().__init__(value_type)
        self._value = None

    def _record(self, value: Union[int, float]) -> None:
        with self._lock:
            self._value = value

    def _merge_into(self, target: "LastValueAggregator") -> None:
        with self._lock:
            value = self._value
            self._value = None

        if value is not None:
            with target._lock:
                target._value = value

    def to_point(
        self, start_epoch_nanos: int, epoch_nanos: int, labels: LabelSet
    ) -> Optional[Union[LongPoint, DoublePoint]]:
        with self._lock:
            value = self._value

        if value is None:
            return None
        if self._value_type is InstrumentValueType.LONG:
            return LongPoint(start_epoch_nanos, epoch_nanos, labels, value)
        return DoublePoint(start_epoch_nanos, epoch_nanos, labels, value)


class MinMaxSumCountAggregator(Aggregator[SummaryPoint]):
    def __init__(self, value_type: InstrumentValueType):
        super().__init__(value_type)
        self._count = 0
        self._sum = 0 if value_type is InstrumentValueType.LONG else 0.0
        self._min = inf
        self._max = -inf

    def _record(self, value: Union[int, float]) -> None:
        with self._lock:
            self._count += 1
            self._sum += value
            self._min = min(self._min, value)
            self._max = max(self._max, value)

    def _merge_into(self, target: "MinMaxSumCountAggregator") -> None:
        with self._lock:
            if self._count == 0:
                return
            count, sum_, min_, max_ = (
                self._count,
                self._sum,
                self._min,
                self._max,
            )
            self._count = 0
            self._sum = (
                0 if self._value_type is InstrumentValueType.LONG else 0.0
            )
            self._min = inf
            self._max = -inf

        with target._lock:
            target._count += count
            target._sum += sum_
            target._min = min(target._min, min_)
            target._max = max(target._max, max_)

    def to_point(
        self, start_epoch_nanos: int, epoch_nanos: int, labels: LabelSet
    ) -> Optional[SummaryPoint]:
        with self._lock:
            if self._count == 0:
                return None
            return SummaryPoint(
                start_epoch_nanos=start_epoch_nanos,
                epoch_nanos=epoch_nanos,
                labels=labels,
                count=self._count,
                sum=self._sum,
                min=self._min,
                max=self._max,
            )


class HistogramAggregator(Aggregator[HistogramPoint]):
    """Counts the recorded values falling into each of a fixed set of
    buckets.

    The boundaries are expected to be validated already, see
    `HistogramAggregatorFactory`.
    """

    def __init__(
        self, value_type: InstrumentValueType, boundaries: Tuple[float, ...]
    ):
        super().__init__(value_type)
        self._boundaries = boundaries
        self._counts = self._get_empty_bucket_counts()
        self._sum = 0 if value_type is InstrumentValueType.LONG else 0.0

    def _get_empty_bucket_counts(self) -> List[int]:
        return [0] * (len(self._boundaries) + 1)

    def _record(self, value: Union[int, float]) -> None:
        with self._lock:
            self._sum += value
            self._counts[bisect_left(self._boundaries, value)] += 1

    def _merge_into(self, target: "HistogramAggregator") -> None:
        if target._boundaries != self._boundaries:
            raise TypeError(
                "Can't merge histograms with different boundaries: "
                f"{self._boundaries} and {target._boundaries}"
            )

        with self._lock:
            if not any(self._counts):
                return
            counts = self._counts
            sum_ = self._sum
            self._counts = self._get_empty_bucket_counts()
            self._sum = (
                0 if self._value_type is InstrumentValueType.LONG else 0.0
            )

        with target._lock:
            target._sum += sum_
            target._counts = [
                target_count + count
                for target_count, count in zip(target._counts, counts)
            ]

    def to_point(
        self, start_epoch_nanos: int, epoch_nanos: int, labels: LabelSet
    ) -> Optional[HistogramPoint]:
        with self._lock:
            if not any(self._counts):
                return None
            counts = tuple(self._counts)
            sum_ = self._sum

        return HistogramPoint(
            start_epoch_nanos=start_epoch_nanos,
            epoch_nanos=epoch_nanos,
            labels=labels,
            sum=sum_,
            count=sum(counts),
            boundaries=self._boundaries,
            counts=counts,
        )


class AggregatorFactory(ABC):
    """Creates fresh aggregators of one kind.

    Factories hold no mutable state, one instance is shared by every label
    set of an instrument across all collection cycles.
    """

    @abstractmethod
    def create_aggregator(self, value_type: InstrumentValueType) -> Aggregator:
        """Returns a new aggregator for values of ``value_type``."""


class NoopAggregatorFactory(AggregatorFactory):
    def create_aggregator(
        self, value_type: InstrumentValueType
    ) -> NoopAggregator:
        return NoopAggregator(value_type)


class SumAggregatorFactory(AggregatorFactory):
    def __init__(self, monotonic: bool = False):
        self._monotonic = monotonic

    def create_aggregator(
        self, value_type: InstrumentValueType
    ) -> SumAggregator:
        return SumAggregator(value_type, self._monotonic)


class CountAggregatorFactory(AggregatorFactory):
    def create_aggregator(
        self, value_type: InstrumentValueType
    ) -> CountAggregator:
        return CountAggregator(value_type)


class LastValueAggregatorFactory(AggregatorFactory):
    def create_aggregator(
        self, value_type: InstrumentValueType
    ) -> LastValueAggregator:
        return LastValueAggregator(value_type)


class MinMaxSumCountAggregatorFactory(AggregatorFactory):
    def create_aggregator(
        self, value_type: InstrumentValueType
    ) -> MinMaxSumCountAggregator:
        return MinMaxSumCountAggregator(value_type)


class HistogramAggregatorFactory(AggregatorFactory):
    """
    Args:
        boundaries: Strictly increasing, finite bucket boundaries.

    Raises:
        ValueError: If the boundaries are not strictly increasing or if any
            of them is infinite or NaN.
    """

    def __init__(self, boundaries: Sequence[float]):
        boundaries = tuple(float(boundary) for boundary in boundaries)

        for boundary in boundaries:
            if isnan(boundary):
                raise ValueError("invalid bucket boundary: NaN")

        for previous, current in zip(boundaries, boundaries[1:]):
            if previous >= current:
                raise ValueError(
                    f"invalid bucket boundary: {previous} >= {current}"
                )

        if boundaries:
            if isinf(boundaries[0]) and boundaries[0] < 0:
                raise ValueError("invalid bucket boundary: -Inf")
            if isinf(boundaries[-1]):
                raise ValueError("invalid bucket boundary: +Inf")

        self._boundaries = boundaries

    @property
    def boundaries(self) -> Tuple[float, ...]:
        return self._boundaries

    def create_aggregator(
        self, value_type: InstrumentValueType
    ) -> HistogramAggregator:
        return HistogramAggregator(value_type, self._boundaries)
