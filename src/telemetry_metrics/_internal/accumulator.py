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

from logging import getLogger
from threading import Lock
from typing import Callable, Dict, List, Optional, Union

from opentelemetry.util.types import Attributes

from telemetry_metrics._internal.aggregation import Aggregation
from telemetry_metrics._internal.aggregator import (
    Aggregator,
    NoopAggregator,
    check_value,
)
from telemetry_metrics._internal.clock import Clock
from telemetry_metrics._internal.instrument import (
    InstrumentDescriptor,
    InstrumentValueType,
)
from telemetry_metrics._internal.labels import LabelSet
from telemetry_metrics._internal.point import (
    AggregationTemporality,
    MetricData,
)
from telemetry_metrics._internal.resources import (
    InstrumentationLibraryInfo,
    Resource,
)

_logger = getLogger(__name__)


class InstrumentProcessor:
    """Batches the aggregators of one instrument into collected metrics.

    The processor owns one aggregator per label set seen during the current
    accumulation window. Under delta temporality the window, and with it the
    map, starts over after every completed collection cycle; under cumulative
    temporality the window starts with the instrument and never ends.

    Not thread safe, callers serialize access per instrument.
    """

    # pylint: disable=too-many-arguments
    def __init__(
        self,
        descriptor: InstrumentDescriptor,
        aggregation: Aggregation,
        temporality: AggregationTemporality,
        resource: Resource,
        instrumentation_library_info: InstrumentationLibraryInfo,
        clock: Clock,
    ):
        self._descriptor = descriptor
        self._aggregation = aggregation
        self._temporality = temporality
        self._resource = resource
        self._instrumentation_library_info = instrumentation_library_info
        self._clock = clock
        self._aggregator_factory = aggregation.get_aggregator_factory(
            descriptor
        )
        self._aggregators: Dict[LabelSet, Aggregator] = {}
        self._start_epoch_nanos = clock.now()

    @property
    def descriptor(self) -> InstrumentDescriptor:
        return self._descriptor

    @property
    def start_epoch_nanos(self) -> int:
        return self._start_epoch_nanos

    @property
    def labels(self) -> List[LabelSet]:
        return list(self._aggregators)

    def create_aggregator(self) -> Aggregator:
        return self._aggregator_factory.create_aggregator(
            self._descriptor.value_type
        )

    def batch(
        self, labels: LabelSet, aggregator: Aggregator, unmapped: bool
    ) -> None:
        """Moves the state of ``aggregator`` into the window.

        An ``unmapped`` aggregator no longer receives measurements, so if the
        window has nothing for ``labels`` yet it is adopted as is.
        """
        current = self._aggregators.get(labels)

        if current is None:
            if unmapped:
                self._aggregators[labels] = aggregator
                return
            current = self.create_aggregator()
            self._aggregators[labels] = current

        aggregator.merge_into(current)

    def skip_collection_cycle(self, epoch_nanos: Optional[int] = None) -> None:
        """Ends the current collection cycle without reporting it.

        Under delta temporality the state of the window is dropped and the
        next window starts at ``epoch_nanos``.
        """
        if epoch_nanos is None:
            epoch_nanos = self._clock.now()
        self._end_window(epoch_nanos)

    def _end_window(self, epoch_nanos: int) -> None:
        if self._temporality is AggregationTemporality.DELTA:
            self._aggregators = {}
            self._start_epoch_nanos = epoch_nanos

    def complete_collection_cycle(
        self, epoch_nanos: Optional[int] = None
    ) -> List[MetricData]:
        if epoch_nanos is None:
            epoch_nanos = self._clock.now()

        points = []
        for labels, aggregator in self._aggregators.items():
            point = aggregator.to_point(
                self._start_epoch_nanos, epoch_nanos, labels
            )
            if point is not None:
                points.append(point)

        self._end_window(epoch_nanos)

        if not points:
            return []

        return [
            MetricData(
                resource=self._resource,
                instrumentation_library_info=(
                    self._instrumentation_library_info
                ),
                name=self._descriptor.name,
                description=self._descriptor.description,
                unit=self._aggregation.get_unit(self._descriptor),
                type=self._aggregation.get_descriptor_type(self._descriptor),
                temporality=self._temporality,
                points=tuple(points),
            )
        ]


class SynchronousInstrumentAccumulator:
    """Owns the live aggregators of a synchronous instrument.

    Recording threads reach the aggregator of their label set through
    `bind` and keep a reference to it until they release it. A collection
    drains every live aggregator into the processor; aggregators nobody
    references any more are unmapped and dropped from the live map in the
    process, while referenced ones stay and keep receiving measurements,
    which the next collection picks up.
    """

    def __init__(self, processor: InstrumentProcessor):
        self._processor = processor
        self._lock = Lock()
        self._collect_lock = Lock()
        self._aggregators: Dict[LabelSet, Aggregator] = {}

    def bind(self, labels: Union[LabelSet, Attributes]) -> Aggregator:
        """Returns the referenced live aggregator of ``labels``.

        Callers must `Aggregator.release` the aggregator when done with it.
        """
        labels = LabelSet.create(labels)

        aggregator = self._aggregators.get(labels)
        if aggregator is not None and aggregator.acquire():
            return aggregator

        candidate = self._processor.create_aggregator()
        candidate.acquire()

        with self._lock:
            aggregator = self._aggregators.get(labels)
            if aggregator is None or not aggregator.acquire():
                self._aggregators[labels] = candidate
                return candidate

        # Another thread mapped an aggregator first, keep that one and make
        # sure nothing the candidate saw is lost.
        candidate.merge_into(aggregator)
        candidate.release()
        return aggregator

    def collect_all(
        self, epoch_nanos: Optional[int] = None
    ) -> List[MetricData]:
        with self._collect_lock:
            with self._lock:
                entries = list(self._aggregators.items())

            for labels, aggregator in entries:
                unmapped = aggregator.try_unmap()
                if unmapped:
                    with self._lock:
                        if self._aggregators.get(labels) is aggregator:
                            del self._aggregators[labels]
                self._processor.batch(labels, aggregator, unmapped)

            return self._processor.complete_collection_cycle(epoch_nanos)


class ObserverResult:
    """The sink observer callbacks report their observations to.

    When a label set is observed more than once, the last value wins.
    """

    def __init__(self, value_type: InstrumentValueType):
        self._value_type = value_type
        self._observations: Dict[LabelSet, Union[int, float]] = {}

    def observe(
        self,
        value: Union[int, float],
        labels: Union[LabelSet, Attributes] = None,
    ) -> None:
        check_value(self._value_type, value)
        self._observations[LabelSet.create(labels)] = value

    @property
    def observations(self) -> Dict[LabelSet, Union[int, float]]:
        return dict(self._observations)


class AsynchronousInstrumentAccumulator:
    """Collects an asynchronous instrument by running its callback.

    The callback runs on the collecting thread while holding the instrument
    lock, concurrent collections wait for each other instead of running the
    callback in parallel. A cycle whose callback is missing or raises reports
    nothing; under delta temporality its window is dropped, so the next
    reported window starts where the failed one ended.
    """

    def __init__(
        self, processor: InstrumentProcessor, value_type: InstrumentValueType
    ):
        self._processor = processor
        self._value_type = value_type
        self._collect_lock = Lock()

    def collect_all(
        self,
        callback: Optional[Callable[[ObserverResult], None]],
        epoch_nanos: Optional[int] = None,
    ) -> List[MetricData]:
        with self._collect_lock:
            if callback is None:
                self._processor.skip_collection_cycle(epoch_nanos)
                return []

            result = ObserverResult(self._value_type)

            try:
                callback(result)
            # pylint: disable=broad-except
            except Exception:
                _logger.exception(
                    "Callback of observer %s failed",
                    self._processor.descriptor.name,
                )
                self._processor.skip_collection_cycle(epoch_nanos)
                return []

            for labels, value in result.observations.items():
                aggregator = self._processor.create_aggregator()
                aggregator.record(value)
                self._processor.batch(labels, aggregator, True)

            return self._processor.complete_collection_cycle(epoch_nanos)


class NoopAccumulator:
    """Accumulator of the instruments of a disabled or shut down SDK."""

    def __init__(self, value_type: InstrumentValueType):
        self._aggregator = NoopAggregator(value_type)

    def bind(self, labels: Union[LabelSet, Attributes]) -> Aggregator:
        return self._aggregator

    # pylint: disable=unused-argument
    def collect_all(self, *args, **kwargs) -> List[MetricData]:
        return []
