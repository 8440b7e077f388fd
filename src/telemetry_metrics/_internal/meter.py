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

# pylint: disable=too-many-arguments

from logging import getLogger
from threading import Lock
from typing import (
    Callable,
    Dict,
    Iterable,
    List,
    Optional,
    Sequence,
    Tuple,
    Type,
    Union,
)

from opentelemetry.util.types import Attributes

from telemetry_metrics._internal.accumulator import (
    AsynchronousInstrumentAccumulator,
    InstrumentProcessor,
    NoopAccumulator,
    SynchronousInstrumentAccumulator,
)
from telemetry_metrics._internal.aggregator import check_value
from telemetry_metrics._internal.clock import Clock, SystemClock
from telemetry_metrics._internal.environment_variables import (
    _is_sdk_disabled,
)
from telemetry_metrics._internal.export import MetricReader
from telemetry_metrics._internal.instrument import (
    Counter,
    InstrumentDescriptor,
    InstrumentType,
    InstrumentValueType,
    SumObserver,
    UpDownCounter,
    UpDownSumObserver,
    ValueObserver,
    ValueRecorder,
    _Instrument,
    _SynchronousInstrument,
)
from telemetry_metrics._internal.labels import LabelSet
from telemetry_metrics._internal.point import MetricData
from telemetry_metrics._internal.resources import (
    InstrumentationLibraryInfo,
    Resource,
)
from telemetry_metrics._internal.view import (
    AggregationConfiguration,
    InstrumentSelector,
    ViewRegistry,
)

_logger = getLogger(__name__)

_ValueType = Union[Type[int], Type[float], InstrumentValueType]


def _to_value_type(value_type: _ValueType) -> InstrumentValueType:
    if isinstance(value_type, InstrumentValueType):
        return value_type
    if value_type is int:
        return InstrumentValueType.LONG
    if value_type is float:
        return InstrumentValueType.DOUBLE
    raise TypeError(
        f"Invalid value type {value_type!r}, expected int or float"
    )


class _MeterProviderSharedState:
    def __init__(
        self,
        resource: Resource,
        clock: Clock,
        view_registry: ViewRegistry,
        disabled: bool,
    ):
        self.resource = resource
        self.clock = clock
        self.view_registry = view_registry
        self.disabled = disabled
        self.shutdown = False


class Meter:
    """Creates and keeps track of the instruments of one instrumentation
    library.

    Instruments are registered by name. Asking again for an instrument with
    the same descriptor returns the instrument created the first time;
    asking for a different descriptor under an already used name replaces
    the old instrument.
    """

    def __init__(
        self,
        instrumentation_library_info: InstrumentationLibraryInfo,
        shared_state: _MeterProviderSharedState,
    ):
        self._instrumentation_library_info = instrumentation_library_info
        self._shared_state = shared_state
        self._lock = Lock()
        self._instruments: Dict[str, _Instrument] = {}

    @property
    def instrumentation_library_info(self) -> InstrumentationLibraryInfo:
        return self._instrumentation_library_info

    def create_counter(
        self,
        name: str,
        description: str = "",
        unit: str = "1",
        value_type: _ValueType = int,
    ) -> Counter:
        return self._register(
            Counter,
            name,
            description,
            unit,
            InstrumentType.COUNTER,
            value_type,
        )

    def create_up_down_counter(
        self,
        name: str,
        description: str = "",
        unit: str = "1",
        value_type: _ValueType = int,
    ) -> UpDownCounter:
        return self._register(
            UpDownCounter,
            name,
            description,
            unit,
            InstrumentType.UP_DOWN_COUNTER,
            value_type,
        )

    def create_value_recorder(
        self,
        name: str,
        description: str = "",
        unit: str = "1",
        value_type: _ValueType = float,
    ) -> ValueRecorder:
        return self._register(
            ValueRecorder,
            name,
            description,
            unit,
            InstrumentType.VALUE_RECORDER,
            value_type,
        )

    def create_sum_observer(
        self,
        name: str,
        callback: Optional[Callable] = None,
        description: str = "",
        unit: str = "1",
        value_type: _ValueType = int,
    ) -> SumObserver:
        return self._register(
            SumObserver,
            name,
            description,
            unit,
            InstrumentType.SUM_OBSERVER,
            value_type,
            callback,
        )

    def create_up_down_sum_observer(
        self,
        name: str,
        callback: Optional[Callable] = None,
        description: str = "",
        unit: str = "1",
        value_type: _ValueType = int,
    ) -> UpDownSumObserver:
        return self._register(
            UpDownSumObserver,
            name,
            description,
            unit,
            InstrumentType.UP_DOWN_SUM_OBSERVER,
            value_type,
            callback,
        )

    def create_value_observer(
        self,
        name: str,
        callback: Optional[Callable] = None,
        description: str = "",
        unit: str = "1",
        value_type: _ValueType = float,
    ) -> ValueObserver:
        return self._register(
            ValueObserver,
            name,
            description,
            unit,
            InstrumentType.VALUE_OBSERVER,
            value_type,
            callback,
        )

    def record_batch(
        self,
        labels: Union[LabelSet, Attributes],
        measurements: Iterable[
            Tuple[_SynchronousInstrument, Union[int, float]]
        ],
    ) -> None:
        """Records several measurements sharing the same labels.

        Every measurement is checked before any is recorded, so an invalid
        one leaves all instruments untouched.
        """
        labels = LabelSet.create(labels)
        measurements = list(measurements)

        for instrument, value in measurements:
            if not isinstance(instrument, _SynchronousInstrument):
                raise TypeError(
                    f"Only synchronous instruments can be recorded, got "
                    f"{instrument!r}"
                )
            descriptor = instrument.descriptor
            check_value(descriptor.value_type, value)
            if descriptor.instrument_type.is_monotonic and value < 0:
                raise ValueError(
                    f"{instrument.name} is monotonic, got negative value "
                    f"{value}"
                )

        for instrument, value in measurements:
            # pylint: disable=protected-access
            instrument._record(value, labels)

    def collect_all(
        self, epoch_nanos: Optional[int] = None
    ) -> List[MetricData]:
        with self._lock:
            instruments = list(self._instruments.values())

        metrics = []
        for instrument in instruments:
            metrics.extend(instrument.collect_all(epoch_nanos))
        return metrics

    def _register(
        self,
        instrument_class,
        name: str,
        description: str,
        unit: str,
        instrument_type: InstrumentType,
        value_type: _ValueType,
        callback: Optional[Callable] = None,
    ):
        descriptor = InstrumentDescriptor(
            name=name,
            description=description,
            unit=unit,
            instrument_type=instrument_type,
            value_type=_to_value_type(value_type),
        )

        with self._lock:
            instrument = self._instruments.get(name)

            if instrument is not None:
                if instrument.descriptor == descriptor:
                    if callback is not None:
                        instrument.set_callback(callback)
                    return instrument

                _logger.warning(
                    "Instrument %s was already registered as %s, replacing it"
                    " with %s",
                    name,
                    instrument.descriptor,
                    descriptor,
                )

            accumulator = self._create_accumulator(descriptor)

            if instrument_type.is_synchronous:
                instrument = instrument_class(descriptor, accumulator)
            else:
                instrument = instrument_class(
                    descriptor, accumulator, callback
                )

            self._instruments[name] = instrument
            return instrument

    def _create_accumulator(self, descriptor: InstrumentDescriptor):
        shared_state = self._shared_state

        if shared_state.disabled or shared_state.shutdown:
            return NoopAccumulator(descriptor.value_type)

        configuration = shared_state.view_registry.find_view(descriptor)
        processor = InstrumentProcessor(
            descriptor,
            configuration.aggregation,
            configuration.temporality,
            shared_state.resource,
            self._instrumentation_library_info,
            shared_state.clock,
        )

        if descriptor.instrument_type.is_synchronous:
            return SynchronousInstrumentAccumulator(processor)
        return AsynchronousInstrumentAccumulator(
            processor, descriptor.value_type
        )


class MeterProvider:
    """Entry point of the SDK: hands out meters and collects them all.

    Args:
        metric_readers: Readers that trigger collections, typically a
            `PeriodicExportingMetricReader`.
        resource: The resource stamped on every collected metric.
        clock: Source of the timestamps of collected points.
        disabled: If true, every instrument discards its measurements.
            Defaults to the value of ``OTEL_SDK_DISABLED``.
    """

    def __init__(
        self,
        metric_readers: Sequence[MetricReader] = (),
        resource: Optional[Resource] = None,
        clock: Optional[Clock] = None,
        disabled: Optional[bool] = None,
    ):
        self._lock = Lock()
        self._shared_state = _MeterProviderSharedState(
            resource=(
                resource if resource is not None else Resource.get_empty()
            ),
            clock=clock if clock is not None else SystemClock(),
            view_registry=ViewRegistry(),
            disabled=_is_sdk_disabled() if disabled is None else disabled,
        )
        self._meters: Dict[Tuple[str, Optional[str]], Meter] = {}
        self._metric_readers = tuple(metric_readers)

        for metric_reader in self._metric_readers:
            # pylint: disable=protected-access
            metric_reader._set_collect_callback(self.collect_all_metrics)

    @property
    def resource(self) -> Resource:
        return self._shared_state.resource

    def get_meter(self, name: str, version: Optional[str] = None) -> Meter:
        if not name:
            _logger.warning("Meter name cannot be None or empty.")

        with self._lock:
            key = (name, version)
            meter = self._meters.get(key)
            if meter is None:
                meter = Meter(
                    InstrumentationLibraryInfo(name, version),
                    self._shared_state,
                )
                self._meters[key] = meter
            return meter

    def register_view(
        self,
        selector: InstrumentSelector,
        configuration: AggregationConfiguration,
    ) -> None:
        """Overrides the aggregation of the instruments matching
        ``selector``.

        The view applies to instruments created after this call.
        """
        self._shared_state.view_registry.register_view(
            selector, configuration
        )

    def collect_all_metrics(self) -> List[MetricData]:
        """Completes a collection cycle of every registered instrument."""
        if self._shared_state.shutdown:
            _logger.warning("Can't collect metrics, provider is shut down")
            return []

        epoch_nanos = self._shared_state.clock.now()

        with self._lock:
            meters = list(self._meters.values())

        metrics = []
        for meter in meters:
            metrics.extend(meter.collect_all(epoch_nanos))
        return metrics

    def force_flush(self) -> bool:
        """Collects and exports through every reader, blocking until done."""
        results = [
            metric_reader.force_flush()
            for metric_reader in self._metric_readers
        ]
        return all(results)

    def shutdown(self) -> None:
        if self._shared_state.shutdown:
            _logger.warning("shutdown can only be called once")
            return

        for metric_reader in self._metric_readers:
            metric_reader.shutdown()

        self._shared_state.shutdown = True
