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

"""
A metrics SDK turning concurrent instrument recordings into periodic,
consistent snapshots.

.. code-block:: python

    from telemetry_metrics import MeterProvider
    from telemetry_metrics.export import (
        ConsoleMetricExporter,
        PeriodicExportingMetricReader,
    )

    reader = PeriodicExportingMetricReader(ConsoleMetricExporter())
    provider = MeterProvider(metric_readers=[reader])
    meter = provider.get_meter("my.library", "0.1.0")

    requests = meter.create_counter("requests")
    requests.add(1, {"route": "/a"})
"""

from telemetry_metrics._internal.accumulator import ObserverResult
from telemetry_metrics._internal.clock import Clock, ManualClock, SystemClock
from telemetry_metrics._internal.instrument import (
    BoundCounter,
    BoundUpDownCounter,
    BoundValueRecorder,
    Counter,
    InstrumentDescriptor,
    InstrumentType,
    InstrumentValueType,
    SumObserver,
    UpDownCounter,
    UpDownSumObserver,
    ValueObserver,
    ValueRecorder,
)
from telemetry_metrics._internal.labels import LabelSet
from telemetry_metrics._internal.meter import Meter, MeterProvider
from telemetry_metrics._internal.point import (
    AggregationTemporality,
    DoublePoint,
    HistogramPoint,
    LongPoint,
    MetricData,
    MetricDataType,
    SummaryPoint,
)
from telemetry_metrics._internal.resources import (
    InstrumentationLibraryInfo,
    Resource,
)

__all__ = [
    "AggregationTemporality",
    "BoundCounter",
    "BoundUpDownCounter",
    "BoundValueRecorder",
    "Clock",
    "Counter",
    "DoublePoint",
    "HistogramPoint",
    "InstrumentDescriptor",
    "InstrumentType",
    "InstrumentValueType",
    "InstrumentationLibraryInfo",
    "LabelSet",
    "LongPoint",
    "ManualClock",
    "Meter",
    "MeterProvider",
    "MetricData",
    "MetricDataType",
    "ObserverResult",
    "Resource",
    "SumObserver",
    "SummaryPoint",
    "SystemClock",
    "UpDownCounter",
    "UpDownSumObserver",
    "ValueObserver",
    "ValueRecorder",
]
