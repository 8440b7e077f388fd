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

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Sequence, Tuple, Union

from telemetry_metrics._internal.labels import LabelSet
from telemetry_metrics._internal.resources import (
    InstrumentationLibraryInfo,
    Resource,
)


class AggregationTemporality(IntEnum):
    """
    The temporality to use when aggregating data.

    Can be one of the following values:
    """

    DELTA = 1
    CUMULATIVE = 2


class MetricDataType(Enum):
    """The kind of aggregated data carried by a `MetricData`."""

    NON_MONOTONIC_LONG = "non_monotonic_long"
    NON_MONOTONIC_DOUBLE = "non_monotonic_double"
    MONOTONIC_LONG = "monotonic_long"
    MONOTONIC_DOUBLE = "monotonic_double"
    GAUGE_LONG = "gauge_long"
    GAUGE_DOUBLE = "gauge_double"
    SUMMARY = "summary"
    HISTOGRAM = "histogram"


@dataclass(frozen=True)
class LongPoint:
    start_epoch_nanos: int
    epoch_nanos: int
    labels: LabelSet
    value: int


@dataclass(frozen=True)
class DoublePoint:
    start_epoch_nanos: int
    epoch_nanos: int
    labels: LabelSet
    value: float


@dataclass(frozen=True)
class SummaryPoint:
    """Min, max, sum and count of the values recorded in a window."""

    start_epoch_nanos: int
    epoch_nanos: int
    labels: LabelSet
    count: int
    sum: Union[int, float]
    min: Union[int, float]
    max: Union[int, float]


@dataclass(frozen=True)
class HistogramPoint:
    """Sum and per bucket counts of the values recorded in a window.

    ``counts`` has one more element than ``boundaries``: ``counts[i]`` holds
    the values in ``(boundaries[i - 1], boundaries[i]]`` and the last element
    holds the values greater than the last boundary.
    """

    start_epoch_nanos: int
    epoch_nanos: int
    labels: LabelSet
    sum: Union[int, float]
    count: int
    boundaries: Tuple[float, ...]
    counts: Tuple[int, ...]


Point = Union[LongPoint, DoublePoint, SummaryPoint, HistogramPoint]


@dataclass(frozen=True)
class MetricData:
    """An immutable snapshot of one instrument produced by a collection."""

    resource: Resource
    instrumentation_library_info: InstrumentationLibraryInfo
    name: str
    description: str
    unit: str
    type: MetricDataType
    temporality: AggregationTemporality
    points: Sequence[Point]
