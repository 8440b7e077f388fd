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
from typing import Sequence

from telemetry_metrics._internal.aggregator import (
    AggregatorFactory,
    CountAggregatorFactory,
    HistogramAggregatorFactory,
    LastValueAggregatorFactory,
    MinMaxSumCountAggregatorFactory,
    SumAggregatorFactory,
)
from telemetry_metrics._internal.instrument import (
    InstrumentDescriptor,
    InstrumentType,
    InstrumentValueType,
)
from telemetry_metrics._internal.point import MetricDataType

_DEFAULT_BOUNDARIES = (
    0.0,
    5.0,
    10.0,
    25.0,
    50.0,
    75.0,
    100.0,
    250.0,
    500.0,
    750.0,
    1000.0,
    2500.0,
    5000.0,
    7500.0,
    10000.0,
)


def _number_type(
    descriptor: InstrumentDescriptor, monotonic: bool
) -> MetricDataType:
    # pylint: disable=no-else-return
    if descriptor.value_type is InstrumentValueType.LONG:
        if monotonic:
            return MetricDataType.MONOTONIC_LONG
        return MetricDataType.NON_MONOTONIC_LONG
    else:
        if monotonic:
            return MetricDataType.MONOTONIC_DOUBLE
        return MetricDataType.NON_MONOTONIC_DOUBLE


class Aggregation(ABC):
    """
    Base class for all aggregation types.

    An aggregation decides which aggregators an instrument uses and how the
    resulting metric is described.
    """

    @abstractmethod
    def get_aggregator_factory(
        self, descriptor: InstrumentDescriptor
    ) -> AggregatorFactory:
        """Returns the factory of the aggregators of ``descriptor``."""

    @abstractmethod
    def get_descriptor_type(
        self, descriptor: InstrumentDescriptor
    ) -> MetricDataType:
        """Returns the type of the `MetricData` produced for
        ``descriptor``."""

    def get_unit(self, descriptor: InstrumentDescriptor) -> str:
        return descriptor.unit


class SumAggregation(Aggregation):
    """This aggregation informs the SDK to collect:

    - The arithmetic sum of Measurement values.

    Negative values are rejected for monotonic instruments.
    """

    def get_aggregator_factory(
        self, descriptor: InstrumentDescriptor
    ) -> AggregatorFactory:
        if descriptor.instrument_type.is_monotonic:
            return _MONOTONIC_SUM_FACTORY
        return _SUM_FACTORY

    def get_descriptor_type(
        self, descriptor: InstrumentDescriptor
    ) -> MetricDataType:
        return _number_type(
            descriptor, descriptor.instrument_type.is_monotonic
        )


class CountAggregation(Aggregation):
    """This aggregation informs the SDK to collect:

    - The number of Measurements, regardless of their values.
    """

    def get_aggregator_factory(
        self, descriptor: InstrumentDescriptor
    ) -> AggregatorFactory:
        return _COUNT_FACTORY

    def get_descriptor_type(
        self, descriptor: InstrumentDescriptor
    ) -> MetricDataType:
        return MetricDataType.MONOTONIC_LONG

    def get_unit(self, descriptor: InstrumentDescriptor) -> str:
        return "1"


class LastValueAggregation(Aggregation):
    """
    This aggregation informs the SDK to collect:

    - The last Measurement.

    Sum observers report totals, so their last value is described as a sum
    of the matching monotonicity; every other instrument gets a gauge.
    """

    def get_aggregator_factory(
        self, descriptor: InstrumentDescriptor
    ) -> AggregatorFactory:
        return _LAST_VALUE_FACTORY

    def get_descriptor_type(
        self, descriptor: InstrumentDescriptor
    ) -> MetricDataType:
        if descriptor.instrument_type is InstrumentType.SUM_OBSERVER:
            return _number_type(descriptor, True)
        if descriptor.instrument_type is InstrumentType.UP_DOWN_SUM_OBSERVER:
            return _number_type(descriptor, False)
        if descriptor.value_type is InstrumentValueType.LONG:
            return MetricDataType.GAUGE_LONG
        return MetricDataType.GAUGE_DOUBLE


class MinMaxSumCountAggregation(Aggregation):
    """This aggregation informs the SDK to collect:

    - Min Measurement value in population.
    - Max Measurement value in population.
    - Arithmetic sum of Measurement values in population.
    - Count of Measurements in population.
    """

    def get_aggregator_factory(
        self, descriptor: InstrumentDescriptor
    ) -> AggregatorFactory:
        return _MIN_MAX_SUM_COUNT_FACTORY

    def get_descriptor_type(
        self, descriptor: InstrumentDescriptor
    ) -> MetricDataType:
        return MetricDataType.SUMMARY


class ExplicitBucketHistogramAggregation(Aggregation):
    """This aggregation informs the SDK to collect:

    - Count of Measurement values falling within explicit bucket boundaries.
    - Arithmetic sum of Measurement values in population.

    Args:
        boundaries: Array of strictly increasing, finite values representing
            explicit bucket boundary values.

    Raises:
        ValueError: If ``boundaries`` is invalid.
    """

    def __init__(self, boundaries: Sequence[float] = _DEFAULT_BOUNDARIES):
        self._factory = HistogramAggregatorFactory(boundaries)

    @property
    def boundaries(self):
        return self._factory.boundaries

    def get_aggregator_factory(
        self, descriptor: InstrumentDescriptor
    ) -> AggregatorFactory:
        return self._factory

    def get_descriptor_type(
        self, descriptor: InstrumentDescriptor
    ) -> MetricDataType:
        return MetricDataType.HISTOGRAM


_SUM_FACTORY = SumAggregatorFactory(monotonic=False)
_MONOTONIC_SUM_FACTORY = SumAggregatorFactory(monotonic=True)
_COUNT_FACTORY = CountAggregatorFactory()
_LAST_VALUE_FACTORY = LastValueAggregatorFactory()
_MIN_MAX_SUM_COUNT_FACTORY = MinMaxSumCountAggregatorFactory()
