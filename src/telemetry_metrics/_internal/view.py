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

from dataclasses import dataclass, field
from logging import getLogger
from re import Pattern, compile as re_compile
from threading import Lock
from types import MappingProxyType
from typing import Dict, Mapping, Tuple

from telemetry_metrics._internal.aggregation import (
    Aggregation,
    LastValueAggregation,
    MinMaxSumCountAggregation,
    SumAggregation,
)
from telemetry_metrics._internal.instrument import (
    InstrumentDescriptor,
    InstrumentType,
)
from telemetry_metrics._internal.point import AggregationTemporality

_logger = getLogger(__name__)


@dataclass(frozen=True)
class InstrumentSelector:
    """Selects the instruments of one type whose whole name matches
    ``instrument_name_regex``."""

    instrument_type: InstrumentType
    instrument_name_regex: str = ".*"
    instrument_name_pattern: Pattern = field(
        init=False, repr=False, compare=False
    )

    def __post_init__(self):
        if not isinstance(self.instrument_type, InstrumentType):
            raise TypeError(
                f"Invalid instrument type {self.instrument_type!r}"
            )
        # frozen dataclass, the compiled pattern is derived from the regex
        object.__setattr__(
            self,
            "instrument_name_pattern",
            re_compile(self.instrument_name_regex),
        )

    def matches(self, descriptor: InstrumentDescriptor) -> bool:
        return (
            descriptor.instrument_type is self.instrument_type
            and self.instrument_name_pattern.fullmatch(descriptor.name)
            is not None
        )


@dataclass(frozen=True)
class AggregationConfiguration:
    aggregation: Aggregation
    temporality: AggregationTemporality


_CUMULATIVE_SUM = AggregationConfiguration(
    SumAggregation(), AggregationTemporality.CUMULATIVE
)
_DELTA_SUMMARY = AggregationConfiguration(
    MinMaxSumCountAggregation(), AggregationTemporality.DELTA
)
_CUMULATIVE_LAST_VALUE = AggregationConfiguration(
    LastValueAggregation(), AggregationTemporality.CUMULATIVE
)
_DELTA_LAST_VALUE = AggregationConfiguration(
    LastValueAggregation(), AggregationTemporality.DELTA
)

_DEFAULT_CONFIGURATIONS = {
    InstrumentType.COUNTER: _CUMULATIVE_SUM,
    InstrumentType.UP_DOWN_COUNTER: _CUMULATIVE_SUM,
    InstrumentType.VALUE_RECORDER: _DELTA_SUMMARY,
    InstrumentType.VALUE_OBSERVER: _DELTA_LAST_VALUE,
    InstrumentType.SUM_OBSERVER: _CUMULATIVE_LAST_VALUE,
    InstrumentType.UP_DOWN_SUM_OBSERVER: _CUMULATIVE_LAST_VALUE,
}

_Rules = Tuple[Tuple[InstrumentSelector, AggregationConfiguration], ...]


class AggregationChooser:
    """Chooses the aggregation and temporality of instruments.

    Rules are kept per instrument type, newest first, and the first rule
    whose pattern matches the instrument name wins. That means the most
    recently added matching rule is used, even if an older rule has a more
    specific pattern. Instruments no rule matches get the default
    configuration of their type.

    The rule table is never mutated: `add_view` builds a new table under a
    lock and swaps it in, so readers always see a complete table.
    """

    def __init__(self):
        self._lock = Lock()
        self._configuration: Mapping[InstrumentType, _Rules] = (
            MappingProxyType(
                {instrument_type: () for instrument_type in InstrumentType}
            )
        )

    def choose_aggregation(
        self, descriptor: InstrumentDescriptor
    ) -> AggregationConfiguration:
        for selector, configuration in self._configuration[
            descriptor.instrument_type
        ]:
            if selector.matches(descriptor):
                return configuration

        return _DEFAULT_CONFIGURATIONS[descriptor.instrument_type]

    def add_view(
        self,
        selector: InstrumentSelector,
        configuration: AggregationConfiguration,
    ) -> None:
        with self._lock:
            new_configuration: Dict[InstrumentType, _Rules] = dict(
                self._configuration
            )
            new_configuration[selector.instrument_type] = (
                (selector, configuration),
            ) + new_configuration[selector.instrument_type]
            self._configuration = MappingProxyType(new_configuration)

        _logger.debug(
            "Registered view for %s instruments matching %r: %s %s",
            selector.instrument_type.value,
            selector.instrument_name_regex,
            type(configuration.aggregation).__name__,
            configuration.temporality.name,
        )


class ViewRegistry:
    """Holds the views registered with a `MeterProvider`."""

    def __init__(self):
        self._aggregation_chooser = AggregationChooser()

    def register_view(
        self,
        selector: InstrumentSelector,
        configuration: AggregationConfiguration,
    ) -> None:
        self._aggregation_chooser.add_view(selector, configuration)

    def find_view(
        self, descriptor: InstrumentDescriptor
    ) -> AggregationConfiguration:
        return self._aggregation_chooser.choose_aggregation(descriptor)
