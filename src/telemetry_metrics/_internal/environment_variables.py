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
from os import environ

_logger = getLogger(__name__)

OTEL_METRIC_EXPORT_INTERVAL = "OTEL_METRIC_EXPORT_INTERVAL"
"""
.. envvar:: OTEL_METRIC_EXPORT_INTERVAL

The :envvar:`OTEL_METRIC_EXPORT_INTERVAL` is the time interval (in
milliseconds) between the start of two collection and export attempts of the
periodic exporting metric reader.
Default: 60000
"""

OTEL_METRIC_EXPORT_TIMEOUT = "OTEL_METRIC_EXPORT_TIMEOUT"
"""
.. envvar:: OTEL_METRIC_EXPORT_TIMEOUT

The :envvar:`OTEL_METRIC_EXPORT_TIMEOUT` is the maximum delay (in
milliseconds) waited between two attempts of a retryable export.
Default: 30000
"""

OTEL_SDK_DISABLED = "OTEL_SDK_DISABLED"
"""
.. envvar:: OTEL_SDK_DISABLED

If set to ``true`` (case insensitive), every meter hands out instruments
that discard their measurements and never produce metrics.
Default: "false"
"""


def _get_millis_from_env(name: str, default: int) -> int:
    value = environ.get(name)

    if value is None:
        return default

    try:
        millis = int(value)
    except ValueError:
        _logger.warning(
            "Found invalid value for %s: %r, using default %s",
            name,
            value,
            default,
        )
        return default

    if millis <= 0:
        _logger.warning(
            "%s must be positive, got %s, using default %s",
            name,
            millis,
            default,
        )
        return default

    return millis


def _is_sdk_disabled() -> bool:
    return environ.get(OTEL_SDK_DISABLED, "false").strip().lower() == "true"
