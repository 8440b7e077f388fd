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
from enum import Enum
from logging import getLogger
from os import linesep
from sys import stdout
from threading import Event, Lock, Thread
from typing import IO, Callable, List, Optional, Sequence

from backoff import expo

from telemetry_metrics._internal.environment_variables import (
    OTEL_METRIC_EXPORT_INTERVAL,
    OTEL_METRIC_EXPORT_TIMEOUT,
    _get_millis_from_env,
)
from telemetry_metrics._internal.point import MetricData

_logger = getLogger(__name__)

_DEFAULT_EXPORT_INTERVAL_MILLIS = 60000
_DEFAULT_EXPORT_TIMEOUT_MILLIS = 30000
_DEFAULT_MAX_EXPORT_ATTEMPTS = 5


class MetricExportResult(Enum):
    SUCCESS = 0
    FAILED_RETRYABLE = 1
    FAILED_NOT_RETRYABLE = 2


class MetricExporter(ABC):
    """Interface for exporting metrics.

    Interface to be implemented by services that want to export metrics
    received in their own format.
    """

    @abstractmethod
    def export(self, metrics: Sequence[MetricData]) -> MetricExportResult:
        """Exports a batch of collected metrics.

        Args:
            metrics: The metrics of one collection cycle.

        Returns:
            The result of the export.
        """

    def shutdown(self) -> None:
        """Shuts down the exporter.

        Called when the SDK is shut down.
        """


class ConsoleMetricExporter(MetricExporter):
    """Implementation of `MetricExporter` that prints metrics to the
    console.

    This class can be used for diagnostic purposes. It prints the exported
    metrics to the console STDOUT.
    """

    def __init__(
        self,
        out: IO = stdout,
        formatter: Callable[[MetricData], str] = lambda metric: str(metric)
        + linesep,
    ):
        self.out = out
        self.formatter = formatter

    def export(self, metrics: Sequence[MetricData]) -> MetricExportResult:
        for metric in metrics:
            self.out.write(self.formatter(metric))
        self.out.flush()
        return MetricExportResult.SUCCESS


class InMemoryMetricExporter(MetricExporter):
    """Implementation of `MetricExporter` that stores metrics in memory.

    This class can be used for testing purposes. It stores the exported
    metrics in a list in memory that can be retrieved using the
    :func:`.get_finished_metrics` method.
    """

    def __init__(self):
        self._finished_metrics: List[MetricData] = []
        self._lock = Lock()
        self._stopped = False

    def clear(self) -> None:
        """Clear list of collected metrics."""
        with self._lock:
            self._finished_metrics.clear()

    def get_finished_metrics(self) -> List[MetricData]:
        """Get list of collected metrics."""
        with self._lock:
            return list(self._finished_metrics)

    def export(self, metrics: Sequence[MetricData]) -> MetricExportResult:
        if self._stopped:
            return MetricExportResult.FAILED_NOT_RETRYABLE
        with self._lock:
            self._finished_metrics.extend(metrics)
        return MetricExportResult.SUCCESS

    def shutdown(self) -> None:
        self._stopped = True


class MetricReader(ABC):
    """Triggers the collections of a `MeterProvider`.

    The provider registers its collect function with every reader it is
    given.
    """

    def __init__(self):
        self._collect: Optional[Callable[[], List[MetricData]]] = None

    def _set_collect_callback(
        self, collect: Callable[[], List[MetricData]]
    ) -> None:
        self._collect = collect

    def collect(self) -> List[MetricData]:
        if self._collect is None:
            _logger.debug(
                "%s is not registered with a MeterProvider",
                type(self).__name__,
            )
            return []
        return self._collect()

    @abstractmethod
    def force_flush(self) -> bool:
        pass

    @abstractmethod
    def shutdown(self) -> None:
        pass


class InMemoryMetricReader(MetricReader):
    """Collects on demand and hands the metrics back to the caller."""

    def get_metrics(self) -> List[MetricData]:
        return self.collect()

    def force_flush(self) -> bool:
        return True

    def shutdown(self) -> None:
        pass


def _create_exp_backoff_generator(*args, **kwargs):
    # expo first yields None to be primed by send(None)
    gen = expo(*args, **kwargs)
    gen.send(None)
    return gen


class PeriodicExportingMetricReader(MetricReader):
    """Collects and exports metrics on a fixed interval.

    A daemon thread completes a collection cycle every
    ``export_interval_millis`` and hands the result to ``exporter``. Exports
    that fail with `MetricExportResult.FAILED_RETRYABLE` are retried with an
    exponential backoff capped at ``export_timeout_millis``, up to
    ``max_export_attempts`` attempts.

    Args:
        exporter: Where collected metrics are sent.
        export_interval_millis: Defaults to ``OTEL_METRIC_EXPORT_INTERVAL``,
            or 60000.
        export_timeout_millis: Defaults to ``OTEL_METRIC_EXPORT_TIMEOUT``,
            or 30000.
        max_export_attempts: Number of export attempts per batch.
    """

    def __init__(
        self,
        exporter: MetricExporter,
        export_interval_millis: Optional[float] = None,
        export_timeout_millis: Optional[float] = None,
        max_export_attempts: int = _DEFAULT_MAX_EXPORT_ATTEMPTS,
    ):
        super().__init__()

        if export_interval_millis is None:
            export_interval_millis = _get_millis_from_env(
                OTEL_METRIC_EXPORT_INTERVAL, _DEFAULT_EXPORT_INTERVAL_MILLIS
            )
        if export_timeout_millis is None:
            export_timeout_millis = _get_millis_from_env(
                OTEL_METRIC_EXPORT_TIMEOUT, _DEFAULT_EXPORT_TIMEOUT_MILLIS
            )
        if export_interval_millis <= 0:
            raise ValueError(
                "export_interval_millis must be positive, got "
                f"{export_interval_millis}"
            )
        if max_export_attempts < 1:
            raise ValueError(
                "max_export_attempts must be at least 1, got "
                f"{max_export_attempts}"
            )

        self._exporter = exporter
        self._export_interval_millis = export_interval_millis
        self._export_timeout_millis = export_timeout_millis
        self._max_export_attempts = max_export_attempts
        self._export_lock = Lock()
        self._shutdown = False
        self._shutdown_event = Event()
        self._daemon_thread = Thread(
            name="PeriodicExportingMetricReader",
            target=self._ticker,
            daemon=True,
        )
        self._daemon_thread.start()

    @property
    def export_interval_millis(self) -> float:
        return self._export_interval_millis

    def _ticker(self) -> None:
        interval_secs = self._export_interval_millis / 1e3
        while not self._shutdown_event.wait(interval_secs):
            self._collect_and_export()

    def _collect_and_export(self) -> bool:
        with self._export_lock:
            try:
                metrics = self.collect()
            # pylint: disable=broad-except
            except Exception:
                _logger.exception("Exception while collecting metrics")
                return False

            if not metrics:
                return True

            return self._export(metrics)

    def _export(self, metrics: List[MetricData]) -> bool:
        attempt = 0

        for delay in _create_exp_backoff_generator(
            max_value=self._export_timeout_millis / 1e3
        ):
            attempt += 1

            try:
                result = self._exporter.export(metrics)
            # pylint: disable=broad-except
            except Exception:
                _logger.exception("Exception while exporting metrics")
                return False

            if result is MetricExportResult.SUCCESS:
                return True

            if result is MetricExportResult.FAILED_NOT_RETRYABLE:
                _logger.warning("Failed to export %s metrics", len(metrics))
                return False

            if attempt >= self._max_export_attempts:
                _logger.warning(
                    "Dropping %s metrics after %s failed export attempts",
                    len(metrics),
                    attempt,
                )
                return False

            _logger.debug(
                "Retrying export of %s metrics in %ss", len(metrics), delay
            )
            self._shutdown_event.wait(delay)

        return False

    def force_flush(self) -> bool:
        if self._shutdown:
            _logger.warning("Can't force flush, reader is shut down")
            return False
        return self._collect_and_export()

    def shutdown(self) -> None:
        if self._shutdown:
            _logger.warning("shutdown can only be called once")
            return

        self._shutdown_event.set()
        self._daemon_thread.join()
        self._collect_and_export()
        self._shutdown = True
        self._exporter.shutdown()
