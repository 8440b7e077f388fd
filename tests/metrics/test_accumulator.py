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

# pylint: disable=protected-access

from threading import Lock, Thread
from time import sleep
from unittest import TestCase
from unittest.mock import Mock

from telemetry_metrics import (
    DoublePoint,
    InstrumentDescriptor,
    InstrumentType,
    InstrumentValueType,
    LabelSet,
    LongPoint,
    ManualClock,
    MetricDataType,
)
from telemetry_metrics._internal.accumulator import (
    AsynchronousInstrumentAccumulator,
    InstrumentProcessor,
    NoopAccumulator,
    ObserverResult,
    SynchronousInstrumentAccumulator,
)
from telemetry_metrics._internal.aggregator import (
    NoopAggregator,
    SumAggregator,
)
from telemetry_metrics._internal.resources import (
    InstrumentationLibraryInfo,
    Resource,
)
from telemetry_metrics.view import (
    AggregationTemporality,
    LastValueAggregation,
    SumAggregation,
)

COUNTER = InstrumentDescriptor(
    "requests",
    "Number of requests",
    "1",
    InstrumentType.COUNTER,
    InstrumentValueType.LONG,
)
VALUE_OBSERVER = InstrumentDescriptor(
    "temperature",
    "",
    "C",
    InstrumentType.VALUE_OBSERVER,
    InstrumentValueType.DOUBLE,
)
LABELS_A = LabelSet.of("route", "/a")
LABELS_B = LabelSet.of("route", "/b")


def _processor(
    clock,
    temporality=AggregationTemporality.CUMULATIVE,
    descriptor=COUNTER,
    aggregation=None,
):
    return InstrumentProcessor(
        descriptor,
        aggregation or SumAggregation(),
        temporality,
        Resource.create({"service": "test"}),
        InstrumentationLibraryInfo("test", "1.0"),
        clock,
    )


def _add(accumulator, value, labels):
    aggregator = accumulator.bind(labels)
    try:
        aggregator.record(value)
    finally:
        aggregator.release()


class _RacingDict(dict):
    """Maps ``winner`` right after the first lookup misses, like another
    thread binding the same labels would."""

    def __init__(self, winner):
        super().__init__()
        self._winner = winner
        self._raced = False

    def get(self, key, default=None):
        if not self._raced:
            self._raced = True
            self[key] = self._winner
            return default
        return super().get(key, default)


class TestSynchronousInstrumentAccumulator(TestCase):
    def setUp(self):
        self.clock = ManualClock()

    def test_same_aggregator_for_same_labels(self):
        accumulator = SynchronousInstrumentAccumulator(
            _processor(self.clock)
        )

        aggregator = accumulator.bind(LabelSet.of("K", "V"))
        duplicate = accumulator.bind({"K": "V"})
        self.assertIs(duplicate, aggregator)
        duplicate.release()

        accumulator.collect_all()

        # Still referenced, so the collection kept it live
        self.assertIs(accumulator.bind({"K": "V"}), aggregator)

    def test_unreferenced_aggregators_are_retired(self):
        accumulator = SynchronousInstrumentAccumulator(
            _processor(self.clock)
        )

        aggregator = accumulator.bind(LABELS_A)
        aggregator.release()
        accumulator.collect_all()

        self.assertEqual(accumulator._aggregators, {})
        self.assertIsNot(accumulator.bind(LABELS_A), aggregator)

    def test_losing_bind_race_keeps_recorded_value(self):
        processor = _processor(self.clock)
        accumulator = SynchronousInstrumentAccumulator(processor)

        winner = SumAggregator(InstrumentValueType.LONG, True)
        winner.record_long(1)
        loser = SumAggregator(InstrumentValueType.LONG, True)
        loser.record_long(4)

        accumulator._aggregators = _RacingDict(winner)
        processor.create_aggregator = Mock(return_value=loser)

        self.assertIs(accumulator.bind(LABELS_A), winner)
        self.assertEqual(winner.to_point(0, 1, LABELS_A).value, 5)
        self.assertIsNone(loser.to_point(0, 1, LABELS_A))

    def test_end_to_end_cycle(self):
        start = self.clock.now()
        accumulator = SynchronousInstrumentAccumulator(
            _processor(self.clock)
        )

        _add(accumulator, 5, {"route": "/a"})
        _add(accumulator, 3, {"route": "/a"})
        _add(accumulator, 2, {"route": "/b"})

        self.clock.advance_millis(10)
        now = self.clock.now()

        (metric,) = accumulator.collect_all()

        self.assertEqual(metric.name, "requests")
        self.assertEqual(metric.description, "Number of requests")
        self.assertEqual(metric.type, MetricDataType.MONOTONIC_LONG)
        self.assertEqual(
            metric.resource, Resource.create({"service": "test"})
        )
        self.assertCountEqual(
            metric.points,
            [
                LongPoint(start, now, LABELS_A, 8),
                LongPoint(start, now, LABELS_B, 2),
            ],
        )

    def test_delta_cycle(self):
        start = self.clock.now()
        processor = _processor(self.clock, AggregationTemporality.DELTA)
        accumulator = SynchronousInstrumentAccumulator(processor)

        _add(accumulator, 5, LABELS_A)
        self.clock.advance_millis(10)
        first = self.clock.now()

        (metric,) = accumulator.collect_all()
        self.assertEqual(metric.temporality, AggregationTemporality.DELTA)
        self.assertEqual(
            metric.points, (LongPoint(start, first, LABELS_A, 5),)
        )
        self.assertEqual(processor.labels, [])
        self.assertEqual(processor.start_epoch_nanos, first)

        self.clock.advance_millis(10)
        self.assertEqual(accumulator.collect_all(), [])

        _add(accumulator, 2, LABELS_A)
        self.clock.advance_millis(10)
        (metric,) = accumulator.collect_all()
        self.assertEqual(
            metric.points,
            (LongPoint(first + 10_000_000, self.clock.now(), LABELS_A, 2),),
        )

    def test_cumulative_cycle(self):
        start = self.clock.now()
        processor = _processor(self.clock)
        accumulator = SynchronousInstrumentAccumulator(processor)

        _add(accumulator, 5, LABELS_A)
        _add(accumulator, 1, LABELS_B)
        accumulator.collect_all()

        self.clock.advance_millis(10)
        (metric,) = accumulator.collect_all()

        self.assertEqual(
            metric.temporality, AggregationTemporality.CUMULATIVE
        )
        self.assertCountEqual(
            metric.points,
            [
                LongPoint(start, self.clock.now(), LABELS_A, 5),
                LongPoint(start, self.clock.now(), LABELS_B, 1),
            ],
        )
        self.assertEqual(processor.start_epoch_nanos, start)

        _add(accumulator, 2, LABELS_A)
        (metric,) = accumulator.collect_all()
        self.assertIn(
            LongPoint(start, self.clock.now(), LABELS_A, 7), metric.points
        )

    def test_bound_records_after_collection(self):
        accumulator = SynchronousInstrumentAccumulator(
            _processor(self.clock, AggregationTemporality.DELTA)
        )
        aggregator = accumulator.bind(LABELS_A)

        aggregator.record(1)
        (metric,) = accumulator.collect_all()
        self.assertEqual(metric.points[0].value, 1)

        aggregator.record(2)
        (metric,) = accumulator.collect_all()
        self.assertEqual(metric.points[0].value, 2)

        aggregator.release()
        self.assertEqual(accumulator.collect_all(), [])

    def test_epoch_nanos_given_by_caller(self):
        accumulator = SynchronousInstrumentAccumulator(
            _processor(self.clock)
        )
        _add(accumulator, 1, LABELS_A)

        (metric,) = accumulator.collect_all(self.clock.now() + 42)

        self.assertEqual(metric.points[0].epoch_nanos, self.clock.now() + 42)

    def test_concurrent_records_and_collections(self):
        accumulator = SynchronousInstrumentAccumulator(
            _processor(self.clock, AggregationTemporality.DELTA)
        )
        labels = [LABELS_A, LABELS_B]

        def record(index):
            for _ in range(1000):
                _add(accumulator, 1, labels[index % 2])

        threads = [Thread(target=record, args=(index,)) for index in range(8)]
        for thread in threads:
            thread.start()

        total = 0
        while any(thread.is_alive() for thread in threads):
            for metric in accumulator.collect_all():
                total += sum(point.value for point in metric.points)

        for thread in threads:
            thread.join()

        for metric in accumulator.collect_all():
            total += sum(point.value for point in metric.points)

        self.assertEqual(total, 8000)


class TestAsynchronousInstrumentAccumulator(TestCase):
    def setUp(self):
        self.clock = ManualClock()

    def _accumulator(self, temporality=AggregationTemporality.DELTA):
        return AsynchronousInstrumentAccumulator(
            _processor(
                self.clock,
                temporality,
                VALUE_OBSERVER,
                LastValueAggregation(),
            ),
            InstrumentValueType.DOUBLE,
        )

    def test_last_observation_wins(self):
        accumulator = self._accumulator()

        def callback(result):
            result.observe(1.0, LABELS_A)
            result.observe(2.0, LABELS_B)
            result.observe(3.0, {"route": "/a"})

        (metric,) = accumulator.collect_all(callback)

        self.assertEqual(metric.type, MetricDataType.GAUGE_DOUBLE)
        self.assertCountEqual(
            [(point.labels, point.value) for point in metric.points],
            [(LABELS_A, 3.0), (LABELS_B, 2.0)],
        )
        self.assertIsInstance(metric.points[0], DoublePoint)

    def test_callback_called_once_per_collection(self):
        accumulator = self._accumulator()
        callback = Mock()

        accumulator.collect_all(callback)
        accumulator.collect_all(callback)

        self.assertEqual(callback.call_count, 2)
        self.assertIsInstance(callback.call_args[0][0], ObserverResult)

    def test_no_callback(self):
        self.assertEqual(self._accumulator().collect_all(None), [])

    def test_failing_callback(self):
        accumulator = self._accumulator()

        def callback(result):
            result.observe(1.0, LABELS_A)
            raise Exception("broken")

        with self.assertLogs(
            "telemetry_metrics._internal.accumulator", level="ERROR"
        ):
            self.assertEqual(accumulator.collect_all(callback), [])

    def test_failing_callback_ends_delta_window(self):
        processor = _processor(
            self.clock,
            AggregationTemporality.DELTA,
            VALUE_OBSERVER,
            LastValueAggregation(),
        )
        accumulator = AsynchronousInstrumentAccumulator(
            processor, InstrumentValueType.DOUBLE
        )

        def failing(result):
            raise Exception("sensor offline")

        self.clock.advance_millis(10)
        failed = self.clock.now()
        with self.assertLogs(level="ERROR"):
            self.assertEqual(accumulator.collect_all(failing), [])
        self.assertEqual(processor.start_epoch_nanos, failed)

        self.clock.advance_millis(10)
        (metric,) = accumulator.collect_all(
            lambda result: result.observe(1.0, LABELS_A)
        )
        self.assertEqual(
            metric.points,
            (DoublePoint(failed, self.clock.now(), LABELS_A, 1.0),),
        )

    def test_failing_callback_keeps_cumulative_state(self):
        accumulator = self._accumulator(AggregationTemporality.CUMULATIVE)
        accumulator.collect_all(lambda result: result.observe(1.0, LABELS_A))

        def failing(result):
            raise Exception("sensor offline")

        with self.assertLogs(level="ERROR"):
            self.assertEqual(accumulator.collect_all(failing), [])

        (metric,) = accumulator.collect_all(
            lambda result: result.observe(2.0, LABELS_B)
        )
        self.assertCountEqual(
            [(point.labels, point.value) for point in metric.points],
            [(LABELS_A, 1.0), (LABELS_B, 2.0)],
        )

    def test_invalid_observation(self):
        with self.assertRaises(TypeError):
            ObserverResult(InstrumentValueType.LONG).observe(1.5)

    def test_delta_forgets_unobserved_labels(self):
        accumulator = self._accumulator()

        accumulator.collect_all(lambda result: result.observe(1.0, LABELS_A))
        (metric,) = accumulator.collect_all(
            lambda result: result.observe(2.0, LABELS_B)
        )

        self.assertEqual(
            [point.labels for point in metric.points], [LABELS_B]
        )

    def test_cumulative_reports_unobserved_labels(self):
        accumulator = self._accumulator(AggregationTemporality.CUMULATIVE)

        accumulator.collect_all(lambda result: result.observe(1.0, LABELS_A))
        (metric,) = accumulator.collect_all(
            lambda result: result.observe(2.0, LABELS_B)
        )

        self.assertCountEqual(
            [(point.labels, point.value) for point in metric.points],
            [(LABELS_A, 1.0), (LABELS_B, 2.0)],
        )

    def test_concurrent_collections_are_serialized(self):
        accumulator = self._accumulator()
        lock = Lock()
        running = []
        overlaps = []

        def callback(result):
            with lock:
                running.append(None)
                overlaps.append(len(running))
            sleep(0.05)
            result.observe(1.0)
            with lock:
                running.pop()

        threads = [
            Thread(target=accumulator.collect_all, args=(callback,))
            for _ in range(3)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(overlaps, [1, 1, 1])


class TestNoopAccumulator(TestCase):
    def test_noop(self):
        accumulator = NoopAccumulator(InstrumentValueType.LONG)

        aggregator = accumulator.bind(LABELS_A)
        aggregator.record(1)
        aggregator.release()

        self.assertIsInstance(aggregator, NoopAggregator)
        self.assertEqual(accumulator.collect_all(), [])
        self.assertEqual(accumulator.collect_all(Mock()), [])
