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

from unittest import TestCase

from telemetry_metrics import LabelSet


class TestLabelSet(TestCase):
    def test_order_independent(self):
        first = LabelSet({"route": "/a", "method": "GET"})
        second = LabelSet({"method": "GET", "route": "/a"})

        self.assertEqual(first, second)
        self.assertEqual(hash(first), hash(second))
        self.assertEqual(list(first), ["method", "route"])

    def test_usable_as_key(self):
        labels = {LabelSet.of("k", "v"): 1}
        self.assertEqual(labels[LabelSet({"k": "v"})], 1)

    def test_of(self):
        labels = LabelSet.of("route", "/a", "method", "GET")

        self.assertEqual(labels["route"], "/a")
        self.assertEqual(labels["method"], "GET")
        self.assertEqual(len(labels), 2)

    def test_of_odd_arguments(self):
        with self.assertRaises(ValueError):
            LabelSet.of("key")

    def test_invalid_labels(self):
        with self.assertRaises(TypeError):
            LabelSet({"key": 1})
        with self.assertRaises(TypeError):
            LabelSet({1: "value"})
        with self.assertRaises(ValueError):
            LabelSet({"": "value"})

    def test_empty(self):
        self.assertIs(LabelSet.create(None), LabelSet.empty())
        self.assertIs(LabelSet.create({}), LabelSet.empty())
        self.assertEqual(len(LabelSet.empty()), 0)

    def test_create_returns_label_sets_unchanged(self):
        labels = LabelSet.of("k", "v")
        self.assertIs(LabelSet.create(labels), labels)

    def test_immutable(self):
        labels = LabelSet.of("k", "v")
        with self.assertRaises(TypeError):
            # pylint: disable=unsupported-assignment-operation
            labels["k"] = "w"

    def test_equals_mapping(self):
        self.assertEqual(LabelSet.of("k", "v"), {"k": "v"})
        self.assertNotEqual(LabelSet.of("k", "v"), {"k": "w"})
