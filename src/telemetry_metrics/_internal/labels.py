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

from collections.abc import Mapping
from typing import Iterator, Tuple

from opentelemetry.util.types import Attributes


class LabelSet(Mapping):
    """An immutable, order independent set of string labels.

    Two label sets holding the same key/value pairs are equal and hash the
    same no matter the order in which the pairs were given, which makes them
    usable as dictionary keys shared by reference between threads.

    Args:
        labels: A mapping of label keys to label values. Keys must be
            non-empty strings and values must be strings.
    """

    __slots__ = ("_labels", "_dict", "_hash")

    def __init__(self, labels: Attributes = None):
        labels = labels or {}

        for key, value in labels.items():
            if not isinstance(key, str) or not isinstance(value, str):
                raise TypeError(
                    f"Label keys and values must be strings, got {key!r}: "
                    f"{value!r}"
                )
            if not key:
                raise ValueError("Label keys must not be empty")

        self._labels: Tuple[Tuple[str, str], ...] = tuple(
            sorted(labels.items())
        )
        self._dict = dict(self._labels)
        self._hash = hash(self._labels)

    @classmethod
    def create(cls, labels: Attributes = None) -> "LabelSet":
        if isinstance(labels, LabelSet):
            return labels
        if not labels:
            return _EMPTY
        return cls(labels)

    @classmethod
    def of(cls, *key_values: str) -> "LabelSet":
        """Creates a label set from alternating keys and values.

        ``LabelSet.of("route", "/a", "method", "GET")``
        """
        if len(key_values) % 2 != 0:
            raise ValueError(
                "Labels must be given as key/value pairs, got an odd number "
                f"of arguments: {key_values!r}"
            )
        return cls.create(dict(zip(key_values[::2], key_values[1::2])))

    @staticmethod
    def empty() -> "LabelSet":
        return _EMPTY

    def __getitem__(self, key: str) -> str:
        return self._dict[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._dict)

    def __len__(self) -> int:
        return len(self._labels)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, LabelSet):
            return self._labels == other._labels
        return super().__eq__(other)

    def __hash__(self) -> int:
        return self._hash

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._dict!r})"


_EMPTY = LabelSet()

