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
from typing import Optional

from opentelemetry.util.types import Attributes

from telemetry_metrics._internal.labels import LabelSet


@dataclass(frozen=True)
class Resource:
    """The entity producing the metrics, described by a set of labels."""

    labels: LabelSet = field(default_factory=LabelSet.empty)

    @staticmethod
    def create(attributes: Attributes = None) -> "Resource":
        return Resource(LabelSet.create(attributes))

    @staticmethod
    def get_empty() -> "Resource":
        return _EMPTY_RESOURCE


_EMPTY_RESOURCE = Resource()


@dataclass(frozen=True)
class InstrumentationLibraryInfo:
    """Name and version of the library that created a meter."""

    name: str
    version: Optional[str] = None
