# Copyright 2024-present MongoDB, Inc.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
# http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Type aliases used by mongowire"""
from __future__ import annotations

from typing import Any, Mapping, Optional, Sequence, Tuple, TypeVar

# Common Shared Types.
_Address = Tuple[str, Optional[int]]
_Pipeline = Sequence[Mapping[str, Any]]
_DocumentOut = Mapping[str, Any]

_T = TypeVar("_T")
