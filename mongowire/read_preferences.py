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

"""Utilities for choosing which node to send an operation to."""
from __future__ import annotations

from typing import TYPE_CHECKING, Any, Mapping, Sequence

from mongowire.errors import ConfigurationError

if TYPE_CHECKING:
    from mongowire.server_description import ServerDescription

_PRIMARY = 0
_PRIMARY_PREFERRED = 1
_SECONDARY = 2
_SECONDARY_PREFERRED = 3
_NEAREST = 4


_MONGOS_MODES = (
    "primary",
    "primaryPreferred",
    "secondary",
    "secondaryPreferred",
    "nearest",
)


class _ServerMode:
    """Base class for all read preferences."""

    __slots__ = ("__mongos_mode", "__mode")

    def __init__(self, mode: int) -> None:
        self.__mongos_mode = _MONGOS_MODES[mode]
        self.__mode = mode

    @property
    def name(self) -> str:
        """The name of this read preference."""
        return self.__class__.__name__

    @property
    def mongos_mode(self) -> str:
        """The mongos mode of this read preference."""
        return self.__mongos_mode

    @property
    def document(self) -> dict[str, Any]:
        """Read preference as a document."""
        return {"mode": self.__mongos_mode}

    @property
    def mode(self) -> int:
        """The mode of this read preference instance."""
        return self.__mode

    def select(self, servers: Sequence[ServerDescription]) -> list[ServerDescription]:
        """Return the candidates for this mode, best first."""
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{self.name}()"

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, _ServerMode):
            return self.mode == other.mode
        return NotImplemented

    def __ne__(self, other: Any) -> bool:
        return not self == other

    def __hash__(self) -> int:
        return hash(self.mode)


def _writable(servers: Sequence[ServerDescription]) -> list[ServerDescription]:
    return [s for s in servers if s.is_writable]


def _secondaries(servers: Sequence[ServerDescription]) -> list[ServerDescription]:
    return [s for s in servers if s.is_readable and not s.is_writable]


class Primary(_ServerMode):
    """Primary read preference.

    Operations go to the primary, or to the single standalone or mongos node.
    """

    __slots__ = ()

    def __init__(self) -> None:
        super().__init__(_PRIMARY)

    def select(self, servers: Sequence[ServerDescription]) -> list[ServerDescription]:
        return _writable(servers)


class PrimaryPreferred(_ServerMode):
    """PrimaryPreferred read preference: the primary if known, else a secondary."""

    __slots__ = ()

    def __init__(self) -> None:
        super().__init__(_PRIMARY_PREFERRED)

    def select(self, servers: Sequence[ServerDescription]) -> list[ServerDescription]:
        return _writable(servers) or _secondaries(servers)


class Secondary(_ServerMode):
    """Secondary read preference: only secondaries are eligible."""

    __slots__ = ()

    def __init__(self) -> None:
        super().__init__(_SECONDARY)

    def select(self, servers: Sequence[ServerDescription]) -> list[ServerDescription]:
        return _secondaries(servers)


class SecondaryPreferred(_ServerMode):
    """SecondaryPreferred read preference: a secondary if any, else the primary."""

    __slots__ = ()

    def __init__(self) -> None:
        super().__init__(_SECONDARY_PREFERRED)

    def select(self, servers: Sequence[ServerDescription]) -> list[ServerDescription]:
        return _secondaries(servers) or _writable(servers)


class Nearest(_ServerMode):
    """Nearest read preference: any readable node."""

    __slots__ = ()

    def __init__(self) -> None:
        super().__init__(_NEAREST)

    def select(self, servers: Sequence[ServerDescription]) -> list[ServerDescription]:
        return [s for s in servers if s.is_readable]


class ReadPreference:
    """An enum that defines the read preference modes supported by mongowire.

    * `PRIMARY`: Writes and reads go to the primary. This is the default.
    * `PRIMARY_PREFERRED`: Reads go to the primary if available, otherwise a
      secondary.
    * `SECONDARY`: Reads are distributed among secondaries. An error is
      raised if no secondaries are available.
    * `SECONDARY_PREFERRED`: Reads are distributed among secondaries, or the
      primary if no secondary is available.
    * `NEAREST`: Reads are distributed among all readable nodes.
    """

    PRIMARY = Primary()
    PRIMARY_PREFERRED = PrimaryPreferred()
    SECONDARY = Secondary()
    SECONDARY_PREFERRED = SecondaryPreferred()
    NEAREST = Nearest()


_MODES_BY_NAME: Mapping[str, _ServerMode] = {
    "primary": ReadPreference.PRIMARY,
    "primarypreferred": ReadPreference.PRIMARY_PREFERRED,
    "secondary": ReadPreference.SECONDARY,
    "secondarypreferred": ReadPreference.SECONDARY_PREFERRED,
    "nearest": ReadPreference.NEAREST,
}


def read_pref_mode_from_name(name: str) -> _ServerMode:
    """Get the read preference for a URI ``readPreference`` value."""
    try:
        return _MODES_BY_NAME[name.lower()]
    except KeyError:
        raise ConfigurationError(f"{name!r} is not a valid read preference") from None
