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

"""Bits and pieces used by the driver that don't really fit elsewhere."""
from __future__ import annotations

from typing import Any, Container, Mapping, NoReturn, Optional

from mongowire.errors import (
    BulkWriteError,
    CursorNotFound,
    DuplicateKeyError,
    ExecutionTimeout,
    NotPrimaryError,
    OperationFailure,
    WriteError,
)
from mongowire.helpers_constants import (
    _CURSOR_NOT_FOUND_CODE,
    _DUPLICATE_KEY_CODES,
    _MAX_TIME_EXPIRED_CODE,
    _NOT_PRIMARY_CODES,
)


def _index_list(key_or_list: Any, direction: Optional[int] = None) -> list[tuple[str, Any]]:
    """Helper to generate a list of (key, direction) pairs.

    Takes such a list, or a single key, or a single key and direction.
    """
    if direction is not None:
        if not isinstance(key_or_list, str):
            raise TypeError(f"Expected a string and a direction, not {type(key_or_list)}")
        return [(key_or_list, direction)]
    else:
        if isinstance(key_or_list, str):
            return [(key_or_list, 1)]
        elif isinstance(key_or_list, Mapping):
            return list(key_or_list.items())
        elif not isinstance(key_or_list, (list, tuple)):
            raise TypeError(
                f"if no direction is specified, key_or_list must be an instance of list, not {type(key_or_list)}"
            )
        values: list[tuple[str, Any]] = []
        for item in key_or_list:
            if isinstance(item, str):
                item = (item, 1)  # noqa: PLW2901
            values.append(tuple(item))  # type: ignore[arg-type]
        return values


def _index_document(index_list: Any) -> dict[str, Any]:
    """Helper to generate an index specifying document.

    Takes a list of (key, direction) pairs.
    """
    if not isinstance(index_list, (list, tuple, Mapping)):
        raise TypeError(
            "must use a dictionary or a list of (key, direction) pairs, not: " + repr(index_list)
        )
    if not len(index_list):
        raise ValueError("key_or_list must not be empty")

    index: dict[str, Any] = {}

    if isinstance(index_list, Mapping):
        for key in index_list:
            index[key] = index_list[key]
    else:
        for item in index_list:
            if isinstance(item, str):
                item = (item, 1)  # noqa: PLW2901
            key, value = item
            if not isinstance(key, str):
                raise TypeError("first item in each key pair must be an instance of str")
            if not isinstance(value, (str, int, Mapping)):
                raise TypeError(
                    "second item in each key pair must be 1, -1, "
                    "'2d', or another valid MongoDB index specifier."
                )
            index[key] = value
    return index


def _gen_index_name(keys: Mapping[str, Any]) -> str:
    """Generate an index name from the set of fields it is over."""
    return "_".join([f"{key}_{direction}" for key, direction in keys.items()])


def _check_command_response(
    response: Mapping[str, Any],
    max_wire_version: Optional[int],
    allowable_errors: Optional[Container[int | str]] = None,
) -> None:
    """Check the response to a command for errors."""
    if "ok" not in response:
        # Server didn't recognize our message as a command.
        raise OperationFailure(
            response.get("$err"),  # type: ignore[arg-type]
            response.get("code"),
            response,
            max_wire_version,
        )

    if response["ok"]:
        return

    details = response
    # Mongos returns the error details in a 'raw' object
    # for some errors.
    if "raw" in response:
        for shard in response["raw"].values():
            # Grab the first non-empty raw error from a shard.
            if shard.get("errmsg") and not shard.get("ok"):
                details = shard
                break

    errmsg = details["errmsg"]
    code = details.get("code")

    # For allowable errors, only check for error messages when the code is not
    # included.
    if allowable_errors:
        if code is not None:
            if code in allowable_errors:
                return
        elif errmsg in allowable_errors:
            return

    # Server is "not primary" or "recovering"
    if code is not None:
        if code in _NOT_PRIMARY_CODES:
            raise NotPrimaryError(errmsg, response)
    elif "not master" in errmsg or "node is recovering" in errmsg:
        raise NotPrimaryError(errmsg, response)

    # Other errors
    # findAndModify with upsert can raise duplicate key error
    if code in _DUPLICATE_KEY_CODES:
        raise DuplicateKeyError(errmsg, code, response, max_wire_version)
    elif code == _MAX_TIME_EXPIRED_CODE:
        raise ExecutionTimeout(errmsg, code, response, max_wire_version)
    elif code == _CURSOR_NOT_FOUND_CODE:
        raise CursorNotFound(errmsg, code, response, max_wire_version)

    raise OperationFailure(errmsg, code, response, max_wire_version)


def _raise_last_write_error(write_errors: list[Any]) -> NoReturn:
    # If the last batch had multiple errors only report
    # the last error to emulate continue_on_error.
    error = write_errors[-1]
    if error.get("code") == 11000:
        raise DuplicateKeyError(error.get("errmsg"), 11000, error)
    raise WriteError(error.get("errmsg"), error.get("code"), error)


def _check_write_command_response(result: Mapping[str, Any], multi: bool = False) -> None:
    """Raise for a write command reply carrying ``writeErrors``.

    Single-document writes raise the server's error as
    :exc:`~mongowire.errors.WriteError` (or
    :exc:`~mongowire.errors.DuplicateKeyError`); multi-document writes raise
    :exc:`~mongowire.errors.BulkWriteError` with the whole reply.
    """
    write_errors = result.get("writeErrors")
    if not write_errors:
        return
    if multi:
        raise BulkWriteError(result)
    _raise_last_write_error(write_errors)
