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

"""Collection level utilities for Mongo."""
from __future__ import annotations

from collections import abc
from typing import (
    TYPE_CHECKING,
    Any,
    Iterable,
    Mapping,
    MutableMapping,
    NoReturn,
    Optional,
    Sequence,
    Union,
)

from bson import ObjectId

from mongowire import helpers
from mongowire.asynchronous.command_cursor import AsyncCommandCursor
from mongowire.asynchronous.cursor import AsyncCursor
from mongowire.errors import InvalidName, OperationFailure
from mongowire.read_preferences import ReadPreference, _ServerMode
from mongowire.results import (
    DeleteResult,
    InsertManyResult,
    InsertOneResult,
    UpdateResult,
)

if TYPE_CHECKING:
    from bson import CodecOptions

    from mongowire.asynchronous.database import AsyncDatabase
    from mongowire.typings import _Pipeline

_IS_SYNC = False


class ReturnDocument:
    """An enum used with
    :meth:`~mongowire.asynchronous.collection.AsyncCollection.find_one_and_update`.
    """

    BEFORE = False
    """Return the original document before it was updated, or ``None`` if no
    document matches the query.
    """
    AFTER = True
    """Return the updated or inserted document."""


def _validate_update(update: Union[Mapping[str, Any], _Pipeline]) -> None:
    if isinstance(update, abc.Mapping):
        if not update:
            raise ValueError("update cannot be empty")
        first = next(iter(update))
        if not first.startswith("$"):
            raise ValueError("update only works with $ operators")
    elif isinstance(update, list):
        if not update:
            raise ValueError("update cannot be an empty pipeline")
    else:
        raise TypeError(f"update must be a mapping or a list, not {type(update)}")


def _to_object_id(value: Any) -> Any:
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return value


def _format_id(filter: Any) -> Any:
    """Return `filter` with a hex string ``_id`` replaced by its ObjectId.

    Handles a plain ``_id`` value and the elements of an ``_id`` ``$in``.
    Strings that are not 24 hex digits are left alone. `filter` itself is
    never modified.
    """
    if not isinstance(filter, abc.Mapping) or "_id" not in filter:
        return filter
    value = filter["_id"]
    if isinstance(value, str):
        value = _to_object_id(value)
    elif isinstance(value, abc.Mapping) and isinstance(value.get("$in"), list):
        value = dict(value)
        value["$in"] = [_to_object_id(v) for v in value["$in"]]
    else:
        return filter
    formatted = dict(filter)
    formatted["_id"] = value
    return formatted


class AsyncCollection:
    """An asynchronous Mongo collection."""

    def __init__(self, database: AsyncDatabase, name: str) -> None:
        """Get an asynchronous Mongo collection.

        Raises :class:`TypeError` if `name` is not an instance of
        :class:`str`. Raises :class:`~mongowire.errors.InvalidName` if `name` is
        not a valid collection name. Use
        :meth:`~mongowire.asynchronous.database.AsyncDatabase.get_collection`
        rather than calling this directly so the instance is shared.

        :param database: the database to get a collection from
        :param name: the name of the collection to get
        """
        if not isinstance(name, str):
            raise TypeError(f"name must be an instance of str, not {type(name)}")
        if not name or ".." in name:
            raise InvalidName("collection names cannot be empty")
        if "$" in name and not (name.startswith(("oplog.$main", "$cmd"))):
            raise InvalidName("collection names must not contain '$': %r" % name)
        if name[0] == "." or name[-1] == ".":
            raise InvalidName("collection names must not start or end with '.': %r" % name)
        if "\x00" in name:
            raise InvalidName("collection names must not contain the null character")
        self._database = database
        self._name = name
        self._full_name = f"{self._database.name}.{self._name}"

    def __getattr__(self, name: str) -> AsyncCollection:
        """Get a sub-collection of this collection by name.

        Raises InvalidName if an invalid collection name is used.

        :param name: the name of the collection to get
        """
        if name.startswith("_"):
            full_name = f"{self._name}.{name}"
            raise AttributeError(
                f"{type(self).__name__} has no attribute {name!r}. To access the {full_name}"
                f" collection, use database['{full_name}']."
            )
        return self.__getitem__(name)

    def __getitem__(self, name: str) -> AsyncCollection:
        return self._database.get_collection(f"{self._name}.{name}")

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._database!r}, {self._name!r})"

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, AsyncCollection):
            return self._database == other.database and self._name == other.name
        return NotImplemented

    def __ne__(self, other: Any) -> bool:
        return not self == other

    def __hash__(self) -> int:
        return hash((self._database, self._name))

    def __bool__(self) -> NoReturn:
        raise NotImplementedError(
            f"{type(self).__name__} objects do not implement truth "
            "value testing or bool(). Please compare "
            "with None instead: collection is not None"
        )

    @property
    def full_name(self) -> str:
        """The full name of this :class:`AsyncCollection`.

        The full name is of the form `database_name.collection_name`.
        """
        return self._full_name

    @property
    def name(self) -> str:
        """The name of this :class:`AsyncCollection`."""
        return self._name

    @property
    def database(self) -> AsyncDatabase:
        """The :class:`~mongowire.asynchronous.database.AsyncDatabase` that this
        :class:`AsyncCollection` is a part of.
        """
        return self._database

    @property
    def codec_options(self) -> CodecOptions[Any]:
        return self._database.codec_options

    @property
    def read_preference(self) -> _ServerMode:
        return self._database.read_preference

    async def _command(
        self,
        command: MutableMapping[str, Any],
        read_preference: _ServerMode = ReadPreference.PRIMARY,
        allowable_errors: Optional[Sequence[Union[str, int]]] = None,
    ) -> dict[str, Any]:
        return await self._database.wire.command_single(
            self._database.name,
            command,
            read_preference,
            self.codec_options,
            allowable_errors=allowable_errors,
        )

    def _max_write_batch_size(self) -> int:
        primary = self._database.wire.topology.primary
        if primary is None:
            return 1000
        return primary.description.max_write_batch_size

    async def insert_one(self, document: MutableMapping[str, Any]) -> InsertOneResult:
        """Insert a single document.

          >>> await db.test.count_documents({'x': 1})
          0
          >>> result = await db.test.insert_one({'x': 1})
          >>> result.inserted_id
          ObjectId('54f112defba522406c9cc208')

        An ``_id`` is added to `document` when it has none.

        :param document: The document to insert. Must be a mutable mapping
            type.

        :return: An instance of :class:`~mongowire.results.InsertOneResult`.
        """
        if not isinstance(document, abc.MutableMapping):
            raise TypeError(f"document must be a mutable mapping, not {type(document)}")
        if "_id" not in document:
            document["_id"] = ObjectId()
        cmd = {"insert": self._name, "ordered": True, "documents": [document]}
        result = await self._command(cmd)
        helpers._check_write_command_response(result)
        return InsertOneResult(document["_id"], result)

    async def insert_many(
        self, documents: Iterable[MutableMapping[str, Any]], ordered: bool = True
    ) -> InsertManyResult:
        """Insert an iterable of documents.

          >>> await db.test.count_documents({})
          0
          >>> result = await db.test.insert_many([{'x': i} for i in range(2)])
          >>> result.inserted_ids
          [ObjectId('54f113fffba522406c9cc20e'), ObjectId('54f113fffba522406c9cc20f')]

        Documents are sent in as few ``insert`` commands as the server's
        maxWriteBatchSize allows. The ids are returned in input order.

        :param documents: A iterable of documents to insert.
        :param ordered: If ``True`` (the default) documents will be
            inserted on the server serially, in the order provided. If an error
            occurs all remaining inserts are aborted. If ``False``, documents
            will be inserted on the server in arbitrary order, possibly in
            parallel, and all document inserts will be attempted.

        :return: An instance of :class:`~mongowire.results.InsertManyResult`.
        """
        if (
            not isinstance(documents, abc.Iterable)
            or isinstance(documents, abc.Mapping)
            or not documents
        ):
            raise TypeError("documents must be a non-empty list")
        docs = []
        inserted_ids = []
        for document in documents:
            if not isinstance(document, abc.MutableMapping):
                raise TypeError(f"document must be a mutable mapping, not {type(document)}")
            if "_id" not in document:
                document["_id"] = ObjectId()
            docs.append(document)
            inserted_ids.append(document["_id"])
        if not docs:
            raise TypeError("documents must be a non-empty list")

        full_result: dict[str, Any] = {"ok": 1, "n": 0, "writeErrors": []}
        batch_size = self._max_write_batch_size()
        for offset in range(0, len(docs), batch_size):
            cmd = {
                "insert": self._name,
                "ordered": ordered,
                "documents": docs[offset : offset + batch_size],
            }
            result = await self._command(cmd)
            full_result["n"] += result.get("n", 0)
            for error in result.get("writeErrors", []):
                error = dict(error)  # noqa: PLW2901
                error["index"] = error.get("index", 0) + offset
                full_result["writeErrors"].append(error)
            if ordered and full_result["writeErrors"]:
                break
        if not full_result["writeErrors"]:
            del full_result["writeErrors"]
        helpers._check_write_command_response(full_result, multi=True)
        return InsertManyResult(inserted_ids, full_result)

    async def insert(
        self, doc_or_docs: Union[MutableMapping[str, Any], Iterable[MutableMapping[str, Any]]]
    ) -> InsertManyResult:
        """Insert one document or an iterable of documents.

        A shortcut for :meth:`insert_many` that also accepts a single document.
        """
        if isinstance(doc_or_docs, abc.Mapping):
            return await self.insert_many([doc_or_docs])
        return await self.insert_many(doc_or_docs)

    async def save(
        self, doc_or_docs: Union[MutableMapping[str, Any], Iterable[MutableMapping[str, Any]]]
    ) -> InsertManyResult:
        """Alias of :meth:`insert`."""
        return await self.insert(doc_or_docs)

    async def _update(
        self,
        filter: Mapping[str, Any],
        update: Union[Mapping[str, Any], _Pipeline],
        multi: bool,
        upsert: bool,
    ) -> UpdateResult:
        if not isinstance(filter, abc.Mapping):
            raise TypeError(f"filter must be a mapping, not {type(filter)}")
        _validate_update(update)
        op = {"q": _format_id(filter), "u": update, "multi": multi, "upsert": upsert}
        cmd = {"update": self._name, "ordered": True, "updates": [op]}
        result = await self._command(cmd)
        helpers._check_write_command_response(result)
        return UpdateResult(result)

    async def update_one(
        self,
        filter: Mapping[str, Any],
        update: Union[Mapping[str, Any], _Pipeline],
        upsert: bool = False,
    ) -> UpdateResult:
        """Update a single document matching the filter.

          >>> result = await db.test.update_one({'x': 1}, {'$inc': {'x': 3}})
          >>> result.matched_count
          1
          >>> result.modified_count
          1

        :param filter: A query that matches the document to update.
        :param update: The modifications to apply.
        :param upsert: If ``True``, perform an insert if no documents
            match the filter.

        :return: An instance of :class:`~mongowire.results.UpdateResult`.
        """
        return await self._update(filter, update, False, upsert)

    async def update_many(
        self,
        filter: Mapping[str, Any],
        update: Union[Mapping[str, Any], _Pipeline],
        upsert: bool = False,
    ) -> UpdateResult:
        """Update one or more documents that match the filter.

        :param filter: A query that matches the documents to update.
        :param update: The modifications to apply.
        :param upsert: If ``True``, perform an insert if no documents
            match the filter.

        :return: An instance of :class:`~mongowire.results.UpdateResult`.
        """
        return await self._update(filter, update, True, upsert)

    async def _delete(self, filter: Mapping[str, Any], multi: bool) -> DeleteResult:
        if not isinstance(filter, abc.Mapping):
            raise TypeError(f"filter must be a mapping, not {type(filter)}")
        op = {"q": _format_id(filter), "limit": 0 if multi else 1}
        cmd = {"delete": self._name, "ordered": True, "deletes": [op]}
        result = await self._command(cmd)
        helpers._check_write_command_response(result)
        return DeleteResult(result)

    async def delete_one(self, filter: Mapping[str, Any]) -> DeleteResult:
        """Delete a single document matching the filter.

          >>> result = await db.test.delete_one({'x': 1})
          >>> result.deleted_count
          1

        :param filter: A query that matches the document to delete.

        :return: An instance of :class:`~mongowire.results.DeleteResult`.
        """
        return await self._delete(filter, False)

    async def delete_many(self, filter: Mapping[str, Any]) -> DeleteResult:
        """Delete one or more documents matching the filter.

        :param filter: A query that matches the documents to delete.

        :return: An instance of :class:`~mongowire.results.DeleteResult`.
        """
        return await self._delete(filter, True)

    async def delete(self, filter: Mapping[str, Any]) -> DeleteResult:
        """Alias of :meth:`delete_many`."""
        return await self.delete_many(filter)

    async def find_and_modify(self, filter: Mapping[str, Any], **fields: Any) -> Any:
        """Run a raw ``findAndModify`` command and return its ``value``.

        `fields` are added to the command verbatim, for example
        ``update``, ``remove``, ``new``, ``upsert``, ``sort`` or ``fields``.
        """
        cmd = {"findAndModify": self._name, "query": _format_id(filter)}
        cmd.update(fields)
        result = await self._command(cmd)
        return result.get("value")

    async def find_one_and_update(
        self,
        filter: Mapping[str, Any],
        update: Union[Mapping[str, Any], _Pipeline],
        return_document: bool = ReturnDocument.BEFORE,
        upsert: bool = False,
        sort: Optional[Any] = None,
        projection: Optional[Mapping[str, Any]] = None,
    ) -> Optional[dict[str, Any]]:
        """Finds a single document and updates it, returning either the
        original or the updated document.

          >>> await db.test.find_one_and_update(
          ...    {'_id': 665}, {'$inc': {'count': 1}, '$set': {'done': True}})
          {'_id': 665, 'done': False, 'count': 25}}

        :param filter: A query that matches the document to update.
        :param update: The update operations to apply.
        :param return_document: If
            :attr:`ReturnDocument.BEFORE` (the default),
            returns the original document before it was updated. If
            :attr:`ReturnDocument.AFTER`, returns the updated
            or inserted document.
        :param upsert: When ``True``, inserts a new document if no
            document matches the query. Defaults to ``False``.
        :param sort: a list of (key, direction) pairs specifying the sort
            order for the query. If multiple documents match the query,
            they are sorted and the first is updated.
        :param projection: the fields to return in the result document.
        """
        if not isinstance(return_document, bool):
            raise ValueError(
                "return_document must be ReturnDocument.BEFORE or ReturnDocument.AFTER"
            )
        _validate_update(update)
        fields: dict[str, Any] = {"update": update, "new": return_document, "upsert": upsert}
        if sort is not None:
            fields["sort"] = helpers._index_document(helpers._index_list(sort))
        if projection is not None:
            fields["fields"] = projection
        return await self.find_and_modify(filter, **fields)

    def find(
        self,
        filter: Optional[Mapping[str, Any]] = None,
        projection: Optional[Mapping[str, Any]] = None,
        skip: int = 0,
        limit: int = 0,
        sort: Optional[Any] = None,
        batch_size: int = 0,
    ) -> AsyncCursor[dict[str, Any]]:
        """Query the database.

        The `filter` argument is a query document that all results
        must match. For example:

        >>> db.test.find({"hello": "world"})

        only matches documents that have a key "hello" with value
        "world". Nothing is sent to the server until the cursor is iterated,
        so options may still be chained::

            docs = await db.test.find().sort("name", -1).skip(1).limit(1).to_list()

        :param filter: A query document that selects which documents
            to include in the result set.
        :param projection: a dict specifying the fields to include or exclude.
        :param skip: the number of documents to omit from the start of the
            result set.
        :param limit: the maximum number of results to return.
        :param sort: a list of (key, direction) pairs or a mapping specifying
            the sort order for this query.
        :param batch_size: Limits the number of documents returned in a
            single batch.
        """
        return AsyncCursor(self, _format_id(filter), projection, skip, limit, sort, batch_size)

    async def find_one(
        self, filter: Optional[Any] = None, *args: Any, **kwargs: Any
    ) -> Optional[dict[str, Any]]:
        """Get a single document from the database.

        All arguments to :meth:`find` are also valid arguments for
        :meth:`find_one`, although any `limit` argument will be
        ignored. Returns a single document, or ``None`` if no matching
        document is found.

        :param filter: a dictionary specifying
            the query to be performed OR any other type to be used as
            the value for a query for ``"_id"``.
        """
        if filter is not None and not isinstance(filter, abc.Mapping):
            filter = {"_id": filter}
        kwargs.pop("limit", None)
        cursor = self.find(filter, *args, **kwargs)
        try:
            return await cursor.limit(1).try_next()
        finally:
            await cursor.close()

    async def find_by_id(
        self, id: Union[str, ObjectId], *args: Any, **kwargs: Any
    ) -> Optional[dict[str, Any]]:
        """Get the document whose ``_id`` is the ObjectId `id`.

          >>> await db.test.find_by_id("60e6e614285ceda2e3c5c878")
          {'_id': ObjectId('60e6e614285ceda2e3c5c878'), 'x': 1}

        :param id: an :class:`~bson.objectid.ObjectId` or its 24 character
            hex string. Any other string raises
            :exc:`~bson.errors.InvalidId`.

        Other arguments are passed to :meth:`find_one`.
        """
        return await self.find_one({"_id": ObjectId(id)}, *args, **kwargs)

    async def find_by_id_and_update(
        self,
        id: Union[str, ObjectId],
        update: Union[Mapping[str, Any], _Pipeline],
        **kwargs: Any,
    ) -> Optional[dict[str, Any]]:
        """Update the document whose ``_id`` is the ObjectId `id`.

        Keyword arguments are passed to :meth:`find_one_and_update`.
        """
        return await self.find_one_and_update({"_id": ObjectId(id)}, update, **kwargs)

    async def delete_by_id(self, id: Union[str, ObjectId]) -> DeleteResult:
        """Delete the document whose ``_id`` is the ObjectId `id`."""
        return await self.delete_one({"_id": ObjectId(id)})

    async def aggregate(
        self, pipeline: _Pipeline, batch_size: Optional[int] = None, **kwargs: Any
    ) -> AsyncCommandCursor[dict[str, Any]]:
        """Perform an aggregation using the aggregation framework on this
        collection.

        :param pipeline: a list of aggregation pipeline stages
        :param batch_size: the number of documents per batch
        :param kwargs: extra `aggregate command`_ options, such as
            ``allowDiskUse``.

        :return: A :class:`~mongowire.asynchronous.command_cursor.AsyncCommandCursor` over the result
          set.
        """
        if not isinstance(pipeline, list):
            raise TypeError(f"pipeline must be a list, not {type(pipeline)}")
        cursor_opts: dict[str, Any] = {}
        if batch_size is not None:
            cursor_opts["batchSize"] = batch_size
        cmd = {"aggregate": self._name, "pipeline": pipeline, "cursor": cursor_opts}
        cmd.update(kwargs)
        return await self._database.wire.command_stream(
            self._database.name,
            cmd,
            self._name,
            self.read_preference,
            batch_size=batch_size or 0,
            codec_options=self.codec_options,
        )

    async def _aggregate_one_result(self, pipeline: _Pipeline) -> Optional[Mapping[str, Any]]:
        async with await self.aggregate(pipeline) as cursor:
            return await cursor.try_next()

    async def distinct(self, key: str, filter: Optional[Mapping[str, Any]] = None) -> list[Any]:
        """Get a list of distinct values for `key` among all documents
        in this collection.

        :param key: name of the field for which we want to get the distinct
            values
        :param filter: A query document that specifies the documents
            from which to retrieve the distinct values.
        """
        if not isinstance(key, str):
            raise TypeError(f"key must be an instance of str, not {type(key)}")
        cmd: dict[str, Any] = {"distinct": self._name, "key": key}
        if filter is not None:
            cmd["query"] = _format_id(filter)
        result = await self._command(cmd, self.read_preference)
        return list(result["values"])

    async def count(self, filter: Optional[Mapping[str, Any]] = None) -> int:
        """Run the ``count`` command and return the number of matches."""
        cmd: dict[str, Any] = {"count": self._name}
        if filter is not None:
            cmd["query"] = _format_id(filter)
        result = await self._command(cmd, self.read_preference, allowable_errors=[26])
        return int(result.get("n", 0))

    async def count_documents(
        self,
        filter: Mapping[str, Any],
        skip: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> int:
        """Count the number of documents in this collection.

        Runs an aggregation with ``$match``, the optional ``$skip`` and
        ``$limit`` stages, then ``$group``. Returns 0 when nothing matches.

        :param filter: A query document that selects which documents
            to count in the collection. Can be an empty document to count all
            documents.
        :param skip: The number of matching documents to skip before
            returning results.
        :param limit: The maximum number of documents to count.
        """
        pipeline: list[dict[str, Any]] = [{"$match": _format_id(filter)}]
        if skip:
            pipeline.append({"$skip": skip})
        if limit:
            pipeline.append({"$limit": limit})
        pipeline.append({"$group": {"_id": 1, "n": {"$sum": 1}}})
        result = await self._aggregate_one_result(pipeline)
        if not result:
            return 0
        return int(result["n"])

    async def estimated_document_count(self) -> int:
        """Get an estimate of the number of documents in this collection
        using collection metadata.
        """
        pipeline = [
            {"$collStats": {"count": {}}},
            {"$group": {"_id": 1, "n": {"$sum": "$count"}}},
        ]
        try:
            result = await self._aggregate_one_result(pipeline)
        except OperationFailure as exc:
            # The collection does not exist yet.
            if exc.code == 26:
                return 0
            raise
        if not result:
            return 0
        return int(result["n"])

    async def create_indexes(self, indexes: Sequence[Mapping[str, Any]]) -> list[str]:
        """Create one or more indexes on this collection.

          >>> await db.test.create_indexes([
          ...     {"key": [("hello", DESCENDING), ("world", ASCENDING)]},
          ...     {"key": {"goodbye": 1}, "name": "goodbye_idx"},
          ... ])
          ['hello_-1_world_1', 'goodbye_idx']

        :param indexes: index specifications, each a mapping with a ``key``
            (a field name, a list of (key, direction) pairs or a mapping) and
            optionally a ``name`` and other createIndexes options. A missing
            name is generated from the keys.

        :return: The names of the indexes, in order.
        """
        if not isinstance(indexes, list):
            raise TypeError(f"indexes must be a list, not {type(indexes)}")
        specs = []
        names = []
        for index in indexes:
            if not isinstance(index, abc.Mapping) or "key" not in index:
                raise TypeError(f"{index!r} is not an index specification with a 'key'")
            spec = dict(index)
            spec["key"] = helpers._index_document(helpers._index_list(index["key"]))
            if "name" not in spec:
                spec["name"] = helpers._gen_index_name(spec["key"])
            specs.append(spec)
            names.append(spec["name"])
        cmd = {"createIndexes": self._name, "indexes": specs}
        await self._command(cmd)
        return names

    async def create_index(self, keys: Any, **kwargs: Any) -> str:
        """Creates an index on this collection.

        Takes either a single key or a list containing (key, direction) pairs
        or keys. Any additional keyword arguments (``unique``, ``name``, ...)
        become options of the index.

          >>> await my_collection.create_index([("mike", DESCENDING)])

        :return: The name of the created index.
        """
        index = {"key": keys}
        index.update(kwargs)
        return (await self.create_indexes([index]))[0]

    async def list_indexes(self) -> AsyncCommandCursor[dict[str, Any]]:
        """Get a cursor over the index documents for this collection.

          >>> async for index in await db.test.list_indexes():
          ...     print(index)
          ...
          {'v': 2, 'key': {'_id': 1}, 'name': '_id_'}

        :return: An instance of :class:`~mongowire.asynchronous.command_cursor.AsyncCommandCursor`.
        """
        cmd = {"listIndexes": self._name, "cursor": {}}
        try:
            return await self._database.wire.command_stream(
                self._database.name,
                cmd,
                self._name,
                ReadPreference.PRIMARY,
                codec_options=self.codec_options,
            )
        except OperationFailure as exc:
            # Ignore NamespaceNotFound errors to match the behavior
            # of reading from *.system.indexes.
            if exc.code != 26:
                raise
            return AsyncCommandCursor(
                self._database.wire, {"id": 0, "firstBatch": []}, None, self._full_name
            )

    async def drop_indexes(self) -> None:
        """Drops all indexes on this collection.

        Can be used on non-existent collections or collections with no indexes.
        """
        await self.drop_index("*")

    async def drop_index(self, index_or_name: Any) -> None:
        """Drops the specified index on this collection.

        :param index_or_name: index (or name of index) to drop
        """
        name = index_or_name
        if isinstance(index_or_name, list):
            name = helpers._gen_index_name(helpers._index_document(index_or_name))

        if not isinstance(name, str):
            raise TypeError(f"index_or_name must be an instance of str or list, not {type(name)}")

        cmd = {"dropIndexes": self._name, "index": name}
        await self._command(cmd, allowable_errors=["ns not found", 26])

    async def drop(self) -> None:
        """Alias for :meth:`~mongowire.asynchronous.database.AsyncDatabase.drop_collection`."""
        await self._database.drop_collection(self._name)
