"""
In-process document store.

Implements the ``DocumentStore`` protocol over plain dicts with the same
query semantics the MongoDB store provides: comparison filters skip
documents missing the field, equality against an array field matches any
element, nulls sort first, unique indexes raise ``DuplicateKeyError``.

Used when ``store_backend`` is ``memory`` (local development) and by the
test suite.
"""

import copy
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import structlog
from bson import ObjectId

from api.src.exceptions import DuplicateKeyError
from api.src.repositories.document_store import Document, projection_fields
from api.src.services.query_features import ASCENDING, FilterClause, QueryRequest

logger = structlog.get_logger(__name__)

_MISSING = object()


def _lookup(doc: Mapping[str, Any], path: str) -> Any:
    value: Any = doc
    for part in path.split("."):
        if not isinstance(value, Mapping) or part not in value:
            return _MISSING
        value = value[part]
    return value


def _compare(op: str, actual: Any, expected: Any) -> bool:
    if op == "eq":
        if isinstance(actual, list) and not isinstance(expected, list):
            return expected in actual
        return actual == expected
    if actual is None or expected is None:
        return False
    try:
        if op == "gt":
            return actual > expected
        if op == "gte":
            return actual >= expected
        if op == "lt":
            return actual < expected
        if op == "lte":
            return actual <= expected
    except TypeError:
        return False
    raise ValueError(f"Unsupported filter operator: {op}")


def _matches(doc: Mapping[str, Any], filters: Sequence[FilterClause]) -> bool:
    for clause in filters:
        actual = _lookup(doc, clause.field)
        if actual is _MISSING:
            if clause.op == "eq" and clause.value is None:
                continue
            return False
        if not _compare(clause.op, actual, clause.value):
            return False
    return True


def _sort_key(value: Any) -> Tuple[int, Any]:
    """
    Total order over stored values.

    Values rank by type in BSON comparison order (null, numbers, strings,
    objects, arrays, ObjectId, booleans, dates); objects and arrays then
    compare by their members' keys.
    """
    if value is _MISSING or value is None:
        return (0, 0)
    if isinstance(value, bool):
        return (6, value)
    if isinstance(value, (int, float)):
        return (1, value)
    if isinstance(value, str):
        return (2, value)
    if isinstance(value, Mapping):
        return (3, tuple((str(k), _sort_key(v)) for k, v in value.items()))
    if isinstance(value, (list, tuple)):
        return (4, tuple(_sort_key(v) for v in value))
    if isinstance(value, ObjectId):
        return (5, value)
    if isinstance(value, datetime):
        return (7, value.timestamp())
    return (8, str(value))


def _project(doc: Document, include: Tuple[str, ...], exclude: Tuple[str, ...]) -> Document:
    if include:
        projected = {k: v for k, v in doc.items() if k in include}
        projected["_id"] = doc["_id"]
        return projected
    return {k: v for k, v in doc.items() if k not in exclude}


class MemoryDocumentStore:
    """Dict-backed implementation of ``DocumentStore``."""

    def __init__(self):
        self._collections: Dict[str, Dict[ObjectId, Document]] = {}
        self._unique: Dict[str, List[Tuple[str, ...]]] = {}

    def _collection(self, name: str) -> Dict[ObjectId, Document]:
        return self._collections.setdefault(name, {})

    def _check_unique(self, collection: str, candidate: Document) -> None:
        for fields in self._unique.get(collection, []):
            key = tuple(candidate.get(f) for f in fields)
            if any(v is None for v in key):
                continue
            for existing in self._collection(collection).values():
                if existing["_id"] == candidate.get("_id"):
                    continue
                if tuple(existing.get(f) for f in fields) == key:
                    logger.warning("memory_store_duplicate_key", collection=collection, fields=fields)
                    raise DuplicateKeyError(dict(zip(fields, key)))

    async def ensure_unique_index(self, collection: str, fields: Tuple[str, ...]) -> None:
        indexes = self._unique.setdefault(collection, [])
        if tuple(fields) not in indexes:
            indexes.append(tuple(fields))

    async def insert_one(self, collection: str, document: Document) -> Document:
        doc = copy.deepcopy(dict(document))
        doc.setdefault("_id", ObjectId())
        self._check_unique(collection, doc)
        self._collection(collection)[doc["_id"]] = doc
        return copy.deepcopy(doc)

    async def find_by_id(self, collection: str, doc_id: ObjectId) -> Optional[Document]:
        doc = self._collection(collection).get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def find_one(
        self, collection: str, filters: Sequence[FilterClause]
    ) -> Optional[Document]:
        for doc in self._collection(collection).values():
            if _matches(doc, filters):
                return copy.deepcopy(doc)
        return None

    async def find(self, collection: str, request: QueryRequest) -> List[Document]:
        docs = [d for d in self._collection(collection).values() if _matches(d, request.filters)]

        # Stable sorts applied from the least significant key.
        for field, direction in reversed(request.sort):
            docs.sort(key=lambda d: _sort_key(_lookup(d, field)), reverse=direction != ASCENDING)

        if request.limit is not None:
            docs = docs[request.skip:request.skip + request.limit]

        include, exclude = projection_fields(request)
        return [copy.deepcopy(_project(d, include, exclude)) for d in docs]

    async def update_by_id(
        self,
        collection: str,
        doc_id: ObjectId,
        changes: Mapping[str, Any],
        unset: Sequence[str] = (),
    ) -> Optional[Document]:
        stored = self._collection(collection).get(doc_id)
        if stored is None:
            return None
        updated = copy.deepcopy(stored)
        updated.update(copy.deepcopy(dict(changes)))
        for name in unset:
            updated.pop(name, None)
        self._check_unique(collection, updated)
        self._collection(collection)[doc_id] = updated
        return copy.deepcopy(updated)

    async def delete_by_id(self, collection: str, doc_id: ObjectId) -> Optional[Document]:
        return self._collection(collection).pop(doc_id, None)

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        self._collections.clear()
