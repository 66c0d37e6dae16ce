"""
Document store interface.

The repositories talk to the database only through this protocol. Two
implementations exist: ``MongoDocumentStore`` (pymongo async client) and
``MemoryDocumentStore`` (in-process, for development and tests). Both raise
the same error kinds: ``DuplicateKeyError`` when a unique index rejects a
write. Identifier and filter value casting happens before the store is
called (see ``EntityRepository``).
"""

from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple

from bson import ObjectId

from api.src.services.query_features import FilterClause, QueryRequest


Document = Dict[str, Any]


class DocumentStore(Protocol):
    """CRUD-by-id plus filtered/sorted/paginated find over named collections."""

    async def ensure_unique_index(self, collection: str, fields: Tuple[str, ...]) -> None:
        ...

    async def insert_one(self, collection: str, document: Document) -> Document:
        ...

    async def find_by_id(self, collection: str, doc_id: ObjectId) -> Optional[Document]:
        ...

    async def find_one(
        self, collection: str, filters: Sequence[FilterClause]
    ) -> Optional[Document]:
        ...

    async def find(self, collection: str, request: QueryRequest) -> List[Document]:
        ...

    async def update_by_id(
        self,
        collection: str,
        doc_id: ObjectId,
        changes: Mapping[str, Any],
        unset: Sequence[str] = (),
    ) -> Optional[Document]:
        ...

    async def delete_by_id(self, collection: str, doc_id: ObjectId) -> Optional[Document]:
        ...

    async def ping(self) -> bool:
        ...

    async def close(self) -> None:
        ...


def projection_fields(request: QueryRequest) -> Tuple[Tuple[str, ...], Tuple[str, ...]]:
    """
    Resolve the request's projection to either an include or an exclude list.

    A store can only apply one of the two; when both are present the excludes
    are removed from the includes.
    """
    if request.include:
        include = tuple(f for f in request.include if f not in request.exclude)
        return include, ()
    return (), tuple(request.exclude)
