"""
MongoDB document store.

Implements ``DocumentStore`` on top of pymongo's asyncio client. Query
requests are translated to MongoDB filter, sort and projection documents;
duplicate-key write errors are re-raised as the domain ``DuplicateKeyError``.
"""

from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import structlog
from bson import ObjectId
from pymongo import ASCENDING, AsyncMongoClient, ReturnDocument
from pymongo.errors import DuplicateKeyError as MongoDuplicateKeyError

from api.src.exceptions import DuplicateKeyError
from api.src.repositories.document_store import Document, projection_fields
from api.src.services.query_features import FilterClause, QueryRequest

logger = structlog.get_logger(__name__)


def to_mongo_filter(filters: Sequence[FilterClause]) -> Dict[str, Any]:
    """
    Translate filter clauses to a MongoDB query document.

    Clauses on one field share an operator document. A repeated
    ``(field, op)`` pair (e.g. a scope clause and a client filter on the same
    field) goes to a top-level ``$and`` so every clause still applies.
    """
    criteria: Dict[str, Any] = {}
    repeated: List[Dict[str, Any]] = []
    for clause in filters:
        operators = criteria.setdefault(clause.field, {})
        key = f"${clause.op}"
        if key in operators:
            repeated.append({clause.field: {key: clause.value}})
        else:
            operators[key] = clause.value
    if repeated:
        criteria["$and"] = repeated
    return criteria


def to_mongo_projection(request: QueryRequest) -> Optional[Dict[str, int]]:
    include, exclude = projection_fields(request)
    if include:
        return {name: 1 for name in include}
    if exclude:
        return {name: 0 for name in exclude}
    return None


def _duplicate_key(exc: MongoDuplicateKeyError) -> DuplicateKeyError:
    details = exc.details or {}
    return DuplicateKeyError(details.get("keyValue") or {"key": details.get("errmsg", "unknown")})


class MongoDocumentStore:
    """pymongo-backed implementation of ``DocumentStore``."""

    def __init__(self, uri: str, database: str, **client_options: Any):
        self.client: AsyncMongoClient = AsyncMongoClient(uri, tz_aware=True, **client_options)
        self.db = self.client[database]
        logger.info("mongo_store_initialized", database=database, host=uri.split("@")[-1])

    async def ensure_unique_index(self, collection: str, fields: Tuple[str, ...]) -> None:
        name = await self.db[collection].create_index(
            [(f, ASCENDING) for f in fields], unique=True
        )
        logger.debug("mongo_index_ensured", collection=collection, index=name)

    async def insert_one(self, collection: str, document: Document) -> Document:
        doc = dict(document)
        try:
            result = await self.db[collection].insert_one(doc)
        except MongoDuplicateKeyError as exc:
            logger.warning("mongo_duplicate_key", collection=collection, details=exc.details)
            raise _duplicate_key(exc) from exc
        doc["_id"] = result.inserted_id
        return doc

    async def find_by_id(self, collection: str, doc_id: ObjectId) -> Optional[Document]:
        return await self.db[collection].find_one({"_id": doc_id})

    async def find_one(
        self, collection: str, filters: Sequence[FilterClause]
    ) -> Optional[Document]:
        return await self.db[collection].find_one(to_mongo_filter(filters))

    async def find(self, collection: str, request: QueryRequest) -> List[Document]:
        cursor = self.db[collection].find(
            to_mongo_filter(request.filters), to_mongo_projection(request)
        )
        if request.sort:
            cursor = cursor.sort(list(request.sort))
        if request.limit is not None:
            cursor = cursor.skip(request.skip).limit(request.limit)
        return await cursor.to_list()

    async def update_by_id(
        self,
        collection: str,
        doc_id: ObjectId,
        changes: Mapping[str, Any],
        unset: Sequence[str] = (),
    ) -> Optional[Document]:
        update: Dict[str, Any] = {}
        if changes:
            update["$set"] = dict(changes)
        if unset:
            update["$unset"] = {name: "" for name in unset}
        if not update:
            return await self.find_by_id(collection, doc_id)
        try:
            return await self.db[collection].find_one_and_update(
                {"_id": doc_id}, update, return_document=ReturnDocument.AFTER
            )
        except MongoDuplicateKeyError as exc:
            logger.warning("mongo_duplicate_key", collection=collection, details=exc.details)
            raise _duplicate_key(exc) from exc

    async def delete_by_id(self, collection: str, doc_id: ObjectId) -> Optional[Document]:
        return await self.db[collection].find_one_and_delete({"_id": doc_id})

    async def ping(self) -> bool:
        await self.client.admin.command("ping")
        return True

    async def close(self) -> None:
        await self.client.close()
        logger.info("mongo_store_closed")
