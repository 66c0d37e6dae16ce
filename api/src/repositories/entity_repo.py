"""
Generic entity repository.

One ``EntityRepository`` per entity schema. It validates and casts incoming
data against the schema, casts query filters, strips hidden fields from
everything it returns to callers and resolves expansions. Per-entity behavior
(password hashing, slugs, rating aggregates) is passed in explicitly as
``before_save`` / ``after_write`` callbacks.
"""

from dataclasses import replace
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

import structlog

from api.src.exceptions import NotFoundError
from api.src.models.entities import ALL_SCHEMAS
from api.src.models.schema import EntitySchema, to_object_id
from api.src.repositories.document_store import Document, DocumentStore
from api.src.services.query_features import Expansion, FilterClause, QueryRequest

logger = structlog.get_logger(__name__)

BeforeSave = Callable[[Dict[str, Any]], Awaitable[Dict[str, Any]]]
AfterWrite = Callable[[Document], Awaitable[None]]

_SCHEMAS = {schema.collection: schema for schema in ALL_SCHEMAS}


def to_public(doc: Document, hidden: Iterable[str] = ()) -> Document:
    """Drop hidden fields and mirror ``_id`` as ``id``."""
    hidden = set(hidden)
    public = {k: v for k, v in doc.items() if k not in hidden}
    if "_id" in public:
        public["id"] = str(public["_id"])
    return public


def _hidden_for(collection: str) -> frozenset:
    schema = _SCHEMAS.get(collection)
    return schema.hidden_fields if schema else frozenset()


class EntityRepository:
    """Schema-driven CRUD over a ``DocumentStore`` collection."""

    def __init__(
        self,
        schema: EntitySchema,
        store: DocumentStore,
        *,
        before_save: Optional[BeforeSave] = None,
        after_write: Optional[AfterWrite] = None,
    ):
        self.schema = schema
        self.store = store
        self.collection = schema.collection
        self.before_save = before_save
        self.after_write = after_write

    async def ensure_indexes(self) -> None:
        for fields in self.schema.unique_indexes():
            await self.store.ensure_unique_index(self.collection, fields)

    # ------------------------------------------------------------------
    # Public (client-facing) operations
    # ------------------------------------------------------------------

    async def create(self, body: Mapping[str, Any]) -> Document:
        data = self.schema.validate(body)
        if self.before_save is not None:
            data = await self.before_save(data)
        doc = await self.store.insert_one(self.collection, data)
        logger.info("entity_created", collection=self.collection, id=str(doc["_id"]))
        if self.after_write is not None:
            await self.after_write(doc)
        return self.public(doc)

    async def get(self, doc_id: Any, expansions: Sequence[Expansion] = ()) -> Document:
        doc = await self.store.find_by_id(self.collection, to_object_id(doc_id))
        if doc is None:
            raise NotFoundError()
        public = self.public(doc)
        if expansions:
            await self._expand([public], expansions)
        return public

    async def find(
        self, request: QueryRequest, scope: Optional[Mapping[str, Any]] = None
    ) -> List[Document]:
        request = self._prepare(request.with_scope(scope or {}))
        docs = [self.public(d) for d in await self.store.find(self.collection, request)]
        if request.expansions:
            await self._expand(docs, request.expansions)
        return docs

    async def update(self, doc_id: Any, changes: Mapping[str, Any]) -> Document:
        object_id = to_object_id(doc_id)
        current = await self.store.find_by_id(self.collection, object_id)
        if current is None:
            raise NotFoundError()
        data = self.schema.validate(changes, partial=True, current=current)
        if self.before_save is not None:
            data = await self.before_save(data)
        doc = await self.store.update_by_id(self.collection, object_id, data)
        if doc is None:
            raise NotFoundError()
        logger.info("entity_updated", collection=self.collection, id=str(object_id), fields=sorted(data))
        if self.after_write is not None:
            await self.after_write(doc)
        return self.public(doc)

    async def delete(self, doc_id: Any) -> Document:
        doc = await self.store.delete_by_id(self.collection, to_object_id(doc_id))
        if doc is None:
            raise NotFoundError()
        logger.info("entity_deleted", collection=self.collection, id=str(doc["_id"]))
        if self.after_write is not None:
            await self.after_write(doc)
        return self.public(doc)

    def public(self, doc: Document) -> Document:
        return to_public(doc, self.schema.hidden_fields)

    # ------------------------------------------------------------------
    # Internal operations (auth flows); hidden fields included, no validation
    # ------------------------------------------------------------------

    async def find_raw_by_id(self, doc_id: Any) -> Optional[Document]:
        return await self.store.find_by_id(self.collection, to_object_id(doc_id))

    async def find_one_raw(self, **criteria: Any) -> Optional[Document]:
        filters = [FilterClause(k, "eq", v) for k, v in criteria.items()]
        return await self.store.find_one(self.collection, filters)

    async def set_fields(
        self, doc_id: Any, changes: Mapping[str, Any], unset: Sequence[str] = ()
    ) -> Document:
        doc = await self.store.update_by_id(self.collection, to_object_id(doc_id), changes, unset)
        if doc is None:
            raise NotFoundError()
        return doc

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _prepare(self, request: QueryRequest) -> QueryRequest:
        """Cast filter values and hide internal-only fields from projections."""
        filters = []
        for clause in request.filters:
            name = "_id" if clause.field == "id" else clause.field
            filters.append(FilterClause(name, clause.op, self.schema.cast_filter_value(name, clause.value)))

        hidden = self.schema.hidden_fields
        if request.include:
            include = tuple(f for f in request.include if f not in hidden)
            # Every requested field was hidden: fall back to the id only.
            include = include or ("_id",)
            return replace(request, filters=tuple(filters), include=include)
        exclude = tuple(dict.fromkeys(tuple(request.exclude) + tuple(sorted(hidden))))
        return replace(request, filters=tuple(filters), exclude=exclude)

    async def _expand(self, docs: List[Document], expansions: Sequence[Expansion]) -> None:
        for expansion in expansions:
            hidden = _hidden_for(expansion.collection)
            for doc in docs:
                if expansion.foreign_field:
                    request = QueryRequest(
                        filters=(FilterClause(expansion.foreign_field, "eq", doc["_id"]),),
                        include=expansion.select,
                        limit=None,
                    )
                    related = await self.store.find(expansion.collection, request)
                    doc[expansion.path] = [self._select(r, expansion, hidden) for r in related]
                    continue

                value = doc.get(expansion.path)
                if value is None or expansion.path not in doc:
                    continue
                if isinstance(value, list):
                    resolved = []
                    for ref in value:
                        target = await self.store.find_by_id(expansion.collection, ref)
                        if target is not None:
                            resolved.append(self._select(target, expansion, hidden))
                    doc[expansion.path] = resolved
                else:
                    target = await self.store.find_by_id(expansion.collection, value)
                    doc[expansion.path] = (
                        self._select(target, expansion, hidden) if target is not None else None
                    )

    @staticmethod
    def _select(doc: Document, expansion: Expansion, hidden: frozenset) -> Document:
        if expansion.select:
            doc = {k: v for k, v in doc.items() if k in expansion.select or k == "_id"}
        return to_public(doc, hidden)
