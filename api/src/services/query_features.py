"""
Query feature builder.

Turns an untyped query-string map (``?price[gte]=500&sort=-price&page=2``)
into a ``QueryRequest``: filter clauses, sort keys, a projection and a page
window. The request is store-agnostic; document stores translate it.

Reserved keys (page, sort, limit, fields) never become filters. Pagination is
always applied last, after filtering, sorting and projection.
"""

import re
from dataclasses import dataclass, field, replace
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import structlog

logger = structlog.get_logger(__name__)


RESERVED_KEYS = frozenset({"page", "sort", "limit", "fields"})
OPERATORS = ("eq", "gt", "gte", "lt", "lte")
DEFAULT_PAGE = 1
DEFAULT_LIMIT = 100
# Largest skip/limit a store accepts (BSON int64).
MAX_WINDOW = 2 ** 63 - 1

ASCENDING = 1
DESCENDING = -1

_OPERATOR_KEY = re.compile(r"^(?P<field>[^\[\]]+)\[(?P<op>gte|gt|lte|lt)\]$")

RawParams = Union[Mapping[str, Any], Iterable[Tuple[str, Any]]]


@dataclass(frozen=True)
class FilterClause:
    field: str
    op: str
    value: Any


@dataclass(frozen=True)
class Expansion:
    """
    Related-entity population.

    Forward expansion (``foreign_field`` unset): the value stored at ``path``
    is an id (or list of ids) into ``collection`` and is replaced by the
    referenced document(s). Reverse expansion: ``path`` is filled with the
    documents of ``collection`` whose ``foreign_field`` equals this
    document's id.
    """

    path: str
    collection: str
    select: Tuple[str, ...] = ()
    foreign_field: Optional[str] = None


@dataclass(frozen=True)
class QueryRequest:
    """Normalized filter/sort/projection/pagination description."""

    filters: Tuple[FilterClause, ...] = ()
    sort: Tuple[Tuple[str, int], ...] = ()
    include: Tuple[str, ...] = ()
    exclude: Tuple[str, ...] = ()
    page: int = DEFAULT_PAGE
    limit: Optional[int] = DEFAULT_LIMIT
    expansions: Tuple[Expansion, ...] = ()

    @property
    def skip(self) -> int:
        if self.limit is None:
            return 0
        return min((self.page - 1) * self.limit, MAX_WINDOW)

    def with_scope(self, scope: Mapping[str, Any]) -> "QueryRequest":
        """Prepend equality clauses for an ambient scope (e.g. a parent id)."""
        if not scope:
            return self
        scoped = tuple(FilterClause(k, "eq", v) for k, v in scope.items())
        return replace(self, filters=scoped + self.filters)


def _last_values(params: RawParams) -> List[Tuple[str, Any]]:
    """Flatten params so each key appears once; the last occurrence wins."""
    items = params.items() if isinstance(params, Mapping) else params
    flat = {}
    for key, value in items:
        if isinstance(value, (list, tuple)):
            if not value:
                continue
            value = value[-1]
        flat[key] = value
    return list(flat.items())


def _positive_int(raw: Any, default: int) -> int:
    """Parse a page or limit value; anything outside 1..MAX_WINDOW is the default."""
    try:
        value = int(str(raw).strip())
    except (TypeError, ValueError):
        return default
    return value if 0 < value <= MAX_WINDOW else default


def _split_csv(raw: Any) -> List[str]:
    return [part.strip() for part in str(raw).split(",") if part.strip()]


class QueryFeatures:
    """
    Chainable builder over a raw query-string map.

    Example:
        request = (
            QueryFeatures(request.query_params.multi_items(), default_sort="-createdAt")
            .filter()
            .sort()
            .limit_fields()
            .paginate()
            .request
        )
    """

    def __init__(
        self,
        params: RawParams,
        *,
        default_sort: str = "-createdAt",
        default_limit: int = DEFAULT_LIMIT,
        expansions: Sequence[Expansion] = (),
    ):
        self.params = dict(_last_values(params))
        self.default_sort = default_sort
        self.default_limit = default_limit
        self._request = QueryRequest(limit=default_limit, expansions=tuple(expansions))

    @property
    def request(self) -> QueryRequest:
        return self._request

    def filter(self) -> "QueryFeatures":
        clauses = []
        for key, value in self.params.items():
            if key in RESERVED_KEYS:
                continue
            match = _OPERATOR_KEY.match(key)
            if match:
                clauses.append(FilterClause(match.group("field"), match.group("op"), value))
            else:
                clauses.append(FilterClause(key, "eq", value))
        self._request = replace(self._request, filters=self._request.filters + tuple(clauses))
        return self

    def sort(self) -> "QueryFeatures":
        raw = self.params.get("sort") or self.default_sort
        keys = []
        for name in _split_csv(raw):
            if name.startswith("-"):
                keys.append((name[1:], DESCENDING))
            else:
                keys.append((name.lstrip("+"), ASCENDING))
        self._request = replace(self._request, sort=tuple(keys))
        return self

    def limit_fields(self) -> "QueryFeatures":
        raw = self.params.get("fields")
        if not raw:
            return self
        include, exclude = [], []
        for name in _split_csv(raw):
            if name.startswith("-"):
                exclude.append(name[1:])
            else:
                include.append(name)
        self._request = replace(self._request, include=tuple(include), exclude=tuple(exclude))
        return self

    def paginate(self) -> "QueryFeatures":
        page = _positive_int(self.params.get("page"), DEFAULT_PAGE)
        limit = _positive_int(self.params.get("limit"), self.default_limit)
        self._request = replace(self._request, page=page, limit=limit)
        return self

    def build(self) -> QueryRequest:
        """Apply every feature and return the resulting request."""
        request = self.filter().sort().limit_fields().paginate().request
        logger.debug(
            "query_request_built",
            filters=len(request.filters),
            sort=request.sort,
            page=request.page,
            limit=request.limit,
        )
        return request


def build_query_request(
    params: RawParams,
    *,
    default_sort: str = "-createdAt",
    default_limit: int = DEFAULT_LIMIT,
    expansions: Sequence[Expansion] = (),
) -> QueryRequest:
    return QueryFeatures(
        params,
        default_sort=default_sort,
        default_limit=default_limit,
        expansions=expansions,
    ).build()
