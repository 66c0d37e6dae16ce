"""
Unit tests for the query feature builder.

Tests cover:
- Filter extraction (equality and bracket comparison operators)
- Reserved keys never becoming filters
- Sort parsing with descending prefixes and the default sort
- Field projection (include and exclude)
- Pagination defaults, invalid or oversized values and skip computation
- Repeated keys and scope prepending
"""

import pytest

from api.src.services.query_features import (
    ASCENDING,
    DEFAULT_LIMIT,
    DESCENDING,
    Expansion,
    FilterClause,
    MAX_WINDOW,
    QueryFeatures,
    QueryRequest,
    build_query_request,
)


# ============================================================================
# FILTERING
# ============================================================================


class TestFilter:
    """Tests for filter clause extraction."""

    def test_plain_key_becomes_equality(self):
        """Test a plain key produces an eq clause."""
        request = QueryFeatures({"difficulty": "easy"}).filter().request

        assert request.filters == (FilterClause("difficulty", "eq", "easy"),)

    @pytest.mark.parametrize("op", ["gt", "gte", "lt", "lte"])
    def test_bracket_operator(self, op):
        """Test bracket notation maps to a comparison clause."""
        request = QueryFeatures({f"price[{op}]": "500"}).filter().request

        assert request.filters == (FilterClause("price", op, "500"),)

    def test_reserved_keys_are_excluded(self):
        """Test page, sort, limit and fields never become filters."""
        params = {"page": "2", "sort": "price", "limit": "10", "fields": "name", "duration": "5"}

        request = QueryFeatures(params).filter().request

        assert [c.field for c in request.filters] == ["duration"]

    def test_unknown_operator_is_treated_as_field_name(self):
        """Test an unsupported bracket operator is kept as a literal key."""
        request = QueryFeatures({"price[ne]": "5"}).filter().request

        assert request.filters == (FilterClause("price[ne]", "eq", "5"),)

    def test_repeated_key_last_value_wins(self):
        """Test duplicated query keys collapse to the last occurrence."""
        params = [("difficulty", "easy"), ("difficulty", "medium")]

        request = QueryFeatures(params).filter().request

        assert request.filters == (FilterClause("difficulty", "eq", "medium"),)

    def test_list_values_take_last_element(self):
        """Test list-valued mappings use their last element."""
        request = QueryFeatures({"duration": ["5", "7"]}).filter().request

        assert request.filters == (FilterClause("duration", "eq", "7"),)


# ============================================================================
# SORTING
# ============================================================================


class TestSort:
    """Tests for sort key parsing."""

    def test_multiple_keys_with_direction(self):
        """Test comma separated keys with a descending prefix."""
        request = QueryFeatures({"sort": "-ratingsAverage,price"}).sort().request

        assert request.sort == (("ratingsAverage", DESCENDING), ("price", ASCENDING))

    def test_default_sort_applies_when_absent(self):
        """Test the default sort is newest first."""
        request = QueryFeatures({}).sort().request

        assert request.sort == (("createdAt", DESCENDING),)

    def test_custom_default_sort(self):
        """Test a caller-supplied default sort."""
        request = QueryFeatures({}, default_sort="name").sort().request

        assert request.sort == (("name", ASCENDING),)

    def test_blank_entries_are_ignored(self):
        """Test empty segments in the sort list are skipped."""
        request = QueryFeatures({"sort": "price,,  ,-duration"}).sort().request

        assert request.sort == (("price", ASCENDING), ("duration", DESCENDING))


# ============================================================================
# PROJECTION
# ============================================================================


class TestLimitFields:
    """Tests for field projection."""

    def test_include_list(self):
        """Test a plain field list becomes an include projection."""
        request = QueryFeatures({"fields": "name,duration,price"}).limit_fields().request

        assert request.include == ("name", "duration", "price")
        assert request.exclude == ()

    def test_exclude_list(self):
        """Test minus-prefixed fields become an exclude projection."""
        request = QueryFeatures({"fields": "-description,-images"}).limit_fields().request

        assert request.include == ()
        assert request.exclude == ("description", "images")

    def test_no_fields_means_no_projection(self):
        """Test an absent fields key leaves the projection empty."""
        request = QueryFeatures({}).limit_fields().request

        assert request.include == ()
        assert request.exclude == ()


# ============================================================================
# PAGINATION
# ============================================================================


class TestPaginate:
    """Tests for the page window."""

    def test_defaults(self):
        """Test page 1 and the default limit."""
        request = QueryFeatures({}).paginate().request

        assert request.page == 1
        assert request.limit == DEFAULT_LIMIT
        assert request.skip == 0

    def test_skip_is_computed_from_page_and_limit(self):
        """Test skip = (page - 1) * limit."""
        request = QueryFeatures({"page": "3", "limit": "10"}).paginate().request

        assert request.page == 3
        assert request.limit == 10
        assert request.skip == 20

    @pytest.mark.parametrize("raw", ["0", "-4", "abc", ""])
    def test_invalid_values_fall_back_to_defaults(self, raw):
        """Test non-positive or non-numeric values use the defaults."""
        request = QueryFeatures({"page": raw, "limit": raw}).paginate().request

        assert request.page == 1
        assert request.limit == DEFAULT_LIMIT

    def test_unlimited_request_has_zero_skip(self):
        """Test a request without a limit never skips."""
        assert QueryRequest(page=5, limit=None).skip == 0

    def test_oversized_limit_falls_back_to_default(self):
        """Test a limit beyond the store's integer range uses the default."""
        request = QueryFeatures({"limit": "100000000000000000000"}).paginate().request

        assert request.limit == DEFAULT_LIMIT

    def test_skip_is_capped(self):
        """Test a huge page never produces a skip beyond the store's range."""
        request = QueryFeatures({"page": str(MAX_WINDOW), "limit": "50"}).paginate().request

        assert request.page == MAX_WINDOW
        assert request.skip == MAX_WINDOW


# ============================================================================
# BUILD AND SCOPE
# ============================================================================


class TestBuild:
    """Tests for the full builder pipeline."""

    def test_build_applies_every_feature(self):
        """Test build() filters, sorts, projects and paginates."""
        params = {
            "duration[gte]": "5",
            "difficulty": "easy",
            "sort": "price",
            "fields": "name,price",
            "page": "2",
            "limit": "3",
        }

        request = build_query_request(params)

        assert FilterClause("duration", "gte", "5") in request.filters
        assert FilterClause("difficulty", "eq", "easy") in request.filters
        assert request.sort == (("price", ASCENDING),)
        assert request.include == ("name", "price")
        assert (request.page, request.limit, request.skip) == (2, 3, 3)

    def test_expansions_are_carried(self):
        """Test expansions pass through to the request."""
        guides = Expansion("guides", "users", select=("name",))

        request = build_query_request({}, expansions=[guides])

        assert request.expansions == (guides,)

    def test_with_scope_prepends_equality_clauses(self):
        """Test scope clauses come before client filters."""
        request = build_query_request({"rating": "5"}).with_scope({"tour": "abc"})

        assert request.filters[0] == FilterClause("tour", "eq", "abc")
        assert request.filters[1] == FilterClause("rating", "eq", "5")

    def test_empty_scope_returns_same_request(self):
        """Test an empty scope leaves the request untouched."""
        request = build_query_request({})

        assert request.with_scope({}) is request
