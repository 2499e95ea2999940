"""Tests for list filters and pagination metadata."""

import pytest

from comments_api.core.errors import ValidationError
from comments_api.core.pagination import (
    Filters,
    PaginationMeta,
    calculate_metadata,
    comment_filters,
)

_SAFELIST = ("id", "author", "-id", "-author")


class TestFilters:
    """Tests for offset/limit and sort handling."""

    def test_offset_for_first_page_is_zero(self):
        assert Filters(page=1, page_size=10, sort_safelist=_SAFELIST).offset == 0

    def test_offset_for_later_page(self):
        assert Filters(page=3, page_size=20, sort_safelist=_SAFELIST).offset == 40

    def test_limit_is_page_size(self):
        assert Filters(page_size=25, sort_safelist=_SAFELIST).limit == 25

    @pytest.mark.parametrize(
        ("sort", "column", "descending"),
        [("id", "id", False), ("-author", "author", True), ("-id", "id", True)],
    )
    def test_sort_column_and_direction(self, sort, column, descending):
        filters = Filters(sort=sort, sort_safelist=_SAFELIST)
        assert filters.sort_column == column
        assert filters.sort_descending is descending

    def test_unsafe_sort_falls_back_to_id(self):
        filters = Filters(sort="content; DROP TABLE comments", sort_safelist=_SAFELIST)
        assert filters.sort_column == "id"


class TestFiltersValidate:
    """Tests for bound and safelist validation."""

    def test_defaults_are_valid(self):
        Filters(sort_safelist=_SAFELIST).validate()

    @pytest.mark.parametrize(
        ("kwargs", "field"),
        [
            ({"page": 0}, "page"),
            ({"page": 501}, "page"),
            ({"page_size": 0}, "page_size"),
            ({"page_size": 101}, "page_size"),
            ({"sort": "content"}, "sort"),
        ],
    )
    def test_out_of_range_is_reported(self, kwargs, field):
        with pytest.raises(ValidationError) as exc_info:
            Filters(sort_safelist=_SAFELIST, **kwargs).validate()

        assert exc_info.value.details == [
            {"loc": ["query", field], "msg": exc_info.value.details[0]["msg"]}
        ]

    def test_all_violations_reported_together(self):
        with pytest.raises(ValidationError) as exc_info:
            Filters(page=0, page_size=0, sort="x", sort_safelist=_SAFELIST).validate()

        assert len(exc_info.value.details) == 3

    def test_comment_filters_dependency_validates(self):
        with pytest.raises(ValidationError):
            comment_filters(page=1, page_size=10, sort="content")

    def test_comment_filters_dependency_accepts_safelisted_sort(self):
        filters = comment_filters(page=2, page_size=5, sort="-author")
        assert filters.offset == 5
        assert filters.sort_column == "author"


class TestCalculateMetadata:
    """Tests for pagination metadata."""

    def test_empty_collection_has_empty_metadata(self):
        meta = calculate_metadata(0, 1, 10)
        assert meta == PaginationMeta()
        assert meta.model_dump(exclude_none=True) == {}

    def test_last_page_rounds_up(self):
        meta = calculate_metadata(101, 2, 20)
        assert meta.model_dump() == {
            "current_page": 2,
            "page_size": 20,
            "first_page": 1,
            "last_page": 6,
            "total_records": 101,
        }

    def test_exact_multiple(self):
        assert calculate_metadata(100, 1, 20).last_page == 5
