"""Pagination and sorting utilities for list endpoints.

page (default 1, max 500), page_size (default 10, max 100), sort from a
per-resource safelist; a leading "-" sorts descending.
"""

from dataclasses import dataclass, field

from fastapi import Query
from pydantic import BaseModel

from comments_api.core.errors import ValidationError

_MAX_PAGE = 500
_MAX_PAGE_SIZE = 100


@dataclass
class Filters:
    """Pagination and sort query parameters.

    Attributes:
        page: Current page number (1-indexed).
        page_size: Number of items per page.
        sort: Sort key, e.g. "id" or "-author".
        sort_safelist: Sort keys the endpoint accepts.
    """

    page: int = 1
    page_size: int = 10
    sort: str = "id"
    sort_safelist: tuple[str, ...] = field(default_factory=tuple)

    @property
    def offset(self) -> int:
        """Calculate SQL OFFSET for database queries.

        Returns:
            Number of items to skip (0 for page 1).
        """
        return (self.page - 1) * self.page_size

    @property
    def limit(self) -> int:
        """Calculate SQL LIMIT for database queries."""
        return self.page_size

    @property
    def sort_column(self) -> str:
        """Column name to sort by, without direction prefix.

        Falls back to "id" for anything outside the safelist so user input
        never reaches ORDER BY.
        """
        if self.sort in self.sort_safelist:
            return self.sort.removeprefix("-")
        return "id"

    @property
    def sort_descending(self) -> bool:
        """True when the sort key carries a leading '-'."""
        return self.sort.startswith("-")

    def validate(self) -> None:
        """Check bounds and the sort safelist.

        Raises:
            ValidationError: With one detail entry per invalid field.
        """
        details: list[dict] = []
        if not 1 <= self.page <= _MAX_PAGE:
            details.append(
                {"loc": ["query", "page"], "msg": f"must be between 1 and {_MAX_PAGE}"}
            )
        if not 1 <= self.page_size <= _MAX_PAGE_SIZE:
            details.append(
                {
                    "loc": ["query", "page_size"],
                    "msg": f"must be between 1 and {_MAX_PAGE_SIZE}",
                }
            )
        if self.sort not in self.sort_safelist:
            details.append({"loc": ["query", "sort"], "msg": "invalid sort value"})
        if details:
            raise ValidationError("Invalid query parameters", details=details)


class PaginationMeta(BaseModel):
    """Pagination metadata for collections.

    All fields are None (and omitted from the response) when the
    collection is empty.
    """

    current_page: int | None = None
    page_size: int | None = None
    first_page: int | None = None
    last_page: int | None = None
    total_records: int | None = None


def calculate_metadata(total_records: int, page: int, page_size: int) -> PaginationMeta:
    """Build pagination metadata for one page of results.

    Args:
        total_records: Total matching rows across all pages.
        page: Current page number.
        page_size: Items per page.

    Returns:
        PaginationMeta, empty when there are no records.
    """
    if total_records == 0:
        return PaginationMeta()
    return PaginationMeta(
        current_page=page,
        page_size=page_size,
        first_page=1,
        last_page=(total_records + page_size - 1) // page_size,
        total_records=total_records,
    )


def comment_filters(
    page: int = Query(default=1, description="Page number (1-indexed)"),
    page_size: int = Query(default=10, description="Items per page (max 100)"),
    sort: str = Query(default="id", description="id, author, -id or -author"),
) -> Filters:
    """FastAPI dependency for comment list pagination.

    Bounds are checked in Filters.validate() so that every violation is
    reported in one VALIDATION_ERROR response.
    """
    filters = Filters(
        page=page,
        page_size=page_size,
        sort=sort,
        sort_safelist=("id", "author", "-id", "-author"),
    )
    filters.validate()
    return filters
