"""
Module: stock_kernel.selectors.base
Responsibility: Abstract base class for all read-only query selectors, plus
    the pagination and search helpers they share.
Architecture position: Kernel > Selectors.  May import from db/, models/
    and domain/.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Read-only access: selectors never add, delete, flush or commit.
    - DTO return convention: selectors return frozen dataclasses or
      computed values, never ORM instances.
    - Search text is always bound as a parameter (LIKE with escaping);
      it is never interpolated into SQL.

Failure modes:
    - PaginationError for page < 1 or page_size outside 1..max_page_size.
"""

from abc import ABC

from sqlalchemy import or_
from sqlalchemy.orm import Session

from stock_kernel.exceptions import PaginationError

DEFAULT_MAX_PAGE_SIZE = 500


def validate_page(page: int, page_size: int, max_page_size: int) -> int:
    """
    Check a 1-based page request and return its row offset.

    Raises:
        PaginationError: If page < 1 or page_size is outside 1..max_page_size.
    """
    if page < 1 or page_size < 1 or page_size > max_page_size:
        raise PaginationError(page, page_size, max_page_size)
    return (page - 1) * page_size


def search_predicate(search: str | None, *columns):
    """
    Case-insensitive substring match of ``search`` against any of ``columns``.

    Returns None when there is nothing to search for.
    """
    if search is None or not search.strip():
        return None
    needle = search.strip()
    return or_(*(column.icontains(needle, autoescape=True) for column in columns))


class BaseSelector(ABC):
    """
    Abstract base class for all selectors.

    Contract:
        Selectors accept a Session from the caller, perform read-only
        queries, and return DTOs or computed results.  The caller owns the
        session and its transaction scope.
    """

    def __init__(self, session: Session, max_page_size: int = DEFAULT_MAX_PAGE_SIZE):
        self.session = session
        self.max_page_size = max_page_size
