import math
from datetime import date, datetime, time, timezone
from typing import Optional

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def normalize_page(page: Optional[int]) -> int:
    return page if page and page > 0 else 1


def normalize_page_size(page_size: Optional[int]) -> int:
    if not page_size or page_size <= 0:
        return DEFAULT_PAGE_SIZE
    return min(page_size, MAX_PAGE_SIZE)


def start_of_day(value: date) -> datetime:
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def end_of_day(value: date) -> datetime:
    """Inclusive upper bound for a date-only ``to`` filter."""
    return datetime.combine(value, time.max, tzinfo=timezone.utc)


def page_meta(page: int, page_size: int, total: int) -> dict:
    total_pages = max(1, math.ceil(total / page_size)) if page_size else 1
    return {
        "page": page,
        "page_size": page_size,
        "total": total,
        "total_pages": total_pages,
        "has_prev": page > 1,
        "has_next": page < total_pages,
    }
