from typing import Tuple

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def normalize_paging(page, page_size, max_page_size: int = MAX_PAGE_SIZE) -> Tuple[int, int]:
    """Clamp 1-based ``page`` and ``page_size``; junk falls back to the defaults."""
    p = _positive(page) or 1
    ps = _positive(page_size) or DEFAULT_PAGE_SIZE
    return p, min(ps, max_page_size)


def _positive(value) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return 0
    return number if number > 0 else 0
