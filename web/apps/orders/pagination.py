"""Page marker sequence for paged console views."""

from typing import List, Union

from .domain import ValidationError

ELLIPSIS = "…"

PageMarker = Union[int, str]


def page_sequence(current_page: int, total_pages: int, max_visible: int = 7) -> List[PageMarker]:
    """Return the page numbers to show, with ``ELLIPSIS`` for skipped runs.

    When there are more pages than ``max_visible``, the first and last page
    are always shown around a window of ``max_visible - 2`` pages centered on
    ``current_page`` and clamped to the interior pages.

    >>> page_sequence(5, 20)
    [1, '…', 3, 4, 5, 6, 7, '…', 20]

    Raises:
        ValidationError: If ``max_visible`` is smaller than 3.
    """
    if max_visible < 3:
        raise ValidationError("INVALID_MAX_VISIBLE", f"max_visible must be >= 3, got {max_visible}")
    if total_pages <= 0:
        return []
    if total_pages <= max_visible:
        return list(range(1, total_pages + 1))

    current = min(max(current_page, 1), total_pages)
    width = max_visible - 2
    start = max(2, current - (width - 1) // 2)
    end = start + width - 1
    if end > total_pages - 1:
        end = total_pages - 1
        start = end - width + 1

    markers: List[PageMarker] = [1]
    if start > 2:
        markers.append(ELLIPSIS)
    markers.extend(range(start, end + 1))
    if end < total_pages - 1:
        markers.append(ELLIPSIS)
    markers.append(total_pages)
    return markers
