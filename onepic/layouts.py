"""
Layout engine.

Pure, synchronous packing functions that turn photo dimensions into
placement rectangles sharing one coordinate frame anchored at (0, 0):

- compute_masonry: column packing into the currently shortest column
- compute_justified: row packing scaled towards a target row height

Photos are only read for ``id``, ``width`` and ``height``, so decoded
assets can be passed in directly.
"""

from dataclasses import dataclass, field
from typing import List, Literal, Sequence

LayoutMode = Literal["masonry", "justified"]

LAYOUT_MODES = ("masonry", "justified")

# Non-final justified rows stay within these multiples of the target height
ROW_HEIGHT_MIN_FACTOR = 0.75
ROW_HEIGHT_MAX_FACTOR = 1.25


@dataclass(frozen=True)
class Photo:
    """Dimensions of a single photo. Aspect ratio is width / height."""
    id: str
    width: float
    height: float

    @property
    def aspect_ratio(self) -> float:
        return self.width / self.height


@dataclass(frozen=True)
class LayoutItem:
    """Placement rectangle for one photo."""
    id: str
    x: float
    y: float
    width: float
    height: float


@dataclass(frozen=True)
class LayoutResult:
    """Packed layout. ``width`` is the requested width, ``height`` is derived."""
    width: float
    height: float
    items: List[LayoutItem] = field(default_factory=list)


def _clamp(value: float, low: float, high: float) -> float:
    return min(max(value, low), high)


def compute_masonry(
    photos: Sequence[Photo],
    columns: int,
    gutter: float,
    width: float,
) -> LayoutResult:
    """
    Pack photos into columns, always filling the shortest column.

    Ties between equally short columns go to the lowest column index, so
    the same input always produces the same picture.

    Args:
        photos: Photos in placement order
        columns: Column count, clamped to at least 1
        gutter: Spacing between columns and between stacked photos, clamped to >= 0
        width: Total layout width

    Returns:
        LayoutResult with one item per photo, in input order
    """
    columns = max(1, int(columns))
    gutter = max(0, gutter)
    column_width = (width - gutter * (columns - 1)) / columns
    column_heights = [0.0] * columns
    items = []

    for photo in photos:
        # min() returns the first minimum, i.e. the lowest index on ties
        target = min(range(columns), key=lambda i: column_heights[i])
        height = (photo.height / photo.width) * column_width

        items.append(LayoutItem(
            id=photo.id,
            x=target * (column_width + gutter),
            y=column_heights[target],
            width=column_width,
            height=height,
        ))

        column_heights[target] += height + gutter

    height = max(0, max(column_heights) - gutter)

    return LayoutResult(width=width, height=height, items=items)


def compute_justified(
    photos: Sequence[Photo],
    row_height: float,
    gutter: float,
    width: float,
) -> LayoutResult:
    """
    Pack photos into rows scaled to span the layout width.

    A row is closed once its width at the target height reaches ``width``.
    Closed rows are scaled to fit, but clamped to 75%-125% of the target
    height, so a single panorama or very tall photo cannot produce a sliver
    or a giant row. The final row is never stretched: it keeps the target
    height unless it would overflow the width.

    Args:
        photos: Photos in placement order
        row_height: Target row height
        gutter: Spacing between photos and between rows, clamped to >= 0
        width: Total layout width

    Returns:
        LayoutResult with one item per photo, in input order
    """
    gutter = max(0, gutter)
    min_height = row_height * ROW_HEIGHT_MIN_FACTOR
    max_height = row_height * ROW_HEIGHT_MAX_FACTOR

    items: List[LayoutItem] = []
    row: List[Photo] = []
    aspect_sum = 0.0
    cursor_y = 0.0

    def flush_row(is_last_row: bool) -> None:
        nonlocal row, aspect_sum, cursor_y

        available_width = width - gutter * (len(row) - 1)
        ideal_height = available_width / aspect_sum
        if is_last_row:
            resolved_height = min(row_height, ideal_height)
        else:
            resolved_height = _clamp(ideal_height, min_height, max_height)

        cursor_x = 0.0
        for photo in row:
            item_width = resolved_height * (photo.width / photo.height)
            items.append(LayoutItem(
                id=photo.id,
                x=cursor_x,
                y=cursor_y,
                width=item_width,
                height=resolved_height,
            ))
            cursor_x += item_width + gutter

        cursor_y += resolved_height + gutter
        row = []
        aspect_sum = 0.0

    last_index = len(photos) - 1
    for index, photo in enumerate(photos):
        row.append(photo)
        aspect_sum += photo.width / photo.height
        virtual_row_width = row_height * aspect_sum + gutter * (len(row) - 1)
        is_last_photo = index == last_index

        if virtual_row_width >= width or is_last_photo:
            flush_row(is_last_photo)

    height = max(0, cursor_y - gutter)

    return LayoutResult(width=width, height=height, items=items)


def compute_layout(
    photos: Sequence[Photo],
    mode: str,
    width: float,
    gutter: float,
    columns: int = 4,
    row_height: float = 340,
) -> LayoutResult:
    """
    Dispatch to the packer for ``mode``.

    Raises:
        ValueError: If mode is not "masonry" or "justified"
    """
    if mode == "masonry":
        return compute_masonry(photos, columns=columns, gutter=gutter, width=width)
    elif mode == "justified":
        return compute_justified(photos, row_height=row_height, gutter=gutter, width=width)
    else:
        raise ValueError(
            f"Invalid layout mode '{mode}'. Must be one of: {', '.join(LAYOUT_MODES)}."
        )
