"""Geometry helpers shared by the routing, crossing and label stages.

Rectangles are (x, y, width, height) tuples with a top-left origin;
points are (x, y) tuples.
"""

from typing import List, Optional, Sequence, Tuple

Point = Tuple[float, float]
Rect = Tuple[float, float, float, float]

EPSILON = 1e-9


def rects_overlap(a: Rect, b: Rect, margin: float = 0.0) -> bool:
    """Strict overlap test; touching edges do not overlap."""
    return (
        a[0] < b[0] + b[2] + margin
        and a[0] + a[2] + margin > b[0]
        and a[1] < b[1] + b[3] + margin
        and a[1] + a[3] + margin > b[1]
    )


def rect_centre(rect: Rect) -> Point:
    return (rect[0] + rect[2] / 2, rect[1] + rect[3] / 2)


def union_rect(rects: Sequence[Rect]) -> Optional[Rect]:
    if not rects:
        return None
    min_x = min(r[0] for r in rects)
    min_y = min(r[1] for r in rects)
    max_x = max(r[0] + r[2] for r in rects)
    max_y = max(r[1] + r[3] for r in rects)
    return (min_x, min_y, max_x - min_x, max_y - min_y)


def clip_to_boundary(rect: Rect, towards: Point) -> Point:
    """Point where the ray from the rectangle's centre to `towards` leaves it."""
    cx, cy = rect_centre(rect)
    dx = towards[0] - cx
    dy = towards[1] - cy
    if abs(dx) < EPSILON and abs(dy) < EPSILON:
        return (cx, rect[1] + rect[3])
    half_w = rect[2] / 2
    half_h = rect[3] / 2
    scale_x = half_w / abs(dx) if abs(dx) > EPSILON else float("inf")
    scale_y = half_h / abs(dy) if abs(dy) > EPSILON else float("inf")
    scale = min(scale_x, scale_y)
    return (cx + dx * scale, cy + dy * scale)


def orientation(p: Point, q: Point, r: Point) -> float:
    """Cross product of (q - p) x (r - p); sign gives the turn direction."""
    return (q[0] - p[0]) * (r[1] - p[1]) - (q[1] - p[1]) * (r[0] - p[0])


def _sign(value: float) -> int:
    if value > EPSILON:
        return 1
    if value < -EPSILON:
        return -1
    return 0


def segments_cross(a1: Point, a2: Point, b1: Point, b2: Point) -> bool:
    """Proper crossing: each segment strictly straddles the other's line."""
    d1 = _sign(orientation(b1, b2, a1))
    d2 = _sign(orientation(b1, b2, a2))
    d3 = _sign(orientation(a1, a2, b1))
    d4 = _sign(orientation(a1, a2, b2))
    return d1 * d2 < 0 and d3 * d4 < 0


def collinear_overlap(a1: Point, a2: Point, b1: Point, b2: Point) -> bool:
    """Collinear segments sharing a stretch of positive length."""
    if _sign(orientation(a1, a2, b1)) != 0 or _sign(orientation(a1, a2, b2)) != 0:
        return False
    # Project on the dominant axis
    axis = 0 if abs(a2[0] - a1[0]) >= abs(a2[1] - a1[1]) else 1
    a_lo, a_hi = sorted((a1[axis], a2[axis]))
    b_lo, b_hi = sorted((b1[axis], b2[axis]))
    if a_hi - a_lo < EPSILON or b_hi - b_lo < EPSILON:
        return False
    return min(a_hi, b_hi) - max(a_lo, b_lo) > EPSILON


def segment_intersects_rect(p1: Point, p2: Point, rect: Rect, inset: float = 1.0) -> bool:
    """Whether an axis-aligned or diagonal segment passes through a rectangle's interior.

    The rectangle is shrunk by `inset` so that segments docking on the
    boundary do not count.
    """
    x, y, w, h = rect
    left, top, right, bottom = x + inset, y + inset, x + w - inset, y + h - inset
    if right <= left or bottom <= top:
        return False
    # Liang-Barsky clipping
    dx = p2[0] - p1[0]
    dy = p2[1] - p1[1]
    t0, t1 = 0.0, 1.0
    for p, q in ((-dx, p1[0] - left), (dx, right - p1[0]), (-dy, p1[1] - top), (dy, bottom - p1[1])):
        if abs(p) < EPSILON:
            if q < 0:
                return False
            continue
        t = q / p
        if p < 0:
            t0 = max(t0, t)
        else:
            t1 = min(t1, t)
        if t0 > t1:
            return False
    return True


def polyline_length(points: Sequence[Point]) -> float:
    return sum(
        abs(b[0] - a[0]) + abs(b[1] - a[1]) if a[0] == b[0] or a[1] == b[1]
        else ((b[0] - a[0]) ** 2 + (b[1] - a[1]) ** 2) ** 0.5
        for a, b in zip(points, points[1:])
    )


def polyline_midpoint(points: Sequence[Point]) -> Point:
    """Point halfway along a polyline's length."""
    if len(points) == 1:
        return points[0]
    half = polyline_length(points) / 2
    walked = 0.0
    for a, b in zip(points, points[1:]):
        segment = polyline_length([a, b])
        if segment > 0 and walked + segment >= half:
            t = (half - walked) / segment
            return (a[0] + (b[0] - a[0]) * t, a[1] + (b[1] - a[1]) * t)
        walked += segment
    return points[-1]


def simplify_polyline(points: List[Point]) -> List[Point]:
    """Drop duplicate consecutive points and interior collinear points."""
    deduped: List[Point] = []
    for point in points:
        if not deduped or abs(deduped[-1][0] - point[0]) > EPSILON or abs(deduped[-1][1] - point[1]) > EPSILON:
            deduped.append(point)
    if len(deduped) < 3:
        return deduped
    result = [deduped[0]]
    for i in range(1, len(deduped) - 1):
        if _sign(orientation(result[-1], deduped[i], deduped[i + 1])) != 0:
            result.append(deduped[i])
    result.append(deduped[-1])
    return result


def snap(value: float, grid: float) -> float:
    return round(value / grid) * grid
