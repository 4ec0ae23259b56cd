"""Pure geometry helpers for shape-tracing scoring.

Everything here is deterministic: identical arguments always produce the same
points in the same order, so scoring tests are reproducible.  Coordinates are
screen pixels (y grows downwards).
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import StrEnum


class Shape(StrEnum):
    SQUARE = "square"
    CIRCLE = "circle"
    DIAMOND = "diamond"


@dataclass(frozen=True, slots=True)
class Point:
    x: float
    y: float


def distance(a: Point, b: Point) -> float:
    return math.hypot(b.x - a.x, b.y - a.y)


def path_length(points: Sequence[Point]) -> float:
    """Sum of consecutive point-to-point distances along the raw path."""

    total = 0.0
    for prev, cur in zip(points, points[1:]):
        total += distance(prev, cur)
    return total


def nearest_distance(p: Point, candidates: Iterable[Point]) -> float:
    best = math.inf
    for c in candidates:
        d = distance(p, c)
        if d < best:
            best = d
    return best


def _edge_counts(sample_count: int, edges: int) -> list[int]:
    # Spread the remainder over the first edges so the total is exact.
    base, extra = divmod(sample_count, edges)
    return [base + (1 if i < extra else 0) for i in range(edges)]


def _sample_polygon(vertices: Sequence[Point], sample_count: int) -> tuple[Point, ...]:
    points: list[Point] = []
    counts = _edge_counts(sample_count, len(vertices))
    for i, n in enumerate(counts):
        a = vertices[i]
        b = vertices[(i + 1) % len(vertices)]
        for j in range(n):
            t = j / n
            points.append(Point(a.x + (b.x - a.x) * t, a.y + (b.y - a.y) * t))
    return tuple(points)


def shape_vertices(shape: Shape, *, center: Point, size: float) -> tuple[Point, ...]:
    """Corner points of a polygonal shape, clockwise from the tracing start."""

    half = float(size) / 2.0
    cx, cy = center.x, center.y
    if shape is Shape.SQUARE:
        return (
            Point(cx - half, cy - half),
            Point(cx + half, cy - half),
            Point(cx + half, cy + half),
            Point(cx - half, cy + half),
        )
    if shape is Shape.DIAMOND:
        return (
            Point(cx, cy - half),
            Point(cx + half, cy),
            Point(cx, cy + half),
            Point(cx - half, cy),
        )
    raise ValueError(f"{shape.value} has no vertices")


def sample_ideal_shape(shape: Shape, *, center: Point, size: float, sample_count: int = 100) -> tuple[Point, ...]:
    """Return ``sample_count`` points evenly spread along the shape outline.

    Square and diamond are sampled as equal-length runs along their four
    edges; the circle (diameter ``size``) is parametrised by angle starting at
    the rightmost point.
    """

    if sample_count < 1:
        raise ValueError("sample_count must be >= 1")
    if size <= 0:
        raise ValueError("size must be > 0")

    shape = Shape(shape)
    if shape is Shape.CIRCLE:
        radius = float(size) / 2.0
        return tuple(
            Point(
                center.x + radius * math.cos(2.0 * math.pi * i / sample_count),
                center.y + radius * math.sin(2.0 * math.pi * i / sample_count),
            )
            for i in range(sample_count)
        )
    return _sample_polygon(shape_vertices(shape, center=center, size=size), sample_count)


def start_point(shape: Shape, *, center: Point, size: float) -> Point:
    """Where the tracing marker is drawn: first vertex, or the circle's rightmost point."""

    shape = Shape(shape)
    if shape is Shape.CIRCLE:
        return Point(center.x + float(size) / 2.0, center.y)
    return shape_vertices(shape, center=center, size=size)[0]
