"""
Domains
=======

Subsets S ⊆ R^d on which derivatives are taken "within S".

The calculus core consumes domains only through boolean predicates:

    contains(x)            membership
    interior_contains(x)   S is a neighborhood of x
    is_unique_diff_at(x)   derivatives within S at x are uniquely determined
    is_isolated(x)         no other point of S lies arbitrarily close to x

plus ``sample``, a deterministic finite probe set standing in for "every
point of S near x" in numerical checks.

Uniqueness rules:
    - A convex set with nonempty interior has unique derivatives at every
      point of its closure (Universe, nondegenerate Box, Ball with r > 0).
    - A finite set never has unique derivatives (d ≥ 1).
    - insert(p, S) has unique derivatives at y iff S does.
    - S ∩ T has unique derivatives at x when one of the two is a
      neighborhood of x and the other has unique derivatives at x.
    - Anything else is conservatively reported as non-unique.
"""

import itertools
from typing import List, Optional, Sequence

import numpy as np

from jetpy.utils.helpers import as_point


class Domain:
    """Base class for subsets of R^d."""

    # Radii used when probing for nearby points of a general set
    PROBE_RADII = tuple(2.0 ** -k for k in range(4, 40, 3))

    def __init__(self, dim: int):
        if dim < 1:
            raise ValueError(f"dim must be positive, got {dim}")
        self.dim = int(dim)

    # ---- Predicates ----

    def contains(self, x) -> bool:
        raise NotImplementedError

    def __contains__(self, x) -> bool:
        return self.contains(x)

    def interior_contains(self, x) -> bool:
        """Default: every small coordinate probe around x stays in S."""
        x = as_point(x, self.dim)
        if not self.contains(x):
            return False
        r = self.PROBE_RADII[-1]
        return all(self.contains(x + r * u) for u in self.probe_directions())

    def is_unique_diff_at(self, x) -> bool:
        return False

    def is_isolated(self, x) -> bool:
        """Default: no probe point of S in shrinking punctured neighborhoods."""
        x = as_point(x, self.dim)
        for r in self.PROBE_RADII:
            for u in self.probe_directions():
                if self.contains(x + r * u):
                    return False
        return True

    def probe_directions(self) -> List[np.ndarray]:
        directions = []
        for j in range(self.dim):
            for sign in (1.0, -1.0):
                e = np.zeros(self.dim)
                e[j] = sign
                directions.append(e)
        if self.dim > 1:
            for signs in itertools.product((1.0, -1.0), repeat=self.dim):
                directions.append(np.array(signs) / np.sqrt(self.dim))
        return directions

    # ---- Sampling ----

    def default_center(self) -> np.ndarray:
        return np.zeros(self.dim)

    def default_radius(self) -> float:
        return 1.0

    def sample(
        self,
        count: int,
        rng: np.random.Generator,
        center=None,
        radius: Optional[float] = None,
    ) -> List[np.ndarray]:
        """
        Up to ``count`` points of S within ``radius`` of ``center``.

        Deterministic for a given generator state.
        """
        center = self.default_center() if center is None else as_point(center, self.dim)
        radius = self.default_radius() if radius is None else float(radius)
        points = []
        attempts = 0
        while len(points) < count and attempts < 20 * max(count, 1):
            attempts += 1
            candidate = center + radius * _uniform_in_ball(self.dim, rng)
            if self.contains(candidate):
                points.append(candidate)
        return points

    # ---- Set algebra ----

    def intersect(self, other: 'Domain') -> 'Domain':
        return Intersection(self, other)

    def insert(self, point) -> 'Domain':
        return Inserted(self, point)

    def neighborhood_within(self, x, radius: float) -> 'Domain':
        """insert(x, S ∩ Ball(x, radius)), the witnessing neighborhood of x within S."""
        x = as_point(x, self.dim)
        return Inserted(self.intersect(Ball(x, radius)), x)


def _uniform_in_ball(dim: int, rng: np.random.Generator) -> np.ndarray:
    direction = rng.normal(size=dim)
    norm = np.linalg.norm(direction)
    if norm == 0.0:
        return np.zeros(dim)
    return direction / norm * rng.uniform() ** (1.0 / dim)


class Universe(Domain):
    """The whole space R^d."""

    def contains(self, x) -> bool:
        as_point(x, self.dim)
        return True

    def interior_contains(self, x) -> bool:
        return True

    def is_unique_diff_at(self, x) -> bool:
        return True

    def is_isolated(self, x) -> bool:
        return False

    def intersect(self, other: Domain) -> Domain:
        return other

    def __repr__(self):
        return f"Universe(dim={self.dim})"


class Box(Domain):
    """The closed box Π [lowerᵢ, upperᵢ]."""

    def __init__(self, lower: Sequence[float], upper: Sequence[float]):
        lower = np.atleast_1d(np.asarray(lower, dtype=float))
        upper = np.atleast_1d(np.asarray(upper, dtype=float))
        if lower.shape != upper.shape or lower.ndim != 1:
            raise ValueError("lower and upper must be vectors of the same length")
        super().__init__(lower.size)
        self.lower = lower
        self.upper = upper

    @property
    def is_empty(self) -> bool:
        return bool(np.any(self.lower > self.upper))

    @property
    def is_degenerate(self) -> bool:
        return bool(np.any(self.lower >= self.upper))

    def contains(self, x) -> bool:
        x = as_point(x, self.dim)
        return bool(np.all(self.lower <= x) and np.all(x <= self.upper))

    def interior_contains(self, x) -> bool:
        x = as_point(x, self.dim)
        return bool(np.all(self.lower < x) and np.all(x < self.upper))

    def is_unique_diff_at(self, x) -> bool:
        return not self.is_degenerate and self.contains(x)

    def is_isolated(self, x) -> bool:
        if self.is_empty or not self.contains(x):
            return True
        return bool(np.all(self.lower == self.upper))

    def default_center(self) -> np.ndarray:
        return (self.lower + self.upper) / 2.0

    def default_radius(self) -> float:
        return float(np.linalg.norm(self.upper - self.lower) / 2.0) or 1.0

    def sample(self, count, rng, center=None, radius=None):
        if self.is_empty:
            return []
        center = self.default_center() if center is None else as_point(center, self.dim)
        radius = self.default_radius() if radius is None else float(radius)
        # Projection onto the box is non-expansive, so points stay near a center inside it
        return [
            np.clip(center + radius * _uniform_in_ball(self.dim, rng), self.lower, self.upper)
            for _ in range(count)
        ]

    def intersect(self, other: Domain) -> Domain:
        if isinstance(other, Box):
            return Box(np.maximum(self.lower, other.lower), np.minimum(self.upper, other.upper))
        if isinstance(other, Universe):
            return self
        return Intersection(self, other)

    def __repr__(self):
        return f"Box(lower={self.lower.tolist()}, upper={self.upper.tolist()})"


class Ball(Domain):
    """The open (default) or closed Euclidean ball of a given radius."""

    def __init__(self, center, radius: float, closed: bool = False):
        center = np.atleast_1d(np.asarray(center, dtype=float))
        super().__init__(center.size)
        if radius < 0:
            raise ValueError(f"radius must be non-negative, got {radius}")
        self.center = center.reshape(self.dim)
        self.radius = float(radius)
        self.closed = closed

    def _distance(self, x) -> float:
        return float(np.linalg.norm(as_point(x, self.dim) - self.center))

    def contains(self, x) -> bool:
        d = self._distance(x)
        return d <= self.radius if self.closed else d < self.radius

    def interior_contains(self, x) -> bool:
        return self._distance(x) < self.radius

    def is_unique_diff_at(self, x) -> bool:
        return self.radius > 0 and self._distance(x) <= self.radius

    def is_isolated(self, x) -> bool:
        if self.radius == 0:
            return True
        return self._distance(x) > self.radius

    def default_center(self) -> np.ndarray:
        return self.center.copy()

    def default_radius(self) -> float:
        return self.radius or 1.0

    def sample(self, count, rng, center=None, radius=None):
        if self.radius == 0 and not self.closed:
            return []
        center = self.default_center() if center is None else as_point(center, self.dim)
        radius = self.default_radius() if radius is None else float(radius)
        limit = self.radius * (1.0 - 1e-9)
        points = []
        for _ in range(count):
            candidate = center + radius * _uniform_in_ball(self.dim, rng)
            offset = candidate - self.center
            dist = np.linalg.norm(offset)
            if dist > limit:
                candidate = self.center + offset * (limit / dist)
            points.append(candidate)
        return points

    def __repr__(self):
        kind = "closed" if self.closed else "open"
        return f"Ball(center={self.center.tolist()}, radius={self.radius}, {kind})"


class FiniteSet(Domain):
    """A finite set of points; every point is isolated."""

    def __init__(self, points: Sequence, dim: Optional[int] = None):
        pts = [np.atleast_1d(np.asarray(p, dtype=float)) for p in points]
        if dim is None:
            if not pts:
                raise ValueError("dim is required for an empty FiniteSet")
            dim = pts[0].size
        super().__init__(dim)
        self.points = [as_point(p, self.dim) for p in pts]

    def contains(self, x) -> bool:
        x = as_point(x, self.dim)
        return any(np.array_equal(x, p) for p in self.points)

    def interior_contains(self, x) -> bool:
        return False

    def is_isolated(self, x) -> bool:
        return True

    def sample(self, count, rng, center=None, radius=None):
        if center is None:
            return list(self.points[:count])
        center = as_point(center, self.dim)
        radius = self.default_radius() if radius is None else float(radius)
        near = [p for p in self.points if np.linalg.norm(p - center) <= radius]
        return near[:count]

    def __repr__(self):
        return f"FiniteSet({[p.tolist() for p in self.points]})"


class Intersection(Domain):
    """S ∩ T."""

    def __init__(self, first: Domain, second: Domain):
        if first.dim != second.dim:
            raise ValueError(f"cannot intersect domains of dimensions {first.dim} and {second.dim}")
        super().__init__(first.dim)
        self.first = first
        self.second = second

    def contains(self, x) -> bool:
        return self.first.contains(x) and self.second.contains(x)

    def interior_contains(self, x) -> bool:
        return self.first.interior_contains(x) and self.second.interior_contains(x)

    def is_unique_diff_at(self, x) -> bool:
        if self.second.interior_contains(x):
            return self.first.is_unique_diff_at(x)
        if self.first.interior_contains(x):
            return self.second.is_unique_diff_at(x)
        return False

    def is_isolated(self, x) -> bool:
        if self.first.is_isolated(x) or self.second.is_isolated(x):
            return True
        if self.second.interior_contains(x) or self.first.interior_contains(x):
            return False
        return super().is_isolated(x)

    def _tighter(self) -> Domain:
        if self.second.default_radius() < self.first.default_radius():
            return self.second
        return self.first

    def default_center(self) -> np.ndarray:
        return self._tighter().default_center()

    def default_radius(self) -> float:
        return min(self.first.default_radius(), self.second.default_radius())

    def sample(self, count, rng, center=None, radius=None):
        center = self.default_center() if center is None else center
        radius = self.default_radius() if radius is None else radius
        points = []
        for _ in range(3):
            for p in self.first.sample(count, rng, center, radius):
                if self.second.contains(p):
                    points.append(p)
                    if len(points) == count:
                        return points
        return points

    def __repr__(self):
        return f"({self.first!r} ∩ {self.second!r})"


class Inserted(Domain):
    """insert(p, S) = S ∪ {p}."""

    def __init__(self, base: Domain, point):
        super().__init__(base.dim)
        self.base = base
        self.point = as_point(point, base.dim)

    def contains(self, x) -> bool:
        x = as_point(x, self.dim)
        return bool(np.array_equal(x, self.point)) or self.base.contains(x)

    def interior_contains(self, x) -> bool:
        return self.base.interior_contains(x)

    def is_unique_diff_at(self, x) -> bool:
        return self.base.is_unique_diff_at(x)

    def is_isolated(self, x) -> bool:
        return self.base.is_isolated(x)

    def default_center(self) -> np.ndarray:
        return self.point.copy()

    def default_radius(self) -> float:
        return self.base.default_radius()

    def sample(self, count, rng, center=None, radius=None):
        center = self.point if center is None else center
        return self.base.sample(count, rng, center, radius)

    def intersect(self, other: Domain) -> Domain:
        return Intersection(self, other)

    def __repr__(self):
        return f"insert({self.point.tolist()}, {self.base!r})"
