"""
Numerics Configuration
======================

Tunable thresholds shared by the derivative primitive, the tower checker,
the smoothness predicates and the bound engine.

Every engine takes an optional ``config`` argument; when it is omitted the
module-level ``DEFAULT_CONFIG`` is used. Configurations are immutable; use
``with_overrides`` to derive a variant:

    >>> from jetpy.config import DEFAULT_CONFIG
    >>> loose = DEFAULT_CONFIG.with_overrides(check_rtol=1e-3)
"""

import logging
from dataclasses import dataclass, replace
from typing import Optional


@dataclass(frozen=True)
class NumericsConfig:
    """Thresholds for numerical checks and searches."""

    # Finite differences
    fd_step: float = 1e-3             # Base step, scaled by max(1, |x_j|)
    kink_atol: float = 1e-5           # Absolute slack when comparing one-sided quotients
    kink_shrink_ratio: float = 0.75   # Smooth gaps shrink at least this much when h halves
    fd_level_growth: float = 4.0      # Step multiplier per nesting level of numeric derivatives
    fd_min_step: float = 1e-10        # Halving floor when no side of x fits in the domain

    # Tower checks
    check_rtol: float = 1e-4
    check_atol: float = 1e-6
    continuity_levels: int = 5        # Probe radii r, r/2, ..., r/2^(levels-1)
    continuity_ratio: float = 0.25    # Smallest-radius gap must drop below ratio * largest
    continuity_radius: float = 1e-2
    sample_count: int = 6
    seed: int = 0

    # Witness search
    neighborhood_radius: float = 0.25
    max_shrink: int = 4
    lipschitz_max_shrink: int = 24    # Radius halvings allowed when fitting a Lipschitz constant

    # Order "infinity" is checked lazily for m = 0..horizon
    infinite_order_horizon: int = 4

    # Public-boundary policy for out-of-class queries
    strict: bool = False

    # Caching and parallelism
    cache_size: int = 4096
    parallel_workers: Optional[int] = None
    min_parallel_size: int = 64

    enable_logging: bool = False

    def __post_init__(self):
        if self.fd_step <= 0:
            raise ValueError(f"fd_step must be positive, got {self.fd_step}")
        if not 0 < self.fd_min_step <= self.fd_step:
            raise ValueError(
                f"fd_min_step must lie in (0, fd_step], got {self.fd_min_step}"
            )
        if self.fd_level_growth < 1:
            raise ValueError(f"fd_level_growth must be at least 1, got {self.fd_level_growth}")
        if self.sample_count < 0:
            raise ValueError(f"sample_count must be non-negative, got {self.sample_count}")
        if self.continuity_levels < 2:
            raise ValueError(
                f"continuity_levels must be at least 2, got {self.continuity_levels}"
            )
        if self.neighborhood_radius <= 0:
            raise ValueError(
                f"neighborhood_radius must be positive, got {self.neighborhood_radius}"
            )
        if self.infinite_order_horizon < 0:
            raise ValueError(
                f"infinite_order_horizon must be non-negative, got {self.infinite_order_horizon}"
            )

    def with_overrides(self, **kwargs) -> 'NumericsConfig':
        """Return a copy with the given fields replaced."""
        return replace(self, **kwargs)

    def apply_logging(self) -> None:
        if self.enable_logging:
            logging.basicConfig(level=logging.DEBUG)


DEFAULT_CONFIG = NumericsConfig()


def resolve_config(config: Optional[NumericsConfig]) -> NumericsConfig:
    """Fall back to the default configuration when none is given."""
    if config is None:
        return DEFAULT_CONFIG
    return config
