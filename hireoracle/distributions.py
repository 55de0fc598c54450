"""Stage duration sampling."""

import math
from typing import Callable, Optional

from hireoracle.config import DEFAULT_STAGE_DAYS
from hireoracle.models import (
    ConstantDuration,
    DurationDistribution,
    EmpiricalDuration,
    LognormalDuration,
)

UniformSource = Callable[[], float]


def sample_duration(dist: Optional[DurationDistribution], rng: UniformSource) -> float:
    """Draw one dwell time in days.

    Draw usage per call: constant 0, lognormal 2, empirical 1. Callers that
    rely on common random numbers depend on this staying fixed.
    """
    if dist is None:
        return DEFAULT_STAGE_DAYS

    if isinstance(dist, ConstantDuration):
        return DEFAULT_STAGE_DAYS if dist.days is None else dist.days

    if isinstance(dist, LognormalDuration):
        # Box-Muller; 1 - u keeps log() away from 0
        u = 1.0 - rng()
        v = 1.0 - rng()
        z = math.sqrt(-2.0 * math.log(u)) * math.cos(2.0 * math.pi * v)
        return math.exp(dist.mu + dist.sigma * z)

    if isinstance(dist, EmpiricalDuration):
        if not dist.buckets:
            return DEFAULT_STAGE_DAYS
        r = rng()
        cumulative = 0.0
        for bucket in dist.buckets:
            cumulative += bucket.probability
            if r <= cumulative:
                return bucket.days
        return dist.buckets[-1].days

    raise TypeError(f"Unsupported duration distribution: {type(dist).__name__}")


def distribution_median(dist: Optional[DurationDistribution]) -> float:
    """Median dwell time in days, 7 when unknown."""
    if dist is None:
        return DEFAULT_STAGE_DAYS

    if isinstance(dist, LognormalDuration):
        return dist.median

    if isinstance(dist, ConstantDuration):
        return DEFAULT_STAGE_DAYS if dist.days is None else dist.days

    if isinstance(dist, EmpiricalDuration):
        if not dist.buckets:
            return DEFAULT_STAGE_DAYS
        cumulative = 0.0
        for bucket in dist.buckets:
            cumulative += bucket.probability
            if cumulative >= 0.5:
                return bucket.days
        return dist.buckets[0].days

    raise TypeError(f"Unsupported duration distribution: {type(dist).__name__}")
