"""Statistical analysis of simulated time-to-fill distributions."""

import math
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Mapping, Optional, Sequence, Tuple

import numpy as np
from scipy import stats as stats_module

from hireoracle.config import (
    FALLBACK_HORIZON_DAYS,
    HIGH_CONFIDENCE_MIN_N,
    MEDIUM_CONFIDENCE_MIN_N,
    PIPELINE_HIGH_FILL_RATE,
    PIPELINE_MEDIUM_FILL_RATE,
)
from hireoracle.models import ForecastConfidence, ForecastResult

PERCENTILES = (0.1, 0.5, 0.9)


def add_days(start: date, days: float) -> date:
    """Offset a date by a (possibly fractional) day count, rounding half up."""
    return start + timedelta(days=math.floor(days + 0.5))


def percentile_index(n: int, p: float) -> int:
    """Truncating percentile index: floor(n * p)."""
    return min(int(math.floor(n * p)), n - 1)


def percentile_days(sorted_days: Sequence[float]) -> Tuple[float, float, float]:
    n = len(sorted_days)
    return tuple(sorted_days[percentile_index(n, p)] for p in PERCENTILES)


def calculate_confidence_level(sample_sizes: Mapping[str, int]) -> ForecastConfidence:
    """Confidence from the thinnest parameter behind the forecast."""
    if not sample_sizes:
        return ForecastConfidence.LOW

    min_size = min(sample_sizes.values())
    if min_size >= HIGH_CONFIDENCE_MIN_N:
        return ForecastConfidence.HIGH
    if min_size >= MEDIUM_CONFIDENCE_MIN_N:
        return ForecastConfidence.MEDIUM
    return ForecastConfidence.LOW


def pipeline_confidence_level(successful: int, iterations: int,
                              sample_sizes: Mapping[str, int]) -> ForecastConfidence:
    """Confidence for a multi-candidate forecast, gated by how often the req fills."""
    fill_rate = successful / iterations if iterations else 0.0
    if fill_rate >= PIPELINE_HIGH_FILL_RATE:
        return calculate_confidence_level(sample_sizes)
    if fill_rate >= PIPELINE_MEDIUM_FILL_RATE:
        return ForecastConfidence.MEDIUM
    return ForecastConfidence.LOW


def calculate_confidence_interval(successes: int, trials: int,
                                  confidence: float = 0.95) -> Tuple[float, float]:
    """Calculate Wilson score confidence interval for a proportion."""
    if trials == 0:
        return (0.0, 1.0)

    p = successes / trials
    z = stats_module.norm.ppf((1 + confidence) / 2)

    denominator = 1 + z**2 / trials
    center = (p + z**2 / (2 * trials)) / denominator
    margin = z * np.sqrt((p * (1 - p) + z**2 / (4 * trials)) / trials) / denominator

    return (max(0.0, float(center - margin)), min(1.0, float(center + margin)))


def probability_by_target(simulated_days: Sequence[float], start_date: date,
                          target_date: date) -> Optional[float]:
    """Share of successful simulations that fill on or before target_date."""
    if not simulated_days:
        return None
    target_days = (target_date - start_date).days
    days = np.asarray(simulated_days, dtype=float)
    return float(np.mean(days <= target_days))


@dataclass(frozen=True)
class ForecastSummary:
    sample_count: int
    mean_days: float
    std_days: float
    p10_days: float
    p50_days: float
    p90_days: float
    success_probability: float
    success_ci_lower: float
    success_ci_upper: float


def summarize_forecast(result: ForecastResult, confidence: float = 0.95) -> ForecastSummary:
    """Compute summary statistics for one forecast run."""
    successes = result.debug.successful_iterations
    ci_lower, ci_upper = calculate_confidence_interval(
        successes, result.debug.iterations, confidence
    )

    if not result.simulated_days:
        horizon = float(FALLBACK_HORIZON_DAYS)
        return ForecastSummary(
            sample_count=0,
            mean_days=horizon,
            std_days=0.0,
            p10_days=horizon,
            p50_days=horizon,
            p90_days=horizon,
            success_probability=result.success_probability,
            success_ci_lower=ci_lower,
            success_ci_upper=ci_upper,
        )

    days = np.sort(np.asarray(result.simulated_days, dtype=float))
    p10, p50, p90 = percentile_days(days)

    return ForecastSummary(
        sample_count=len(days),
        mean_days=float(np.mean(days)),
        std_days=float(np.std(days)),
        p10_days=float(p10),
        p50_days=float(p50),
        p90_days=float(p90),
        success_probability=result.success_probability,
        success_ci_lower=ci_lower,
        success_ci_upper=ci_upper,
    )
