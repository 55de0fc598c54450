"""Monte Carlo simulation engine for the Hire Oracle.

A single hypothetical candidate is walked forward through the remaining
pipeline stages; at each stage a dwell time is sampled and one uniform draw
decides pass or drop-out. The driver repeats this and reads P10/P50/P90 off
the sorted day counts. The pipeline variant simulates every real candidate
inside the same iteration and keeps the fastest hire, so the joint
distribution across candidates is preserved.
"""

import logging
from collections import Counter
from datetime import date
from typing import Callable, Dict, List, Optional, Sequence

from hireoracle.analysis import (
    add_days,
    calculate_confidence_level,
    percentile_days,
    pipeline_confidence_level,
    probability_by_target,
)
from hireoracle.capacity import (
    apply_capacity_penalty,
    apply_capacity_penalty_v11,
    calculate_queue_delay,
    create_capacity_adjusted_params,
)
from hireoracle.capacity_models import (
    CapacityAwareForecast,
    CapacityConfidence,
    CapacityProfile,
    GlobalDemand,
)
from hireoracle.config import (
    CAPACITY_CONSTRAINED_P50_DELTA_DAYS,
    CAPACITY_CONSTRAINED_TOTAL_DELAY_DAYS,
    DEFAULT_QUEUE_FACTOR,
    FALLBACK_HORIZON_DAYS,
    MAX_ITERATIONS,
    PERFORMANCE_WARNING_ITERATIONS,
    SIMULATION_RUNS,
)
from hireoracle.distributions import UniformSource, sample_duration
from hireoracle.models import (
    ForecastConfidence,
    ForecastDebug,
    ForecastInput,
    ForecastResult,
    PipelineCandidate,
    SimulationParameters,
)
from hireoracle.rng import RandomStream, new_seed
from hireoracle.stages import STAGE_ORDER, TERMINAL_STAGES, CanonicalStage

logger = logging.getLogger(__name__)


def resolve_iterations(iterations: Optional[int]) -> int:
    """Apply the default, the performance warning and the hard ceiling."""
    if not iterations or iterations < 1:
        return SIMULATION_RUNS

    if iterations > MAX_ITERATIONS:
        logger.warning(
            "Requested %d iterations exceeds ceiling of %d; clamping",
            iterations, MAX_ITERATIONS,
        )
        return MAX_ITERATIONS

    if iterations > PERFORMANCE_WARNING_ITERATIONS:
        logger.warning(
            "%d iterations is above the performance warning threshold (%d)",
            iterations, PERFORMANCE_WARNING_ITERATIONS,
        )
    return iterations


def simulate_candidate_journey(start_stage: CanonicalStage,
                               params: SimulationParameters,
                               rng: UniformSource) -> Optional[float]:
    """Simulate one candidate walking through the funnel.

    Returns total days to hire, or None if the candidate drops out or was
    already out of the process.
    """
    try:
        start_index = STAGE_ORDER.index(start_stage)
    except ValueError:
        # Rejected, withdrew, or a stage before the simulated funnel
        return None

    days_elapsed = 0.0
    for stage in STAGE_ORDER[start_index:-1]:
        days_elapsed += sample_duration(params.duration(stage), rng)

        if rng() > params.pass_rate(stage):
            return None

    return days_elapsed


def _fallback_result(start_date: date, iterations: int, seed: str) -> ForecastResult:
    horizon = add_days(start_date, FALLBACK_HORIZON_DAYS)
    return ForecastResult(
        p10_date=horizon,
        p50_date=horizon,
        p90_date=horizon,
        simulated_days=(),
        confidence_level=ForecastConfidence.LOW,
        start_date=start_date,
        debug=ForecastDebug(iterations=iterations, seed=seed, successful_iterations=0),
    )


def _build_result(sorted_days: List[float], start_date: date, iterations: int,
                  seed: str, confidence: ForecastConfidence) -> ForecastResult:
    p10, p50, p90 = percentile_days(sorted_days)
    return ForecastResult(
        p10_date=add_days(start_date, p10),
        p50_date=add_days(start_date, p50),
        p90_date=add_days(start_date, p90),
        simulated_days=tuple(sorted_days),
        confidence_level=confidence,
        start_date=start_date,
        debug=ForecastDebug(
            iterations=iterations,
            seed=seed,
            successful_iterations=len(sorted_days),
        ),
    )


def run_simulation(forecast_input: ForecastInput,
                   params: SimulationParameters) -> ForecastResult:
    """Run Monte Carlo simulation for a single candidate journey."""
    iterations = resolve_iterations(forecast_input.iterations)
    seed = forecast_input.seed or new_seed()
    rng = RandomStream(seed)

    simulated_days = []
    for _ in range(iterations):
        days = simulate_candidate_journey(forecast_input.current_stage, params, rng)
        if days is not None:
            simulated_days.append(days)

    if not simulated_days:
        logger.debug("All %d iterations dropped out (seed=%s)", iterations, seed)
        return _fallback_result(forecast_input.start_date, iterations, seed)

    simulated_days.sort()
    return _build_result(
        simulated_days,
        forecast_input.start_date,
        iterations,
        seed,
        calculate_confidence_level(params.sample_sizes),
    )


def run_pipeline_simulation(candidates: Sequence[PipelineCandidate],
                            params: SimulationParameters,
                            start_date: date,
                            seed: Optional[str] = None,
                            iterations: int = SIMULATION_RUNS) -> ForecastResult:
    """Time until the first in-flight candidate reaches HIRED.

    Every candidate is simulated within each iteration from one shared stream
    and the minimum is kept; iterations where nobody is hired record nothing.
    Candidates whose stage could not be mapped are left out.
    """
    iterations = resolve_iterations(iterations)
    seed = seed or new_seed()

    unmapped = sum(1 for c in candidates if c.current_stage is None)
    if unmapped:
        logger.debug("Excluding %d candidate(s) with unmappable stage", unmapped)

    active = [
        c for c in candidates
        if c.current_stage is not None and c.current_stage not in TERMINAL_STAGES
    ]
    if not active:
        return _fallback_result(start_date, iterations, seed)

    rng = RandomStream(seed)
    first_hire_days = []

    for _ in range(iterations):
        fastest = None
        for candidate in active:
            days = simulate_candidate_journey(candidate.current_stage, params, rng)
            if days is not None and (fastest is None or days < fastest):
                fastest = days
        if fastest is not None:
            first_hire_days.append(fastest)

    if not first_hire_days:
        logger.debug("Pipeline of %d exhausted in all %d iterations", len(active), iterations)
        return _fallback_result(start_date, iterations, seed)

    first_hire_days.sort()
    confidence = pipeline_confidence_level(
        len(first_hire_days), iterations, params.sample_sizes
    )
    return _build_result(first_hire_days, start_date, iterations, seed, confidence)


def pipeline_counts(candidates: Sequence[PipelineCandidate]) -> Dict[CanonicalStage, int]:
    """Active candidates per stage, used as single-req demand."""
    counts = Counter(
        c.current_stage for c in candidates
        if c.current_stage is not None and c.current_stage not in TERMINAL_STAGES
    )
    return dict(counts)


def run_capacity_aware_forecast(candidates: Sequence[PipelineCandidate],
                                params: SimulationParameters,
                                capacity_profile: CapacityProfile,
                                start_date: date,
                                seed: Optional[str] = None,
                                iterations: int = SIMULATION_RUNS,
                                demand_by_stage: Optional[Dict[CanonicalStage, float]] = None,
                                global_demand: Optional[GlobalDemand] = None,
                                target_date: Optional[date] = None,
                                queue_factor: float = DEFAULT_QUEUE_FACTOR,
                                delay_fn: Callable[..., float] = calculate_queue_delay
                                ) -> CapacityAwareForecast:
    """Run pipeline-only and capacity-aware forecasts side by side.

    Both runs use the same seed, so the P50 delta reflects the queue delays
    and not Monte Carlo noise. With global_demand the v1.1 penalty model is
    used; otherwise demand_by_stage (or the pipeline's own stage counts).
    """
    seed = seed or new_seed()

    pipeline_only = run_pipeline_simulation(candidates, params, start_date, seed, iterations)

    if global_demand is not None:
        penalty = apply_capacity_penalty_v11(
            params.stage_durations, global_demand, capacity_profile,
            queue_factor=queue_factor, delay_fn=delay_fn,
        )
        version = "v1.1"
    else:
        demand = demand_by_stage if demand_by_stage is not None else pipeline_counts(candidates)
        penalty = apply_capacity_penalty(
            params.stage_durations, demand, capacity_profile,
            queue_factor=queue_factor, delay_fn=delay_fn,
        )
        version = "v1.0"

    adjusted_params = create_capacity_adjusted_params(params, penalty)
    capacity_aware = run_pipeline_simulation(
        candidates, adjusted_params, start_date, seed, iterations
    )

    p50_delta_days = (capacity_aware.p50_date - pipeline_only.p50_date).days

    pipeline_prob = capacity_prob = None
    if target_date is not None:
        pipeline_prob = probability_by_target(pipeline_only.simulated_days, start_date, target_date)
        capacity_prob = probability_by_target(capacity_aware.simulated_days, start_date, target_date)

    capacity_constrained = (
        p50_delta_days >= CAPACITY_CONSTRAINED_P50_DELTA_DAYS
        or penalty.total_queue_delay_days >= CAPACITY_CONSTRAINED_TOTAL_DELAY_DAYS
    )

    capacity_confidence = penalty.confidence
    if capacity_confidence == CapacityConfidence.INSUFFICIENT:
        capacity_confidence = CapacityConfidence.LOW

    if capacity_constrained:
        logger.info(
            "Capacity adds %d day(s) to P50 (total queue delay %.1f days)",
            p50_delta_days, penalty.total_queue_delay_days,
        )

    return CapacityAwareForecast(
        pipeline_only=pipeline_only,
        capacity_aware=capacity_aware,
        p50_delta_days=p50_delta_days,
        penalty=penalty,
        capacity_confidence=capacity_confidence,
        capacity_constrained=capacity_constrained,
        capacity_profile=capacity_profile,
        pipeline_probability_by_target=pipeline_prob,
        capacity_probability_by_target=capacity_prob,
        queue_model_version=version,
    )
