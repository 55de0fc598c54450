"""Capacity / queueing penalty model.

Adds queue delay to stage durations when the demand on a recruiter or hiring
manager exceeds their observed weekly throughput:

    queue_delay_days = min(MAX_QUEUE_DELAY_DAYS,
                           queue_factor * (demand - capacity) / capacity * 7)

Delay is zero at or below capacity and grows linearly with the excess-demand
ratio. The v1.1 entry point takes demand from the owner's global workload
(every open req they carry) rather than the single req being forecast.
"""

import dataclasses
import logging
import math
from typing import Callable, Dict, List, Mapping, Optional, Tuple

from hireoracle.capacity_models import (
    CAPACITY_CONFIDENCE_ORDER,
    AdjustedDuration,
    CapacityConfidence,
    CapacityPenaltyResult,
    CapacityPenaltyResultV11,
    CapacityProfile,
    CohortCapacityDefaults,
    ConfidenceReason,
    GlobalDemand,
    HMCapacity,
    OwnerType,
    RecruiterCapacity,
    StageCapacity,
    StageQueueDiagnostic,
)
from hireoracle.config import DAYS_PER_WEEK, DEFAULT_QUEUE_FACTOR, MAX_QUEUE_DELAY_DAYS
from hireoracle.distributions import distribution_median
from hireoracle.models import (
    ConstantDuration,
    DurationDistribution,
    LognormalDuration,
    SimulationParameters,
)
from hireoracle.recommendations import generate_capacity_recommendations
from hireoracle.stages import CAPACITY_LIMITED_STAGES, STAGE_LABELS, CanonicalStage

logger = logging.getLogger(__name__)

DelayFunction = Callable[[float, float, float], float]

# Who naturally owns the work at each capacity-limited stage
STAGE_OWNER_MAP: Dict[CanonicalStage, OwnerType] = {
    CanonicalStage.SCREEN: OwnerType.RECRUITER,
    CanonicalStage.HM_SCREEN: OwnerType.HM,
    CanonicalStage.ONSITE: OwnerType.BOTH,
    CanonicalStage.OFFER: OwnerType.RECRUITER,
}

FALLBACK_SERVICE_RATE = 5.0


# =============================================================================
# QUEUE DELAY
# =============================================================================

def calculate_queue_delay(demand: float, service_rate: float,
                          queue_factor: float = DEFAULT_QUEUE_FACTOR) -> float:
    """Queue delay in days for one stage, capped at MAX_QUEUE_DELAY_DAYS."""
    if demand <= service_rate or service_rate <= 0:
        return 0.0

    excess_ratio = (demand - service_rate) / service_rate
    raw_delay = excess_ratio * DAYS_PER_WEEK * queue_factor
    return min(raw_delay, MAX_QUEUE_DELAY_DAYS)


# =============================================================================
# SERVICE RATES
# =============================================================================

def _stage_capacity(stage: CanonicalStage,
                    profile: CapacityProfile) -> Tuple[Optional[StageCapacity], str]:
    """The individual throughput record used for a stage, and whose it is."""
    recruiter, hm = profile.recruiter, profile.hm

    if stage == CanonicalStage.SCREEN:
        cap = recruiter.screens_per_week if recruiter else None
        return cap, "recruiter"

    if stage == CanonicalStage.HM_SCREEN:
        if hm and hm.interviews_per_week and hm.interviews_per_week.throughput_per_week:
            return hm.interviews_per_week, "hm"
        cap = recruiter.hm_screens_per_week if recruiter else None
        return cap, "recruiter"

    if stage == CanonicalStage.ONSITE:
        cap = recruiter.onsites_per_week if recruiter else None
        return cap, "recruiter"

    if stage == CanonicalStage.OFFER:
        cap = recruiter.offers_per_week if recruiter else None
        return cap, "recruiter"

    return None, "cohort"


def _cohort_rate(stage: CanonicalStage, defaults: CohortCapacityDefaults) -> float:
    if stage == CanonicalStage.SCREEN:
        return defaults.screens_per_week
    if stage == CanonicalStage.HM_SCREEN:
        return defaults.hm_screens_per_week
    if stage == CanonicalStage.ONSITE:
        return defaults.onsites_per_week
    if stage == CanonicalStage.OFFER:
        return defaults.offers_per_week
    return FALLBACK_SERVICE_RATE


def _service_rate_and_source(stage: CanonicalStage,
                             profile: CapacityProfile) -> Tuple[float, str]:
    cap, source = _stage_capacity(stage, profile)
    if cap is not None and cap.throughput_per_week:
        return cap.throughput_per_week, source
    return _cohort_rate(stage, profile.cohort_defaults), "cohort"


def get_service_rate_for_stage(stage: CanonicalStage, profile: CapacityProfile) -> float:
    """Throughput (candidates/week) for a stage, falling back to cohort defaults."""
    rate, _ = _service_rate_and_source(stage, profile)
    return rate


def _bottleneck_owner(stage: CanonicalStage, source: str) -> OwnerType:
    if stage == CanonicalStage.HM_SCREEN and source != "hm":
        # No HM capacity data; the recruiter schedules HM screens
        return OwnerType.RECRUITER
    return STAGE_OWNER_MAP.get(stage, OwnerType.BOTH)


# =============================================================================
# CONFIDENCE
# =============================================================================

def min_confidence(confidences: List[CapacityConfidence]) -> CapacityConfidence:
    if not confidences:
        return CapacityConfidence.LOW
    return min(confidences, key=CAPACITY_CONFIDENCE_ORDER.index)


def get_stage_confidence(stage: CanonicalStage, profile: CapacityProfile) -> CapacityConfidence:
    cap, _ = _stage_capacity(stage, profile)
    return cap.confidence if cap is not None else CapacityConfidence.LOW


def _stage_confidence_v11(stage: CanonicalStage, profile: CapacityProfile,
                          global_demand: GlobalDemand) -> CapacityConfidence:
    cap, _ = _stage_capacity(stage, profile)
    if cap is None:
        return CapacityConfidence.LOW

    owner = STAGE_OWNER_MAP.get(stage)
    if owner == OwnerType.RECRUITER and not global_demand.recruiter_context.owner_id:
        return CapacityConfidence.LOW
    if owner == OwnerType.HM and not global_demand.hm_context.owner_id:
        return CapacityConfidence.LOW

    return cap.confidence


def _aggregate_confidence_v11(confidences: List[CapacityConfidence],
                              profile: CapacityProfile,
                              global_demand: GlobalDemand) -> CapacityConfidence:
    prior_count = 0
    if profile.used_cohort_fallback:
        prior_count += 2
    if profile.recruiter is None:
        prior_count += 2
    if profile.hm is None:
        prior_count += 1

    if prior_count >= 2:
        return CapacityConfidence.LOW
    if not global_demand.recruiter_context.owner_id and not global_demand.hm_context.owner_id:
        return CapacityConfidence.LOW
    if global_demand.selected_pipeline_total == 0:
        return CapacityConfidence.LOW

    return min_confidence(confidences)


# =============================================================================
# DURATION ADJUSTMENT
# =============================================================================

def build_adjusted_duration(stage: CanonicalStage,
                            original: Optional[DurationDistribution],
                            original_median: float,
                            queue_delay: float) -> AdjustedDuration:
    adjusted_mu = adjusted_days = None

    if isinstance(original, LognormalDuration):
        # New median e^mu' = e^mu + delay
        adjusted_mu = math.log(max(1.0, original.median + queue_delay))
    else:
        adjusted_days = original_median + queue_delay

    return AdjustedDuration(
        stage=stage,
        original_median_days=original_median,
        queue_delay_days=queue_delay,
        adjusted_median_days=original_median + queue_delay,
        adjusted_mu=adjusted_mu,
        adjusted_days=adjusted_days,
    )


def create_capacity_adjusted_params(base_params: SimulationParameters,
                                    penalty_result: CapacityPenaltyResult) -> SimulationParameters:
    """New parameters with queue delays folded into bottlenecked stages.

    Stages without delay keep the identical distribution object.
    """
    durations = dict(base_params.stage_durations)

    for stage, adjustment in penalty_result.adjusted_durations.items():
        if adjustment.queue_delay_days <= 0:
            continue

        base_dist = base_params.stage_durations.get(stage)
        if isinstance(base_dist, LognormalDuration) and adjustment.adjusted_mu is not None:
            durations[stage] = dataclasses.replace(base_dist, mu=adjustment.adjusted_mu)
        elif adjustment.adjusted_days is not None:
            durations[stage] = ConstantDuration(days=adjustment.adjusted_days)

    return dataclasses.replace(base_params, stage_durations=durations)


# =============================================================================
# PENALTY APPLICATION
# =============================================================================

def _penalize(stage_durations: Mapping[CanonicalStage, DurationDistribution],
              demand_for: Callable[[CanonicalStage], float],
              confidence_for: Callable[[CanonicalStage], CapacityConfidence],
              profile: CapacityProfile,
              queue_factor: float,
              delay_fn: DelayFunction):
    diagnostics = []
    adjusted = {}
    total_delay = 0.0

    for stage in CAPACITY_LIMITED_STAGES:
        demand = demand_for(stage)
        service_rate, source = _service_rate_and_source(stage, profile)
        original = stage_durations.get(stage)

        delay = delay_fn(demand, service_rate, queue_factor)
        is_bottleneck = delay > 0

        diagnostics.append(StageQueueDiagnostic(
            stage=stage,
            stage_name=STAGE_LABELS.get(stage, stage.value),
            demand=demand,
            service_rate=service_rate,
            queue_delay_days=delay,
            is_bottleneck=is_bottleneck,
            bottleneck_owner_type=_bottleneck_owner(stage, source) if is_bottleneck else None,
            confidence=confidence_for(stage),
        ))
        adjusted[stage] = build_adjusted_duration(
            stage, original, distribution_median(original), delay
        )
        total_delay += delay

    top_bottlenecks = sorted(
        (d for d in diagnostics if d.is_bottleneck),
        key=lambda d: -d.queue_delay_days,
    )[:3]

    return diagnostics, adjusted, top_bottlenecks, total_delay


def apply_capacity_penalty(stage_durations: Mapping[CanonicalStage, DurationDistribution],
                           demand_by_stage: Mapping[CanonicalStage, float],
                           capacity_profile: CapacityProfile,
                           queue_factor: float = DEFAULT_QUEUE_FACTOR,
                           delay_fn: DelayFunction = calculate_queue_delay) -> CapacityPenaltyResult:
    """
    Apply capacity penalties to stage durations.

    Args:
        stage_durations: Original stage duration distributions
        demand_by_stage: Candidates waiting at each stage
        capacity_profile: Observed or cohort throughput
        queue_factor: Multiplier on the weekly queue delay
        delay_fn: Queue delay strategy, (demand, service_rate, queue_factor) -> days

    Returns:
        Per-stage diagnostics, adjusted durations and the top bottlenecks
    """
    diagnostics, adjusted, top_bottlenecks, total_delay = _penalize(
        stage_durations,
        lambda stage: demand_by_stage.get(stage, 0),
        lambda stage: get_stage_confidence(stage, capacity_profile),
        capacity_profile,
        queue_factor,
        delay_fn,
    )

    return CapacityPenaltyResult(
        adjusted_durations=adjusted,
        stage_diagnostics=diagnostics,
        top_bottlenecks=top_bottlenecks,
        total_queue_delay_days=total_delay,
        confidence=min_confidence([d.confidence for d in diagnostics]),
    )


def effective_demand(stage: CanonicalStage, global_demand: GlobalDemand) -> int:
    """Demand for a stage from the owning party's whole workload."""
    owner = STAGE_OWNER_MAP.get(stage)
    if owner == OwnerType.HM:
        return global_demand.hm_demand.get(stage, 0)
    if owner in (OwnerType.RECRUITER, OwnerType.BOTH):
        return global_demand.recruiter_demand.get(stage, 0)
    return global_demand.selected_req_pipeline.get(stage, 0)


def apply_capacity_penalty_v11(stage_durations: Mapping[CanonicalStage, DurationDistribution],
                               global_demand: GlobalDemand,
                               capacity_profile: CapacityProfile,
                               queue_factor: float = DEFAULT_QUEUE_FACTOR,
                               delay_fn: DelayFunction = calculate_queue_delay
                               ) -> CapacityPenaltyResultV11:
    """Apply capacity penalties using the recruiter's and HM's global demand."""
    diagnostics, adjusted, top_bottlenecks, total_delay = _penalize(
        stage_durations,
        lambda stage: effective_demand(stage, global_demand),
        lambda stage: _stage_confidence_v11(stage, capacity_profile, global_demand),
        capacity_profile,
        queue_factor,
        delay_fn,
    )

    confidences = [d.confidence for d in diagnostics] + [global_demand.confidence]
    confidence = _aggregate_confidence_v11(confidences, capacity_profile, global_demand)

    recommendations = generate_capacity_recommendations(
        top_bottlenecks, global_demand, capacity_profile, total_delay
    )

    if top_bottlenecks:
        worst = top_bottlenecks[0]
        logger.debug(
            "Worst bottleneck %s: demand %s vs %.1f/week, +%.1f days",
            worst.stage.value, worst.demand, worst.service_rate, worst.queue_delay_days,
        )

    return CapacityPenaltyResultV11(
        adjusted_durations=adjusted,
        stage_diagnostics=diagnostics,
        top_bottlenecks=top_bottlenecks,
        total_queue_delay_days=total_delay,
        confidence=confidence,
        global_demand=global_demand,
        recommendations=recommendations,
    )


# =============================================================================
# PROFILE CONSTRUCTION
# =============================================================================

def build_capacity_profile(recruiter: Optional[RecruiterCapacity],
                           hm: Optional[HMCapacity],
                           cohort_defaults: Optional[CohortCapacityDefaults] = None
                           ) -> CapacityProfile:
    """Assemble a profile, flagging every place cohort defaults stand in."""
    cohort_defaults = cohort_defaults or CohortCapacityDefaults()
    reasons: List[ConfidenceReason] = []
    used_fallback = False

    if recruiter is None:
        used_fallback = True
        reasons.append(ConfidenceReason(
            type="missing_data",
            message="No recruiter capacity history - using cohort defaults",
            impact="negative",
        ))
    else:
        reasons.extend(recruiter.confidence_reasons)
        missing = [
            name for name in ("screens_per_week", "onsites_per_week", "offers_per_week")
            if getattr(recruiter, name) is None
        ]
        if missing:
            used_fallback = True
            reasons.append(ConfidenceReason(
                type="missing_data",
                message=f"Cohort defaults used for {', '.join(missing)}",
                impact="negative",
            ))

    if hm is None:
        used_fallback = True
        reasons.append(ConfidenceReason(
            type="missing_data",
            message="No hiring manager capacity history - using cohort defaults",
            impact="negative",
        ))
    else:
        reasons.extend(hm.confidence_reasons)

    has_hm_screen_rate = (
        (hm is not None and hm.interviews_per_week is not None)
        or (recruiter is not None and recruiter.hm_screens_per_week is not None)
    )
    if not has_hm_screen_rate and hm is not None:
        used_fallback = True
        reasons.append(ConfidenceReason(
            type="missing_data",
            message="Cohort defaults used for HM interview throughput",
            impact="negative",
        ))

    if used_fallback:
        overall = CapacityConfidence.LOW
    else:
        overall = min_confidence([recruiter.overall_confidence, hm.overall_confidence])

    return CapacityProfile(
        recruiter=recruiter,
        hm=hm,
        cohort_defaults=cohort_defaults,
        overall_confidence=overall,
        confidence_reasons=reasons,
        used_cohort_fallback=used_fallback,
    )
