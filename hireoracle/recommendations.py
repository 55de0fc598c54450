"""Recommendation generation for capacity bottlenecks."""

import math
from typing import List, Sequence

from hireoracle.capacity_models import (
    CapacityConfidence,
    CapacityProfile,
    CapacityRecommendation,
    GlobalDemand,
    OwnerType,
    RecommendationType,
    StageQueueDiagnostic,
)
from hireoracle.config import TARGET_UTILIZATION
from hireoracle.stages import STAGE_LABELS

THROUGHPUT_IMPACT_SHARE = 0.7
REASSIGN_IMPACT_SHARE = 0.5
REDUCE_DEMAND_IMPACT_SHARE = 0.4
REASSIGN_MIN_OPEN_REQS = 3


def _round_days(days: float) -> int:
    # Half-up, so 2.5 days shows as 3
    return int(math.floor(days + 0.5))


def _confidence_hedge(profile: CapacityProfile) -> str:
    if profile.overall_confidence == CapacityConfidence.HIGH:
        return "Based on observed patterns"
    if profile.overall_confidence == CapacityConfidence.MED:
        return "Based on similar cohorts"
    return "Estimated (limited data)"


def generate_capacity_recommendations(bottlenecks: Sequence[StageQueueDiagnostic],
                                      global_demand: GlobalDemand,
                                      profile: CapacityProfile,
                                      total_delay_days: float) -> List[CapacityRecommendation]:
    """Generate actionable recommendations for the two worst bottlenecks."""
    recommendations = []
    hedge = _confidence_hedge(profile)

    for b in bottlenecks[:2]:
        label = STAGE_LABELS.get(b.stage, b.stage.value)
        owner = b.bottleneck_owner_type
        delay_share = b.queue_delay_days / total_delay_days if total_delay_days > 0 else 0.0

        # 1. Throughput increase to bring utilization down to target
        target_rate = math.ceil(b.demand / TARGET_UTILIZATION)
        if target_rate > b.service_rate:
            recommendations.append(CapacityRecommendation(
                type=RecommendationType.INCREASE_THROUGHPUT,
                description=f"{hedge}: Increase {label} throughput to ~{target_rate}/week",
                estimated_impact_days=_round_days(b.queue_delay_days * THROUGHPUT_IMPACT_SHARE),
                details={
                    'stage': b.stage,
                    'current_value': b.service_rate,
                    'target_value': target_rate,
                    'owner_type': owner,
                    'delay_share': delay_share,
                },
            ))

        # 2. Spread the load when the owner carries several reqs, else throttle intake
        context = global_demand.hm_context if owner == OwnerType.HM else global_demand.recruiter_context
        owner_label = "HM" if owner == OwnerType.HM else "Recruiter"

        reqs_to_reassign = 0
        if context.open_req_count > REASSIGN_MIN_OPEN_REQS and b.demand > 0:
            per_req_demand = b.demand / context.open_req_count
            reqs_to_reassign = math.ceil((b.demand - b.service_rate) / per_req_demand)

        if 0 < reqs_to_reassign < context.open_req_count:
            recommendations.append(CapacityRecommendation(
                type=RecommendationType.REASSIGN_WORKLOAD,
                description=f"{hedge}: Reassign ~{reqs_to_reassign} req(s) to reduce {owner_label} load",
                estimated_impact_days=_round_days(b.queue_delay_days * REASSIGN_IMPACT_SHARE),
                details={
                    'stage': b.stage,
                    'current_value': context.open_req_count,
                    'target_value': context.open_req_count - reqs_to_reassign,
                    'owner_type': owner,
                    'delay_share': delay_share,
                },
            ))
        else:
            capacity = max(1, int(math.floor(b.service_rate)))
            recommendations.append(CapacityRecommendation(
                type=RecommendationType.REDUCE_DEMAND,
                description=f"{hedge}: Hold {label} intake to ~{capacity}/week until the queue clears",
                estimated_impact_days=_round_days(b.queue_delay_days * REDUCE_DEMAND_IMPACT_SHARE),
                details={
                    'stage': b.stage,
                    'current_value': b.demand,
                    'target_value': capacity,
                    'owner_type': owner,
                    'delay_share': delay_share,
                },
            ))

    recommendations.sort(key=lambda r: -r.estimated_impact_days)

    # Data quality goes last regardless of impact
    if global_demand.confidence == CapacityConfidence.LOW:
        recommendations.append(CapacityRecommendation(
            type=RecommendationType.IMPROVE_DATA,
            description="Add recruiter_id and hm_id to improve forecast accuracy",
            estimated_impact_days=0,
            details={},
        ))

    return recommendations
