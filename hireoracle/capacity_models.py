"""Capacity, demand and queue-penalty data models."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from hireoracle.config import COHORT_CAPACITY_PRIORS
from hireoracle.models import Candidate, ForecastResult, Requisition, User
from hireoracle.stages import CanonicalStage


class CapacityConfidence(str, Enum):
    HIGH = "HIGH"
    MED = "MED"
    LOW = "LOW"
    INSUFFICIENT = "INSUFFICIENT"


# Worst first; used to take the minimum of several confidences
CAPACITY_CONFIDENCE_ORDER = [
    CapacityConfidence.INSUFFICIENT,
    CapacityConfidence.LOW,
    CapacityConfidence.MED,
    CapacityConfidence.HIGH,
]


class OwnerType(str, Enum):
    RECRUITER = "recruiter"
    HM = "hm"
    BOTH = "both"


class DemandScope(str, Enum):
    SINGLE_REQ = "single_req"
    GLOBAL_BY_RECRUITER = "global_by_recruiter"
    GLOBAL_BY_HM = "global_by_hm"
    BOTH = "both"


class RecommendationType(str, Enum):
    INCREASE_THROUGHPUT = "increase_throughput"
    REASSIGN_WORKLOAD = "reassign_workload"
    REDUCE_DEMAND = "reduce_demand"
    IMPROVE_DATA = "improve_data"


@dataclass(frozen=True)
class ConfidenceReason:
    type: str  # sample_size | volatility | missing_data | recency | shrinkage
    message: str
    impact: str  # positive | neutral | negative


# =============================================================================
# CAPACITY PROFILE
# =============================================================================

@dataclass(frozen=True)
class StageCapacity:
    """Observed throughput for one stage, in candidates per week."""
    stage: CanonicalStage
    throughput_per_week: float
    n_weeks: int = 0
    n_transitions: int = 0
    confidence: CapacityConfidence = CapacityConfidence.LOW
    prior_throughput: Optional[float] = None
    observed_throughput: Optional[float] = None


@dataclass
class RecruiterCapacity:
    recruiter_id: str
    screens_per_week: Optional[StageCapacity] = None
    hm_screens_per_week: Optional[StageCapacity] = None
    onsites_per_week: Optional[StageCapacity] = None
    offers_per_week: Optional[StageCapacity] = None
    recruiter_name: Optional[str] = None
    overall_confidence: CapacityConfidence = CapacityConfidence.MED
    confidence_reasons: List[ConfidenceReason] = field(default_factory=list)


@dataclass
class HMCapacity:
    hm_id: str
    interviews_per_week: Optional[StageCapacity] = None
    reviews_per_week: Optional[StageCapacity] = None
    hm_name: Optional[str] = None
    feedback_turnaround_hours: Optional[float] = None
    overall_confidence: CapacityConfidence = CapacityConfidence.MED
    confidence_reasons: List[ConfidenceReason] = field(default_factory=list)


@dataclass(frozen=True)
class CohortCapacityDefaults:
    screens_per_week: float = COHORT_CAPACITY_PRIORS["screens_per_week"]
    hm_screens_per_week: float = COHORT_CAPACITY_PRIORS["hm_screens_per_week"]
    onsites_per_week: float = COHORT_CAPACITY_PRIORS["onsites_per_week"]
    offers_per_week: float = COHORT_CAPACITY_PRIORS["offers_per_week"]
    hm_feedback_hours: float = COHORT_CAPACITY_PRIORS["hm_feedback_hours"]


@dataclass
class CapacityProfile:
    recruiter: Optional[RecruiterCapacity]
    hm: Optional[HMCapacity]
    cohort_defaults: CohortCapacityDefaults = field(default_factory=CohortCapacityDefaults)
    overall_confidence: CapacityConfidence = CapacityConfidence.LOW
    confidence_reasons: List[ConfidenceReason] = field(default_factory=list)
    used_cohort_fallback: bool = False


# =============================================================================
# GLOBAL DEMAND
# =============================================================================

@dataclass(frozen=True)
class WorkloadContext:
    owner_id: Optional[str]
    owner_name: Optional[str]
    open_req_count: int
    total_candidates_in_flight: int
    req_ids: Tuple[str, ...] = ()


@dataclass
class GlobalDemandInput:
    selected_req_id: str
    recruiter_id: Optional[str]
    hm_id: Optional[str]
    all_candidates: Sequence[Candidate]
    all_requisitions: Sequence[Requisition]
    users: Sequence[User] = ()


@dataclass
class GlobalDemand:
    demand_scope: DemandScope
    recruiter_demand: Dict[CanonicalStage, int]
    hm_demand: Dict[CanonicalStage, int]
    recruiter_context: WorkloadContext
    hm_context: WorkloadContext
    selected_req_pipeline: Dict[CanonicalStage, int]
    confidence: CapacityConfidence
    confidence_reasons: List[ConfidenceReason] = field(default_factory=list)

    @property
    def selected_pipeline_total(self) -> int:
        return sum(self.selected_req_pipeline.values())


# =============================================================================
# PENALTY RESULTS
# =============================================================================

@dataclass(frozen=True)
class StageQueueDiagnostic:
    stage: CanonicalStage
    stage_name: str
    demand: float
    service_rate: float
    queue_delay_days: float
    is_bottleneck: bool
    bottleneck_owner_type: Optional[OwnerType]
    confidence: CapacityConfidence


@dataclass(frozen=True)
class AdjustedDuration:
    stage: CanonicalStage
    original_median_days: float
    queue_delay_days: float
    adjusted_median_days: float
    adjusted_mu: Optional[float] = None
    adjusted_days: Optional[float] = None


@dataclass
class CapacityPenaltyResult:
    adjusted_durations: Dict[CanonicalStage, AdjustedDuration]
    stage_diagnostics: List[StageQueueDiagnostic]
    top_bottlenecks: List[StageQueueDiagnostic]
    total_queue_delay_days: float
    confidence: CapacityConfidence


@dataclass(frozen=True)
class CapacityRecommendation:
    type: RecommendationType
    description: str
    estimated_impact_days: int
    details: Dict[str, object] = field(default_factory=dict)


@dataclass
class CapacityPenaltyResultV11(CapacityPenaltyResult):
    global_demand: GlobalDemand
    recommendations: List[CapacityRecommendation]


@dataclass
class CapacityAwareForecast:
    """Pipeline-only and capacity-aware forecasts run on the same random stream."""
    pipeline_only: ForecastResult
    capacity_aware: ForecastResult
    p50_delta_days: int
    penalty: CapacityPenaltyResult
    capacity_confidence: CapacityConfidence
    capacity_constrained: bool
    capacity_profile: CapacityProfile
    pipeline_probability_by_target: Optional[float] = None
    capacity_probability_by_target: Optional[float] = None
    queue_model_version: str = "v1.0"

    @property
    def capacity_bottlenecks(self) -> List[StageQueueDiagnostic]:
        return self.penalty.top_bottlenecks

    @property
    def capacity_reasons(self) -> List[ConfidenceReason]:
        return self.capacity_profile.confidence_reasons
