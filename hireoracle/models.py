"""Data models for the Hire Oracle forecasting engine."""

import math
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Dict, Optional, Tuple, Union

from hireoracle.config import DEFAULT_PASS_RATE, DEFAULT_STAGE_DAYS, SIMULATION_RUNS
from hireoracle.stages import CanonicalStage, is_terminal


# =============================================================================
# DURATION DISTRIBUTIONS
# =============================================================================

@dataclass(frozen=True)
class ConstantDuration:
    """Deterministic dwell time, the data-poor fallback."""
    days: Optional[float] = DEFAULT_STAGE_DAYS


@dataclass(frozen=True)
class LognormalDuration:
    """Right-skewed dwell time; median = e^mu."""
    mu: float
    sigma: float = 1.0

    @property
    def median(self) -> float:
        return math.exp(self.mu)


@dataclass(frozen=True)
class DurationBucket:
    days: float
    probability: float


@dataclass(frozen=True)
class EmpiricalDuration:
    """Discrete PMF over observed day counts (probabilities sum to 1)."""
    buckets: Tuple[DurationBucket, ...] = ()


DurationDistribution = Union[ConstantDuration, LognormalDuration, EmpiricalDuration]


# =============================================================================
# SIMULATION INPUTS
# =============================================================================

def rate_sample_key(stage: CanonicalStage) -> str:
    return f"{stage.value}_rate"


def duration_sample_key(stage: CanonicalStage) -> str:
    return f"{stage.value}_duration"


@dataclass(frozen=True)
class SimulationParameters:
    """Per-forecast input bundle. Never mutated; adjusted copies are built instead."""
    stage_conversion_rates: Dict[CanonicalStage, float] = field(default_factory=dict)
    stage_durations: Dict[CanonicalStage, DurationDistribution] = field(default_factory=dict)
    sample_sizes: Dict[str, int] = field(default_factory=dict)

    def pass_rate(self, stage: CanonicalStage) -> float:
        # A rate of exactly 0 is meaningful; only a missing stage defaults
        rate = self.stage_conversion_rates.get(stage)
        return DEFAULT_PASS_RATE if rate is None else rate

    def duration(self, stage: CanonicalStage) -> Optional[DurationDistribution]:
        return self.stage_durations.get(stage)


@dataclass(frozen=True)
class ForecastInput:
    current_stage: CanonicalStage
    start_date: date
    seed: Optional[str] = None
    iterations: int = SIMULATION_RUNS


@dataclass(frozen=True)
class PipelineCandidate:
    candidate_id: str
    current_stage: Optional[CanonicalStage]


# =============================================================================
# SIMULATION OUTPUTS
# =============================================================================

class ForecastConfidence(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


@dataclass(frozen=True)
class ForecastDebug:
    iterations: int
    seed: str
    successful_iterations: int = 0


@dataclass(frozen=True)
class ForecastResult:
    p10_date: date
    p50_date: date
    p90_date: date
    simulated_days: Tuple[float, ...]
    confidence_level: ForecastConfidence
    debug: ForecastDebug
    start_date: Optional[date] = None

    @property
    def success_probability(self) -> float:
        """Share of Monte Carlo iterations that ended in a hire."""
        if self.debug.iterations <= 0:
            return 0.0
        return self.debug.successful_iterations / self.debug.iterations

    def probability_by(self, target_date: date) -> Optional[float]:
        """Share of successful simulations that fill on or before target_date."""
        if not self.simulated_days or self.start_date is None:
            return None
        target_days = (target_date - self.start_date).days
        return sum(1 for d in self.simulated_days if d <= target_days) / len(self.simulated_days)


# =============================================================================
# WORKLOAD ENTITIES
# =============================================================================

class CandidateDisposition(str, Enum):
    ACTIVE = "Active"
    REJECTED = "Rejected"
    WITHDRAWN = "Withdrawn"
    HIRED = "Hired"


class RequisitionStatus(str, Enum):
    OPEN = "Open"
    CLOSED = "Closed"
    ON_HOLD = "OnHold"
    CANCELED = "Canceled"


@dataclass
class Candidate:
    candidate_id: str
    req_id: str
    current_stage: Optional[CanonicalStage]
    disposition: Optional[CandidateDisposition] = CandidateDisposition.ACTIVE

    @property
    def is_active(self) -> bool:
        if self.disposition not in (None, CandidateDisposition.ACTIVE):
            return False
        return not is_terminal(self.current_stage)


@dataclass
class Requisition:
    req_id: str
    recruiter_id: Optional[str] = None
    hiring_manager_id: Optional[str] = None
    status: RequisitionStatus = RequisitionStatus.OPEN
    closed_at: Optional[date] = None
    title: str = ""

    @property
    def is_open(self) -> bool:
        if self.status == RequisitionStatus.OPEN:
            return True
        return self.closed_at is None and self.status != RequisitionStatus.CLOSED


@dataclass
class User:
    user_id: str
    name: str
