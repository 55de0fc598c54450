"""Shared fixtures for the Hire Oracle tests."""

import math
from datetime import date

import pytest

from hireoracle.capacity import build_capacity_profile
from hireoracle.capacity_models import (
    CapacityConfidence,
    HMCapacity,
    RecruiterCapacity,
    StageCapacity,
)
from hireoracle.models import (
    Candidate,
    CandidateDisposition,
    ConstantDuration,
    LognormalDuration,
    Requisition,
    RequisitionStatus,
    SimulationParameters,
    User,
)
from hireoracle.stages import CanonicalStage

SCREEN = CanonicalStage.SCREEN
HM_SCREEN = CanonicalStage.HM_SCREEN
ONSITE = CanonicalStage.ONSITE
OFFER = CanonicalStage.OFFER
HIRED = CanonicalStage.HIRED


@pytest.fixture
def start_date():
    return date(2026, 1, 5)


@pytest.fixture
def funnel_rates():
    return {SCREEN: 0.5, HM_SCREEN: 0.6, ONSITE: 0.7, OFFER: 0.8}


@pytest.fixture
def constant_params(funnel_rates):
    """Four 7-day stages; every successful journey from SCREEN takes 28 days."""
    return SimulationParameters(
        stage_conversion_rates=funnel_rates,
        stage_durations={stage: ConstantDuration(days=7) for stage in funnel_rates},
    )


@pytest.fixture
def certain_params():
    """Everyone passes every stage in exactly 7 days."""
    stages = [SCREEN, HM_SCREEN, ONSITE, OFFER]
    return SimulationParameters(
        stage_conversion_rates={stage: 1.0 for stage in stages},
        stage_durations={stage: ConstantDuration(days=7) for stage in stages},
        sample_sizes={f"{stage.value}_rate": 20 for stage in stages},
    )


@pytest.fixture
def lognormal_params(funnel_rates):
    return SimulationParameters(
        stage_conversion_rates=funnel_rates,
        stage_durations={stage: LognormalDuration(mu=math.log(7), sigma=0.5) for stage in funnel_rates},
        sample_sizes={f"{stage.value}_rate": 20 for stage in funnel_rates},
    )


@pytest.fixture
def cohort_profile():
    return build_capacity_profile(None, None)


@pytest.fixture
def observed_profile():
    recruiter = RecruiterCapacity(
        recruiter_id="rec-a",
        screens_per_week=StageCapacity(SCREEN, 12.0, n_weeks=10, confidence=CapacityConfidence.HIGH),
        hm_screens_per_week=StageCapacity(HM_SCREEN, 3.0, n_weeks=10, confidence=CapacityConfidence.MED),
        onsites_per_week=StageCapacity(ONSITE, 4.0, n_weeks=10, confidence=CapacityConfidence.HIGH),
        offers_per_week=StageCapacity(OFFER, 2.0, n_weeks=10, confidence=CapacityConfidence.HIGH),
        overall_confidence=CapacityConfidence.HIGH,
    )
    hm = HMCapacity(
        hm_id="hm-1",
        interviews_per_week=StageCapacity(HM_SCREEN, 5.0, n_weeks=10, confidence=CapacityConfidence.HIGH),
        overall_confidence=CapacityConfidence.HIGH,
    )
    return build_capacity_profile(recruiter, hm)


@pytest.fixture
def requisitions():
    return [
        Requisition("R1", recruiter_id="rec-a", hiring_manager_id="hm-1"),
        Requisition("R2", recruiter_id="rec-a", hiring_manager_id="hm-2"),
        Requisition("R3", recruiter_id="rec-a", hiring_manager_id="hm-1",
                    status=RequisitionStatus.CLOSED, closed_at=date(2025, 12, 1)),
        Requisition("R4", recruiter_id="rec-b", hiring_manager_id="hm-1"),
    ]


@pytest.fixture
def candidates():
    return [
        Candidate("c1", "R1", SCREEN),
        Candidate("c2", "R1", SCREEN, disposition=None),
        Candidate("c3", "R1", HM_SCREEN),
        Candidate("c4", "R1", ONSITE, disposition=CandidateDisposition.REJECTED),
        Candidate("c5", "R1", HIRED, disposition=CandidateDisposition.HIRED),
        Candidate("c6", "R2", SCREEN),
        Candidate("c7", "R2", OFFER),
        Candidate("c8", "R2", HM_SCREEN),
        Candidate("c9", "R3", SCREEN),
        Candidate("c10", "R4", HM_SCREEN),
        Candidate("c11", "R4", SCREEN),
    ]


@pytest.fixture
def users():
    return [User("rec-a", "Avery Recruiter"), User("hm-1", "Morgan Manager")]
