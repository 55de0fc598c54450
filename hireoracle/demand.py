"""Global demand aggregation.

A recruiter's screen queue is fed by every open req they own, not just the
one being forecast. This module counts active candidates per stage across
the recruiter's and the hiring manager's whole open workload.
"""

import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import pandas as pd

from hireoracle.capacity_models import (
    CapacityConfidence,
    ConfidenceReason,
    DemandScope,
    GlobalDemand,
    GlobalDemandInput,
    WorkloadContext,
)
from hireoracle.models import Candidate, Requisition, User
from hireoracle.stages import CAPACITY_LIMITED_STAGES, CanonicalStage

logger = logging.getLogger(__name__)

RECRUITER_DEMAND_STAGES = (CanonicalStage.SCREEN, CanonicalStage.ONSITE, CanonicalStage.OFFER)
HM_DEMAND_STAGES = (CanonicalStage.HM_SCREEN,)

_REQ_COLUMNS = ["req_id", "recruiter_id", "hiring_manager_id"]
_CANDIDATE_COLUMNS = ["candidate_id", "req_id", "stage"]


def _open_reqs_frame(requisitions: Sequence[Requisition]) -> pd.DataFrame:
    rows = [
        {"req_id": r.req_id, "recruiter_id": r.recruiter_id, "hiring_manager_id": r.hiring_manager_id}
        for r in requisitions if r.is_open
    ]
    return pd.DataFrame(rows, columns=_REQ_COLUMNS)


def _active_candidates_frame(candidates: Sequence[Candidate]) -> pd.DataFrame:
    rows = [
        {
            "candidate_id": c.candidate_id,
            "req_id": c.req_id,
            "stage": c.current_stage.value if c.current_stage is not None else None,
        }
        for c in candidates if c.is_active
    ]
    return pd.DataFrame(rows, columns=_CANDIDATE_COLUMNS)


def _count_by_stage(frame: pd.DataFrame,
                    stages: Optional[Iterable[CanonicalStage]] = None) -> Dict[CanonicalStage, int]:
    stage_col = frame["stage"].dropna()
    if stages is not None:
        stage_col = stage_col[stage_col.isin([s.value for s in stages])]
    counts = stage_col.value_counts()
    return {CanonicalStage(stage): int(n) for stage, n in counts.items()}


def _owner_name(users: Sequence[User], owner_id: Optional[str]) -> Optional[str]:
    if not owner_id:
        return None
    for user in users:
        if user.user_id == owner_id:
            return user.name or None
    return None


def _workload(open_reqs: pd.DataFrame, active: pd.DataFrame, owner_column: str,
              owner_id: Optional[str], users: Sequence[User]) -> Tuple[WorkloadContext, pd.DataFrame]:
    """Owner's open reqs and the active candidates sitting on them."""
    if owner_id:
        owned_reqs = open_reqs.loc[open_reqs[owner_column] == owner_id, "req_id"].tolist()
    else:
        owned_reqs = []
    owned_candidates = active[active["req_id"].isin(owned_reqs)]

    context = WorkloadContext(
        owner_id=owner_id,
        owner_name=_owner_name(users, owner_id),
        open_req_count=len(owned_reqs),
        total_candidates_in_flight=len(owned_candidates),
        req_ids=tuple(owned_reqs),
    )
    return context, owned_candidates


def compute_global_demand(demand_input: GlobalDemandInput) -> GlobalDemand:
    """
    Aggregate stage demand across the recruiter's and HM's open requisitions.

    Args:
        demand_input: Selected req, owner ids and the full workload

    Returns:
        GlobalDemand with per-owner stage counts, workload contexts, the
        selected req's own pipeline and a data-quality confidence
    """
    open_reqs = _open_reqs_frame(demand_input.all_requisitions)
    active = _active_candidates_frame(demand_input.all_candidates)
    users = demand_input.users or ()
    recruiter_id, hm_id = demand_input.recruiter_id, demand_input.hm_id

    recruiter_context, recruiter_candidates = _workload(
        open_reqs, active, "recruiter_id", recruiter_id, users
    )
    hm_context, hm_candidates = _workload(
        open_reqs, active, "hiring_manager_id", hm_id, users
    )

    recruiter_demand = _count_by_stage(recruiter_candidates, RECRUITER_DEMAND_STAGES)
    hm_demand = _count_by_stage(hm_candidates, HM_DEMAND_STAGES)
    selected_req_pipeline = _count_by_stage(
        active[active["req_id"] == demand_input.selected_req_id]
    )

    reasons: List[ConfidenceReason] = []

    if not recruiter_id and not hm_id:
        scope = DemandScope.SINGLE_REQ
        confidence = CapacityConfidence.LOW
        reasons.append(ConfidenceReason(
            type="missing_data",
            message="Both recruiter_id and hm_id missing - using single-req fallback",
            impact="negative",
        ))
    elif recruiter_id and hm_id:
        scope = DemandScope.BOTH
        spans_reqs = max(recruiter_context.open_req_count, hm_context.open_req_count)
        if spans_reqs > 1:
            confidence = CapacityConfidence.HIGH
            reasons.append(ConfidenceReason(
                type="sample_size",
                message=(
                    f"Using global workload: recruiter has {recruiter_context.open_req_count} "
                    f"open reqs, HM has {hm_context.open_req_count}"
                ),
                impact="positive",
            ))
        else:
            confidence = CapacityConfidence.MED
    elif recruiter_id:
        scope = DemandScope.GLOBAL_BY_RECRUITER
        confidence = CapacityConfidence.MED
        reasons.append(ConfidenceReason(
            type="missing_data",
            message="hm_id missing - HM demand using cohort defaults",
            impact="neutral",
        ))
    else:
        scope = DemandScope.GLOBAL_BY_HM
        confidence = CapacityConfidence.MED
        reasons.append(ConfidenceReason(
            type="missing_data",
            message="recruiter_id missing - recruiter demand using cohort defaults",
            impact="neutral",
        ))

    if sum(selected_req_pipeline.values()) == 0:
        confidence = CapacityConfidence.LOW
        reasons.append(ConfidenceReason(
            type="sample_size",
            message="Selected req has 0 active candidates in pipeline",
            impact="negative",
        ))

    logger.debug(
        "Global demand for %s: scope=%s recruiter=%s hm=%s",
        demand_input.selected_req_id, scope.value, recruiter_demand, hm_demand,
    )

    return GlobalDemand(
        demand_scope=scope,
        recruiter_demand=recruiter_demand,
        hm_demand=hm_demand,
        recruiter_context=recruiter_context,
        hm_context=hm_context,
        selected_req_pipeline=selected_req_pipeline,
        confidence=confidence,
        confidence_reasons=reasons,
    )


def demand_by_stage(global_demand: GlobalDemand) -> Dict[CanonicalStage, int]:
    """Flatten global demand to one count per stage for the single-req penalty."""
    return {
        stage: max(global_demand.recruiter_demand.get(stage, 0),
                   global_demand.hm_demand.get(stage, 0))
        for stage in CAPACITY_LIMITED_STAGES
    }
