"""Data loading and validation for the Hire Oracle."""

import json
import logging
from datetime import datetime
from typing import Dict, List, Optional, Tuple, Union

from hireoracle.models import (
    Candidate,
    CandidateDisposition,
    ConstantDuration,
    DurationBucket,
    DurationDistribution,
    EmpiricalDuration,
    LognormalDuration,
    PipelineCandidate,
    Requisition,
    RequisitionStatus,
    SimulationParameters,
    User,
)
from hireoracle.stages import CanonicalStage, to_canonical_stage

logger = logging.getLogger(__name__)

JsonInput = Union[str, bytes, dict, list, None]


def _load(payload: JsonInput, default):
    if payload is None:
        return default
    if isinstance(payload, (str, bytes)):
        try:
            return json.loads(payload)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON: {e}") from e
    return payload


def _parse_date(value):
    if not value:
        return None
    return datetime.strptime(str(value)[:10], '%Y-%m-%d').date()


def parse_duration(raw: dict) -> DurationDistribution:
    """Build a duration distribution from its JSON form."""
    kind = raw.get('type')

    if kind == 'constant':
        return ConstantDuration(days=raw.get('days'))
    if kind == 'lognormal':
        return LognormalDuration(mu=float(raw['mu']), sigma=float(raw.get('sigma', 1.0)))
    if kind == 'empirical':
        buckets = tuple(
            DurationBucket(days=float(b['days']), probability=float(b['probability']))
            for b in raw.get('buckets', [])
        )
        return EmpiricalDuration(buckets=buckets)

    raise ValueError(f"Unknown duration type: {kind!r}")


def parse_simulation_parameters(params_json: JsonInput) -> SimulationParameters:
    """Parse simulation parameters keyed by raw stage names."""
    data = _load(params_json, {})
    if not isinstance(data, dict):
        raise ValueError("Simulation parameters must be a JSON object")

    rates: Dict[CanonicalStage, float] = {}
    for raw_stage, rate in data.get('stage_conversion_rates', {}).items():
        stage = to_canonical_stage(raw_stage)
        if stage is None:
            logger.warning("Ignoring conversion rate for unknown stage %r", raw_stage)
            continue
        rates[stage] = float(rate)

    durations: Dict[CanonicalStage, DurationDistribution] = {}
    for raw_stage, raw in data.get('stage_durations', {}).items():
        stage = to_canonical_stage(raw_stage)
        if stage is None:
            logger.warning("Ignoring duration for unknown stage %r", raw_stage)
            continue
        durations[stage] = parse_duration(raw)

    sample_sizes = {key: int(n) for key, n in data.get('sample_sizes', {}).items()}

    return SimulationParameters(
        stage_conversion_rates=rates,
        stage_durations=durations,
        sample_sizes=sample_sizes,
    )


def parse_workload(candidates_json: JsonInput,
                   requisitions_json: JsonInput,
                   users_json: JsonInput = None) -> Tuple[List[Candidate], List[Requisition], List[User]]:
    """Parse ATS exports into Candidate, Requisition and User objects."""
    candidates_data = _load(candidates_json, [])
    requisitions_data = _load(requisitions_json, [])
    users_data = _load(users_json, [])

    try:
        candidates = [
            Candidate(
                candidate_id=str(c['candidate_id']),
                req_id=str(c['req_id']),
                current_stage=to_canonical_stage(c.get('current_stage')),
                disposition=CandidateDisposition(c['disposition']) if c.get('disposition') else None,
            )
            for c in candidates_data
        ]

        requisitions = [
            Requisition(
                req_id=str(r['req_id']),
                recruiter_id=r.get('recruiter_id') or None,
                hiring_manager_id=r.get('hiring_manager_id') or None,
                status=RequisitionStatus(r.get('status') or RequisitionStatus.OPEN.value),
                closed_at=_parse_date(r.get('closed_at')),
                title=r.get('title', ''),
            )
            for r in requisitions_data
        ]

        users = [User(user_id=str(u['user_id']), name=u.get('name', '')) for u in users_data]
    except KeyError as e:
        raise ValueError(f"Missing required field {e}") from e

    unmapped = [c.candidate_id for c, raw in zip(candidates, candidates_data)
                if c.current_stage is None and raw.get('current_stage')]
    if unmapped:
        logger.warning("%d candidate(s) have an unrecognized stage", len(unmapped))

    return candidates, requisitions, users


def pipeline_for_req(candidates: List[Candidate], req_id: str) -> List[PipelineCandidate]:
    """Active candidates on one requisition, in simulator form."""
    return [
        PipelineCandidate(candidate_id=c.candidate_id, current_stage=c.current_stage)
        for c in candidates
        if c.req_id == req_id and c.is_active
    ]


def validate_workload(candidates: List[Candidate],
                      requisitions: List[Requisition],
                      users: Optional[List[User]] = None) -> Tuple[bool, str]:
    """Validate uploaded data for consistency."""
    errors = []
    req_ids = {r.req_id for r in requisitions}

    if len(req_ids) != len(requisitions):
        errors.append("Duplicate req_id values in requisitions")

    orphans = sorted({c.req_id for c in candidates if c.req_id not in req_ids})
    for req_id in orphans:
        errors.append(f"Candidates reference unknown requisition {req_id}")

    if users:
        user_ids = {u.user_id for u in users}
        for r in requisitions:
            for owner in (r.recruiter_id, r.hiring_manager_id):
                if owner and owner not in user_ids:
                    errors.append(f"Requisition {r.req_id} references unknown user {owner}")

    if not requisitions:
        errors.append("No requisitions found in uploaded file")

    if errors:
        return False, "\n".join(errors)
    return True, f"Loaded {len(candidates)} candidates across {len(requisitions)} requisitions"
