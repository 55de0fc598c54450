"""Canonical pipeline stages and stage-string normalization.

Stage Flow:
    SCREEN → HM_SCREEN → ONSITE → OFFER → HIRED
    (REJECTED and WITHDREW are terminal outcomes outside the forward flow)

Every raw stage string coming from an ATS export goes through
``to_canonical_stage`` once, at the boundary. The simulation core only ever
sees ``CanonicalStage`` members.
"""

import re
from enum import Enum
from typing import Dict, List, Optional, Union


class CanonicalStage(str, Enum):
    """Candidate pipeline stage."""
    LEAD = "LEAD"
    APPLIED = "APPLIED"
    SCREEN = "SCREEN"
    HM_SCREEN = "HM_SCREEN"
    ONSITE = "ONSITE"
    FINAL = "FINAL"
    OFFER = "OFFER"
    HIRED = "HIRED"
    REJECTED = "REJECTED"
    WITHDREW = "WITHDREW"


STAGE_ORDER: List[CanonicalStage] = [
    CanonicalStage.SCREEN,
    CanonicalStage.HM_SCREEN,
    CanonicalStage.ONSITE,
    CanonicalStage.OFFER,
    CanonicalStage.HIRED,
]

TERMINAL_STAGES = frozenset({
    CanonicalStage.HIRED,
    CanonicalStage.REJECTED,
    CanonicalStage.WITHDREW,
})

CAPACITY_LIMITED_STAGES: List[CanonicalStage] = [
    CanonicalStage.SCREEN,
    CanonicalStage.HM_SCREEN,
    CanonicalStage.ONSITE,
    CanonicalStage.OFFER,
]

STAGE_LABELS: Dict[CanonicalStage, str] = {
    CanonicalStage.LEAD: "Lead",
    CanonicalStage.APPLIED: "Applied",
    CanonicalStage.SCREEN: "Screen",
    CanonicalStage.HM_SCREEN: "HM Interview",
    CanonicalStage.ONSITE: "Onsite",
    CanonicalStage.FINAL: "Final",
    CanonicalStage.OFFER: "Offer",
    CanonicalStage.HIRED: "Hired",
    CanonicalStage.REJECTED: "Rejected",
    CanonicalStage.WITHDREW: "Withdrew",
}

# Spellings seen in exports that don't collapse to the enum value on their own
_STAGE_ALIASES: Dict[str, CanonicalStage] = {
    "HMSCREEN": CanonicalStage.HM_SCREEN,
    "HM_INTERVIEW": CanonicalStage.HM_SCREEN,
    "HIRING_MANAGER_SCREEN": CanonicalStage.HM_SCREEN,
    "PHONE_SCREEN": CanonicalStage.SCREEN,
    "ON_SITE": CanonicalStage.ONSITE,
    "WITHDRAWN": CanonicalStage.WITHDREW,
}

_SEPARATORS = re.compile(r"[\s\-]+")


def to_canonical_stage(stage: Union[str, CanonicalStage, None]) -> Optional[CanonicalStage]:
    """Map a raw stage value to a CanonicalStage, or None if unmappable.

    Args:
        stage: Raw stage as exported ("Screen", "SCREEN", "hm screen", ...)

    Returns:
        The canonical stage, or None for empty or unrecognized values
    """
    if stage is None:
        return None
    if isinstance(stage, CanonicalStage):
        return stage

    normalized = _SEPARATORS.sub("_", str(stage).strip()).upper()
    if not normalized:
        return None

    try:
        return CanonicalStage(normalized)
    except ValueError:
        return _STAGE_ALIASES.get(normalized)


def is_terminal(stage: Optional[CanonicalStage]) -> bool:
    return stage in TERMINAL_STAGES
