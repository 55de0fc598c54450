"""What-if levers and forecast caching.

Baseline and adjusted forecasts are run from the same stable seed, so the P50
delta between them comes from the lever change alone. The seed is built from
the req and its pipeline only; lever values go into the cache key, never the
seed.
"""

import dataclasses
import hashlib
import json
import logging
import math
from collections import Counter, OrderedDict
from dataclasses import dataclass
from datetime import date
from typing import Dict, Hashable, Mapping, Optional, Sequence

from hireoracle.config import (
    DEFAULT_PASS_RATE,
    DEFAULT_STAGE_DAYS,
    MAX_ADJUSTED_PASS_RATE,
    MIN_ADJUSTED_PASS_RATE,
    MIN_DURATION_MULTIPLIER,
    MIN_N_VALUES,
    PRIOR_WEIGHT_VALUES,
    SIMULATION_CACHE_SIZE,
    SIMULATION_RUNS,
)
from hireoracle.models import (
    ConstantDuration,
    ForecastInput,
    ForecastResult,
    LognormalDuration,
    PipelineCandidate,
    SimulationParameters,
    duration_sample_key,
    rate_sample_key,
)
from hireoracle.shrinkage import shrink_rate
from hireoracle.simulation import run_pipeline_simulation, run_simulation
from hireoracle.stages import CAPACITY_LIMITED_STAGES, CanonicalStage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KnobSettings:
    """Model knobs exposed alongside the levers."""
    prior_weight: str = "medium"
    min_n_threshold: str = "standard"
    iterations: int = SIMULATION_RUNS

    @property
    def prior_weight_value(self) -> int:
        return PRIOR_WEIGHT_VALUES[self.prior_weight]

    @property
    def min_n_value(self) -> int:
        return MIN_N_VALUES[self.min_n_threshold]


DEFAULT_KNOB_SETTINGS = KnobSettings()


@dataclass(frozen=True)
class WhatIfResult:
    baseline: ForecastResult
    adjusted: Optional[ForecastResult]
    p50_delta_days: int
    seed: str
    cache_key: str


# =============================================================================
# KEYS AND SEEDS
# =============================================================================

def _stage_key(stage) -> str:
    if stage is None:
        return "UNMAPPED"
    return getattr(stage, "value", str(stage))


def hash_pipeline_counts(counts: Mapping[Optional[CanonicalStage], int]) -> str:
    """Short deterministic hash of stage counts; insertion order is irrelevant."""
    items = sorted((_stage_key(stage), int(n)) for stage, n in counts.items())
    payload = "|".join(f"{stage}:{n}" for stage, n in items)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:12]


def compute_stable_seed(req_id: str, pipeline_hash: str, iterations: int) -> str:
    """Seed shared by baseline and adjusted runs. Must not depend on levers."""
    return f"oracle-{req_id}-{pipeline_hash}-{iterations}"


def hash_levers(conversion_adjustments: Optional[Mapping[CanonicalStage, float]] = None,
                duration_adjustments: Optional[Mapping[CanonicalStage, float]] = None) -> str:
    payload = {
        "conv": {_stage_key(s): v for s, v in (conversion_adjustments or {}).items()},
        "dur": {_stage_key(s): v for s, v in (duration_adjustments or {}).items()},
    }
    return json.dumps(payload, sort_keys=True, separators=(",", ":"))


def _rates_payload(rates: Optional[Mapping[CanonicalStage, float]]) -> dict:
    return {_stage_key(s): v for s, v in (rates or {}).items()}


def hash_forecast_inputs(params: SimulationParameters,
                         start_date: date,
                         current_stage: CanonicalStage,
                         observed_rates: Optional[Mapping[CanonicalStage, float]] = None,
                         prior_rates: Optional[Mapping[CanonicalStage, float]] = None) -> str:
    """Short deterministic hash of everything besides levers that shapes a forecast."""
    payload = {
        "start": start_date.isoformat(),
        "stage": _stage_key(current_stage),
        "rates": _rates_payload(params.stage_conversion_rates),
        "durations": {
            _stage_key(s): [type(d).__name__, dataclasses.asdict(d)]
            for s, d in params.stage_durations.items()
        },
        "samples": dict(params.sample_sizes),
        "observed": _rates_payload(observed_rates),
        "priors": _rates_payload(prior_rates),
    }
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()[:12]


def generate_cache_key(req_id: str, pipeline_hash: str, seed: str,
                       knobs: KnobSettings = DEFAULT_KNOB_SETTINGS,
                       lever_hash: str = "",
                       inputs_hash: str = "") -> str:
    key = (
        f"oracle-{req_id}-{pipeline_hash}-{seed}-"
        f"{knobs.prior_weight}-{knobs.min_n_threshold}-{knobs.iterations}"
    )
    if inputs_hash:
        key = f"{key}-{inputs_hash}"
    if lever_hash:
        key = f"{key}-{lever_hash}"
    return key


# =============================================================================
# CACHE
# =============================================================================

class SimulationCache:
    """Bounded LRU of forecast results, owned by the caller."""

    def __init__(self, max_size: int = SIMULATION_CACHE_SIZE):
        self.max_size = max_size
        self._entries: "OrderedDict[Hashable, ForecastResult]" = OrderedDict()

    def get(self, key: Hashable) -> Optional[ForecastResult]:
        if key not in self._entries:
            return None
        self._entries.move_to_end(key)
        return self._entries[key]

    def put(self, key: Hashable, result: ForecastResult) -> None:
        self._entries[key] = result
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_size:
            self._entries.popitem(last=False)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: Hashable) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


# =============================================================================
# LEVERS
# =============================================================================

def apply_levers(params: SimulationParameters,
                 conversion_adjustments: Optional[Mapping[CanonicalStage, float]] = None,
                 duration_adjustments: Optional[Mapping[CanonicalStage, float]] = None,
                 knobs: KnobSettings = DEFAULT_KNOB_SETTINGS,
                 observed_rates: Optional[Mapping[CanonicalStage, float]] = None,
                 prior_rates: Optional[Mapping[CanonicalStage, float]] = None) -> SimulationParameters:
    """
    Build adjusted parameters from lever deltas and knob settings.

    Args:
        params: Baseline parameters (left untouched)
        conversion_adjustments: Pass-rate deltas in percentage points per stage
        duration_adjustments: Dwell-time deltas in percent per stage
        knobs: Prior weight / min-n / iteration presets
        observed_rates: Raw rates to re-shrink when the prior weight changes
        prior_rates: Priors for re-shrinking

    Returns:
        New SimulationParameters
    """
    conversion_adjustments = conversion_adjustments or {}
    duration_adjustments = duration_adjustments or {}
    observed_rates = observed_rates or {}
    prior_rates = prior_rates or {}

    prior_weight = knobs.prior_weight_value
    min_n = knobs.min_n_value
    reshrink = knobs.prior_weight != DEFAULT_KNOB_SETTINGS.prior_weight

    rates = dict(params.stage_conversion_rates)
    durations = dict(params.stage_durations)

    for stage in CAPACITY_LIMITED_STAGES:
        if reshrink:
            observed = observed_rates.get(stage, params.stage_conversion_rates.get(stage))
            if observed is None:
                observed = DEFAULT_PASS_RATE
            prior = prior_rates.get(stage, DEFAULT_PASS_RATE)
            n = params.sample_sizes.get(rate_sample_key(stage), 0)
            base_rate = shrink_rate(observed, prior, n, prior_weight)
        else:
            base_rate = params.pass_rate(stage)

        delta = conversion_adjustments.get(stage, 0) / 100.0
        rates[stage] = max(MIN_ADJUSTED_PASS_RATE, min(MAX_ADJUSTED_PASS_RATE, base_rate + delta))

    for stage in CAPACITY_LIMITED_STAGES:
        base_dist = params.stage_durations.get(stage)
        if base_dist is None:
            continue

        n = (params.sample_sizes.get(duration_sample_key(stage))
             or params.sample_sizes.get(rate_sample_key(stage))
             or 0)
        multiplier = max(MIN_DURATION_MULTIPLIER, 1 + duration_adjustments.get(stage, 0) / 100.0)

        if isinstance(base_dist, LognormalDuration):
            if n < min_n:
                # Too thin to trust the fitted shape
                durations[stage] = ConstantDuration(
                    days=max(1, _round_half_up(DEFAULT_STAGE_DAYS * multiplier))
                )
            else:
                durations[stage] = dataclasses.replace(
                    base_dist, mu=base_dist.mu + math.log(multiplier)
                )
        elif isinstance(base_dist, ConstantDuration) and base_dist.days is not None:
            durations[stage] = ConstantDuration(
                days=max(1, _round_half_up(base_dist.days * multiplier))
            )

    return dataclasses.replace(params, stage_conversion_rates=rates, stage_durations=durations)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _has_lever_changes(*adjustments: Optional[Mapping[CanonicalStage, float]]) -> bool:
    return any(v != 0 for adj in adjustments if adj for v in adj.values())


# =============================================================================
# WHAT-IF RUNNER
# =============================================================================

def run_what_if(candidates: Sequence[PipelineCandidate],
                params: SimulationParameters,
                req_id: str,
                start_date: date,
                conversion_adjustments: Optional[Mapping[CanonicalStage, float]] = None,
                duration_adjustments: Optional[Mapping[CanonicalStage, float]] = None,
                knobs: KnobSettings = DEFAULT_KNOB_SETTINGS,
                observed_rates: Optional[Mapping[CanonicalStage, float]] = None,
                prior_rates: Optional[Mapping[CanonicalStage, float]] = None,
                current_stage: CanonicalStage = CanonicalStage.SCREEN,
                cache: Optional[SimulationCache] = None) -> WhatIfResult:
    """Run the baseline and lever-adjusted forecasts on a shared seed.

    With no mappable candidates a single candidate at current_stage is
    simulated instead. When neither levers nor knobs differ from their
    defaults, no adjusted forecast is run.
    """
    counts: Dict[Optional[CanonicalStage], int] = Counter(c.current_stage for c in candidates)
    pipeline_hash = hash_pipeline_counts(counts)
    seed = compute_stable_seed(req_id, pipeline_hash, knobs.iterations)
    mapped = [c for c in candidates if c.current_stage is not None]

    def forecast(run_params: SimulationParameters) -> ForecastResult:
        if mapped:
            return run_pipeline_simulation(mapped, run_params, start_date, seed, knobs.iterations)
        return run_simulation(
            ForecastInput(current_stage=current_stage, start_date=start_date,
                          seed=seed, iterations=knobs.iterations),
            run_params,
        )

    baseline = forecast(params)
    cache_key = generate_cache_key(
        req_id, pipeline_hash, seed, knobs,
        hash_levers(conversion_adjustments, duration_adjustments),
        hash_forecast_inputs(params, start_date, current_stage, observed_rates, prior_rates),
    )

    changed = (
        _has_lever_changes(conversion_adjustments, duration_adjustments)
        or knobs != DEFAULT_KNOB_SETTINGS
    )
    if not changed:
        return WhatIfResult(baseline=baseline, adjusted=None, p50_delta_days=0,
                            seed=seed, cache_key=cache_key)

    adjusted = cache.get(cache_key) if cache is not None else None
    if adjusted is not None:
        logger.debug("What-if cache hit for %s", cache_key)
    else:
        adjusted_params = apply_levers(
            params, conversion_adjustments, duration_adjustments,
            knobs, observed_rates, prior_rates,
        )
        adjusted = forecast(adjusted_params)
        if cache is not None:
            cache.put(cache_key, adjusted)

    return WhatIfResult(
        baseline=baseline,
        adjusted=adjusted,
        p50_delta_days=(adjusted.p50_date - baseline.p50_date).days,
        seed=seed,
        cache_key=cache_key,
    )
