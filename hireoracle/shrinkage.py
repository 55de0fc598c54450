"""Empirical Bayes shrinkage of stage conversion rates."""

import dataclasses
from typing import Mapping, Optional

from hireoracle.config import DEFAULT_PASS_RATE, DEFAULT_PRIOR_WEIGHT
from hireoracle.models import SimulationParameters, rate_sample_key
from hireoracle.stages import CAPACITY_LIMITED_STAGES, CanonicalStage


def shrink_rate(observed: float, prior: float, n: int,
                prior_weight: float = DEFAULT_PRIOR_WEIGHT) -> float:
    """Pull an observed rate towards a prior based on sample size.

    (n * observed + m * prior) / (n + m). With n == 0 the prior is returned
    unchanged; as n grows the result approaches the observed rate.
    """
    if n == 0:
        return prior
    return (n * observed + prior_weight * prior) / (n + prior_weight)


def stabilize_parameters(params: SimulationParameters,
                         prior_rates: Mapping[CanonicalStage, float],
                         observed_rates: Optional[Mapping[CanonicalStage, float]] = None,
                         prior_weight: float = DEFAULT_PRIOR_WEIGHT) -> SimulationParameters:
    """Return a copy of params with every controllable stage rate shrunk.

    The observed rate defaults to the rate already in params; the sample size
    comes from the "<STAGE>_rate" entry of params.sample_sizes.
    """
    observed_rates = observed_rates or {}
    rates = dict(params.stage_conversion_rates)

    for stage in CAPACITY_LIMITED_STAGES:
        observed = observed_rates.get(stage, params.stage_conversion_rates.get(stage))
        prior = prior_rates.get(stage, DEFAULT_PASS_RATE)
        if observed is None:
            rates[stage] = prior
            continue
        n = params.sample_sizes.get(rate_sample_key(stage), 0)
        rates[stage] = shrink_rate(observed, prior, n, prior_weight)

    return dataclasses.replace(params, stage_conversion_rates=rates)
