"""Tests for the capacity / queueing penalty model."""

import math

import pytest

from hireoracle.capacity import (
    apply_capacity_penalty,
    apply_capacity_penalty_v11,
    build_capacity_profile,
    calculate_queue_delay,
    create_capacity_adjusted_params,
    get_service_rate_for_stage,
)
from hireoracle.capacity_models import (
    CapacityConfidence,
    GlobalDemandInput,
    HMCapacity,
    OwnerType,
    RecommendationType,
    RecruiterCapacity,
    StageCapacity,
)
from hireoracle.demand import compute_global_demand
from hireoracle.models import (
    ConstantDuration,
    EmpiricalDuration,
    DurationBucket,
    LognormalDuration,
    SimulationParameters,
)
from hireoracle.stages import CanonicalStage

SCREEN = CanonicalStage.SCREEN
HM_SCREEN = CanonicalStage.HM_SCREEN
ONSITE = CanonicalStage.ONSITE
OFFER = CanonicalStage.OFFER


@pytest.fixture
def durations():
    return {
        SCREEN: LognormalDuration(mu=math.log(5), sigma=0.6),
        HM_SCREEN: LognormalDuration(mu=math.log(7), sigma=0.6),
        ONSITE: ConstantDuration(days=10),
        OFFER: EmpiricalDuration(buckets=(DurationBucket(3, 0.5), DurationBucket(6, 0.5))),
    }


class TestQueueDelay:

    def test_under_capacity(self):
        assert calculate_queue_delay(3, 8) == 0.0
        assert calculate_queue_delay(8, 8) == 0.0

    def test_linear_in_excess(self):
        assert calculate_queue_delay(15, 8) == pytest.approx(7 / 8 * 7)

    def test_capped(self):
        assert calculate_queue_delay(100, 2) == 21.0

    def test_zero_rate(self):
        assert calculate_queue_delay(10, 0) == 0.0

    def test_queue_factor(self):
        assert calculate_queue_delay(12, 8, queue_factor=2.0) == pytest.approx(2 * calculate_queue_delay(12, 8))

    def test_monotone_in_demand(self):
        delays = [calculate_queue_delay(d, 4) for d in range(0, 40)]
        assert delays == sorted(delays)


class TestServiceRate:

    def test_cohort_defaults(self, cohort_profile):
        assert get_service_rate_for_stage(SCREEN, cohort_profile) == 8.0
        assert get_service_rate_for_stage(HM_SCREEN, cohort_profile) == 4.0
        assert get_service_rate_for_stage(ONSITE, cohort_profile) == 3.0
        assert get_service_rate_for_stage(OFFER, cohort_profile) == 1.5

    def test_observed_rates(self, observed_profile):
        assert get_service_rate_for_stage(SCREEN, observed_profile) == 12.0
        # HM interviews beat the recruiter's HM-screen figure
        assert get_service_rate_for_stage(HM_SCREEN, observed_profile) == 5.0
        assert get_service_rate_for_stage(OFFER, observed_profile) == 2.0

    def test_zero_throughput_falls_back(self):
        recruiter = RecruiterCapacity(
            recruiter_id="r", screens_per_week=StageCapacity(SCREEN, 0.0),
        )
        profile = build_capacity_profile(recruiter, None)
        assert get_service_rate_for_stage(SCREEN, profile) == 8.0

    def test_recruiter_hm_screen_when_no_hm(self):
        recruiter = RecruiterCapacity(
            recruiter_id="r", hm_screens_per_week=StageCapacity(HM_SCREEN, 6.0),
        )
        profile = build_capacity_profile(recruiter, None)
        assert get_service_rate_for_stage(HM_SCREEN, profile) == 6.0


class TestApplyCapacityPenalty:

    def test_under_capacity_is_noop(self, durations, cohort_profile):
        params = SimulationParameters(stage_durations=durations)
        demand = {SCREEN: 3, HM_SCREEN: 2, ONSITE: 1, OFFER: 1}

        result = apply_capacity_penalty(durations, demand, cohort_profile)
        adjusted = create_capacity_adjusted_params(params, result)

        assert result.top_bottlenecks == []
        assert result.total_queue_delay_days == 0.0
        assert all(not d.is_bottleneck for d in result.stage_diagnostics)
        assert all(d.bottleneck_owner_type is None for d in result.stage_diagnostics)
        for stage, dist in durations.items():
            assert adjusted.stage_durations[stage] is dist

    def test_overload_adds_delay(self, durations, cohort_profile):
        result = apply_capacity_penalty(durations, {SCREEN: 15}, cohort_profile)

        delay = 7 / 8 * 7
        assert result.total_queue_delay_days == pytest.approx(delay)
        [bottleneck] = result.top_bottlenecks
        assert bottleneck.stage == SCREEN
        assert bottleneck.bottleneck_owner_type == OwnerType.RECRUITER
        assert bottleneck.stage_name == "Screen"

        adjustment = result.adjusted_durations[SCREEN]
        assert adjustment.original_median_days == pytest.approx(5)
        assert adjustment.adjusted_median_days == pytest.approx(5 + delay)
        assert adjustment.adjusted_mu == pytest.approx(math.log(5 + delay))

    def test_adjusted_params(self, durations, cohort_profile):
        params = SimulationParameters(
            stage_conversion_rates={SCREEN: 0.5}, stage_durations=durations,
        )
        demand = {SCREEN: 15, ONSITE: 6, OFFER: 3}

        result = apply_capacity_penalty(durations, demand, cohort_profile)
        adjusted = create_capacity_adjusted_params(params, result)

        screen = adjusted.stage_durations[SCREEN]
        assert isinstance(screen, LognormalDuration)
        assert screen.sigma == 0.6
        assert screen.median == pytest.approx(5 + 7 / 8 * 7)
        # ONSITE 6 vs 3/week -> 7 days on a constant 10
        assert adjusted.stage_durations[ONSITE] == ConstantDuration(days=17)
        # Empirical collapses to a constant at median + delay
        assert adjusted.stage_durations[OFFER] == ConstantDuration(days=3 + 7.0)
        assert adjusted.stage_durations[HM_SCREEN] is durations[HM_SCREEN]
        assert adjusted.stage_conversion_rates == params.stage_conversion_rates
        assert params.stage_durations[SCREEN] is durations[SCREEN]

    def test_heavy_overload_capped(self, durations, cohort_profile):
        result = apply_capacity_penalty(durations, {OFFER: 100}, cohort_profile)
        assert result.adjusted_durations[OFFER].queue_delay_days == 21.0

    def test_top_three_sorted(self, durations, cohort_profile):
        demand = {SCREEN: 10, HM_SCREEN: 12, ONSITE: 10, OFFER: 2}

        result = apply_capacity_penalty(durations, demand, cohort_profile)

        delays = [d.queue_delay_days for d in result.top_bottlenecks]
        assert len(delays) == 3
        assert delays == sorted(delays, reverse=True)
        assert result.top_bottlenecks[0].stage == ONSITE

    def test_owner_attribution(self, durations, cohort_profile, observed_profile):
        demand = {SCREEN: 50, HM_SCREEN: 50, ONSITE: 50, OFFER: 50}

        cohort = {d.stage: d.bottleneck_owner_type
                  for d in apply_capacity_penalty(durations, demand, cohort_profile).stage_diagnostics}
        observed = {d.stage: d.bottleneck_owner_type
                    for d in apply_capacity_penalty(durations, demand, observed_profile).stage_diagnostics}

        # Without HM capacity data the HM screen is charged to the recruiter
        assert cohort == {
            SCREEN: OwnerType.RECRUITER,
            HM_SCREEN: OwnerType.RECRUITER,
            ONSITE: OwnerType.BOTH,
            OFFER: OwnerType.RECRUITER,
        }
        assert observed[HM_SCREEN] == OwnerType.HM

        recruiter_only = build_capacity_profile(
            RecruiterCapacity("r", hm_screens_per_week=StageCapacity(HM_SCREEN, 2.0)), None
        )
        result = apply_capacity_penalty(durations, {HM_SCREEN: 10}, recruiter_only)
        assert result.top_bottlenecks[0].bottleneck_owner_type == OwnerType.RECRUITER

    def test_injected_delay_function(self, durations, cohort_profile):
        calls = []

        def flat_delay(demand, rate, queue_factor):
            calls.append((demand, rate, queue_factor))
            return 2.0

        result = apply_capacity_penalty(durations, {}, cohort_profile, queue_factor=1.5, delay_fn=flat_delay)

        assert result.total_queue_delay_days == 8.0
        assert len(calls) == 4
        assert all(q == 1.5 for _, _, q in calls)

    def test_confidence_is_stage_minimum(self, durations, observed_profile, cohort_profile):
        observed = apply_capacity_penalty(durations, {}, observed_profile)
        assert observed.confidence == CapacityConfidence.HIGH
        assert apply_capacity_penalty(durations, {}, cohort_profile).confidence == CapacityConfidence.LOW


class TestApplyCapacityPenaltyV11:

    @pytest.fixture
    def global_demand(self, candidates, requisitions, users):
        return compute_global_demand(GlobalDemandInput(
            selected_req_id="R1", recruiter_id="rec-a", hm_id="hm-1",
            all_candidates=candidates, all_requisitions=requisitions, users=users,
        ))

    def test_uses_global_demand(self, durations, global_demand, cohort_profile):
        result = apply_capacity_penalty_v11(durations, global_demand, cohort_profile)
        demand = {d.stage: d.demand for d in result.stage_diagnostics}

        assert demand == {SCREEN: 3, HM_SCREEN: 2, ONSITE: 0, OFFER: 1}
        assert result.global_demand is global_demand

    def test_cohort_profile_is_low_confidence(self, durations, global_demand, cohort_profile):
        result = apply_capacity_penalty_v11(durations, global_demand, cohort_profile)
        assert result.confidence == CapacityConfidence.LOW

    def test_observed_profile_confidence(self, durations, global_demand, observed_profile):
        result = apply_capacity_penalty_v11(durations, global_demand, observed_profile)
        assert result.confidence == CapacityConfidence.HIGH

    def test_recommendations_for_bottleneck(self, durations, global_demand):
        tight = build_capacity_profile(
            RecruiterCapacity(
                "rec-a",
                screens_per_week=StageCapacity(SCREEN, 1.0, confidence=CapacityConfidence.HIGH),
                onsites_per_week=StageCapacity(ONSITE, 3.0, confidence=CapacityConfidence.HIGH),
                offers_per_week=StageCapacity(OFFER, 2.0, confidence=CapacityConfidence.HIGH),
                overall_confidence=CapacityConfidence.HIGH,
            ),
            HMCapacity(
                "hm-1",
                interviews_per_week=StageCapacity(HM_SCREEN, 4.0, confidence=CapacityConfidence.HIGH),
                overall_confidence=CapacityConfidence.HIGH,
            ),
        )

        result = apply_capacity_penalty_v11(durations, global_demand, tight)

        assert [b.stage for b in result.top_bottlenecks] == [SCREEN]
        types = [r.type for r in result.recommendations]
        assert types[0] == RecommendationType.INCREASE_THROUGHPUT
        assert RecommendationType.IMPROVE_DATA not in types
        assert result.recommendations[0].description.startswith("Based on observed patterns")

    def test_missing_ids_recommend_better_data(self, durations, candidates, requisitions, cohort_profile):
        demand = compute_global_demand(GlobalDemandInput(
            selected_req_id="R1", recruiter_id=None, hm_id=None,
            all_candidates=candidates, all_requisitions=requisitions,
        ))

        result = apply_capacity_penalty_v11(durations, demand, cohort_profile)

        assert result.confidence == CapacityConfidence.LOW
        assert result.recommendations[-1].type == RecommendationType.IMPROVE_DATA


class TestBuildCapacityProfile:

    def test_no_history(self):
        profile = build_capacity_profile(None, None)
        assert profile.used_cohort_fallback
        assert profile.overall_confidence == CapacityConfidence.LOW
        assert len(profile.confidence_reasons) == 2

    def test_full_history(self, observed_profile):
        assert not observed_profile.used_cohort_fallback
        assert observed_profile.overall_confidence == CapacityConfidence.HIGH

    def test_partial_recruiter(self):
        profile = build_capacity_profile(
            RecruiterCapacity("r", screens_per_week=StageCapacity(SCREEN, 9.0)),
            HMCapacity("h", interviews_per_week=StageCapacity(HM_SCREEN, 4.0)),
        )
        assert profile.used_cohort_fallback
        assert any("onsites_per_week" in r.message for r in profile.confidence_reasons)
