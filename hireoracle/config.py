"""Configuration constants for the Hire Oracle forecasting engine."""

import os

SIMULATION_RUNS = 1000
MAX_ITERATIONS = int(os.getenv("HIREORACLE_MAX_ITERATIONS", "10000"))
PERFORMANCE_WARNING_ITERATIONS = int(os.getenv("HIREORACLE_WARN_ITERATIONS", "5000"))

FALLBACK_HORIZON_DAYS = 365
DEFAULT_STAGE_DAYS = 7.0
DEFAULT_PASS_RATE = 0.5
DEFAULT_PRIOR_WEIGHT = 5

HIGH_CONFIDENCE_MIN_N = 15
MEDIUM_CONFIDENCE_MIN_N = 5

# Pipeline fill rate needed before sample sizes decide confidence
PIPELINE_HIGH_FILL_RATE = 0.8
PIPELINE_MEDIUM_FILL_RATE = 0.5

# Capacity / queueing
MAX_QUEUE_DELAY_DAYS = 21.0
DEFAULT_QUEUE_FACTOR = 1.0
DAYS_PER_WEEK = 7.0
TARGET_UTILIZATION = 0.9
CAPACITY_CONSTRAINED_P50_DELTA_DAYS = 3
CAPACITY_CONSTRAINED_TOTAL_DELAY_DAYS = 5.0

COHORT_CAPACITY_PRIORS = {
    "screens_per_week": 8.0,
    "hm_screens_per_week": 4.0,
    "onsites_per_week": 3.0,
    "offers_per_week": 1.5,
    "hm_feedback_hours": 48.0,
}

# What-if knobs
PRIOR_WEIGHT_VALUES = {
    "low": 2,
    "medium": 5,
    "high": 10,
}

MIN_N_VALUES = {
    "relaxed": 3,
    "standard": 5,
    "strict": 10,
}

MIN_ADJUSTED_PASS_RATE = 0.05
MAX_ADJUSTED_PASS_RATE = 0.99
# Duration levers never scale a stage below 5% of its baseline
MIN_DURATION_MULTIPLIER = 0.05
SIMULATION_CACHE_SIZE = 50
