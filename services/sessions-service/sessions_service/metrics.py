from prometheus_client import Counter

WORKOUT_SESSIONS_COMPLETED_TOTAL = Counter(
    "workout_sessions_completed_total",
    "Number of workout sessions completed in sessions-service",
    ["source"],  # new | existing
)

PERSONAL_RECORDS_SET_TOTAL = Counter(
    "personal_records_set_total",
    "Number of personal records written in sessions-service",
    ["pr_type"],
)

RANK_CHANGES_TOTAL = Counter(
    "rank_changes_total",
    "Number of rank changes detected while completing sessions",
    ["level"],  # exercise | muscle | muscle_group | overall
)

PLAN_PROGRESSIONS_TOTAL = Counter(
    "plan_progressions_total",
    "Number of plan exercises auto-progressed after a session",
    ["kind"],  # weight | reps
)

PIPELINE_STEP_FAILURES_TOTAL = Counter(
    "session_pipeline_step_failures_total",
    "Number of degraded session pipeline steps that failed",
    ["step"],
)

REFERENCE_CACHE_HITS_TOTAL = Counter(
    "reference_cache_hits_total",
    "Number of Redis cache hits for reference catalogs",
)

REFERENCE_CACHE_MISSES_TOTAL = Counter(
    "reference_cache_misses_total",
    "Number of Redis cache misses for reference catalogs",
)

REFERENCE_CACHE_ERRORS_TOTAL = Counter(
    "reference_cache_errors_total",
    "Number of Redis cache errors for reference catalogs",
)
