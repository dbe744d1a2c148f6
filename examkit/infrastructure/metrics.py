"""
ExamKit - Prometheus Metrics
Counters exported through the /metrics mount
"""

from prometheus_client import Counter, Histogram

ATTEMPTS_STARTED = Counter(
    "examkit_attempts_started_total",
    "Test attempts started",
    ["audience"],  # user | guest
)

ATTEMPTS_FINISHED = Counter(
    "examkit_attempts_finished_total",
    "Test attempts finished",
    ["status", "passed"],
)

ATTEMPT_PERCENTAGE = Histogram(
    "examkit_attempt_percentage",
    "Percentage scored on finished attempts",
    buckets=(10, 20, 30, 40, 50, 60, 70, 80, 90, 100),
)

TESTS_REVIEWED = Counter(
    "examkit_tests_reviewed_total",
    "Moderation decisions on submitted tests",
    ["action"],
)
