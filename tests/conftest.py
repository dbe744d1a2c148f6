"""
Pytest configuration and shared fixtures.
"""

# Import fixtures
from tests.fixtures.api_fixtures import (
    admin_headers,
    api_settings,
    app,
    client,
    learner_headers,
    make_token,
)
from tests.fixtures.exam_fixtures import (
    auto_publish_domain,
    draft_factory,
    half_answers,
    life_domain,
    perfect_answers,
    sample_user_id,
    two_question_test,
    wrong_answers,
)
from tests.fixtures.fakes import (
    attempt_repo,
    domain_repo,
    exam_repo,
    fake_cache,
    uow,
)

__all__ = [
    "admin_headers",
    "api_settings",
    "app",
    "attempt_repo",
    "auto_publish_domain",
    "client",
    "domain_repo",
    "draft_factory",
    "exam_repo",
    "fake_cache",
    "half_answers",
    "learner_headers",
    "life_domain",
    "make_token",
    "perfect_answers",
    "sample_user_id",
    "two_question_test",
    "uow",
    "wrong_answers",
]


def pytest_configure(config):
    """Configure pytest."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
