"""
Pytest fixtures for API tests: an app wired to in-memory repositories.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable

import pytest
from fastapi.testclient import TestClient
from jose import jwt

from examkit.core.config import Settings
from examkit.interfaces.api.v1.dependencies import (
    get_attempt_repository,
    get_cache,
    get_domain_repository,
    get_test_repository,
    get_transaction_manager,
)
from examkit.main import create_app

SECRET_KEY = "integration-secret-key-0123456789abcdef"


@pytest.fixture
def api_settings() -> Settings:
    return Settings(
        secret_key=SECRET_KEY,
        environment="test",
        database_url="sqlite+aiosqlite:///:memory:",
        cache_enabled=False,
        rate_limit_enabled=False,
        rate_limit_storage_uri="memory://",
        log_format="console",
    )


@pytest.fixture
def app(api_settings, domain_repo, exam_repo, attempt_repo, uow):
    """
    Application with repositories overridden.

    The lifespan is not run, so no database or Redis is touched.
    """
    application = create_app(api_settings)
    application.dependency_overrides[get_domain_repository] = lambda: domain_repo
    application.dependency_overrides[get_test_repository] = lambda: exam_repo
    application.dependency_overrides[get_attempt_repository] = lambda: attempt_repo
    application.dependency_overrides[get_transaction_manager] = lambda: uow
    application.dependency_overrides[get_cache] = lambda: None
    return application


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


@pytest.fixture
def make_token() -> Callable[..., str]:
    """Sign tokens the way the identity provider would."""

    def factory(sub: str, role: str = "learner", **claims) -> str:
        payload = {
            "sub": sub,
            "role": role,
            "type": "access",
            "exp": datetime.now(timezone.utc) + timedelta(minutes=15),
            **claims,
        }
        return jwt.encode(payload, SECRET_KEY, algorithm="HS256")

    return factory


@pytest.fixture
def admin_headers(make_token) -> dict:
    return {"Authorization": f"Bearer {make_token('admin-1', role='admin')}"}


@pytest.fixture
def learner_headers(make_token, sample_user_id) -> dict:
    return {"Authorization": f"Bearer {make_token(sample_user_id)}"}
