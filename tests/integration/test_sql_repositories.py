"""
Services and repositories against a real SQLite database.

Tests:
- Test and domain mapping through the ORM
- Published listing order and pagination
- Stored evaluations and attempt counting
- Finishing an attempt exactly once under concurrent submits
- Dashboard aggregates
"""

import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from examkit.application.exams import AttemptService, TestAuthoringService, TestLookup
from examkit.application.stats import PlatformAnalyticsService
from examkit.core.config import Settings
from examkit.domain.catalog.entities import Domain
from examkit.domain.exams.attempts import AttemptStatus
from examkit.domain.exams.entities import TestSettings, TestStatus
from examkit.domain.exceptions import AttemptClosedError
from examkit.infrastructure.database import DatabaseManager, UnitOfWork
from examkit.infrastructure.repositories import (
    SqlAttemptRepository,
    SqlDomainRepository,
    SqlTestRepository,
)
from tests.fixtures.exam_fixtures import build_test, option_id

pytestmark = pytest.mark.integration

NOW = datetime.now(timezone.utc)


class Store:
    """Repositories and services sharing one session."""

    def __init__(self, session):
        self.session = session
        self.domains = SqlDomainRepository(session)
        self.tests = SqlTestRepository(session)
        self.attempts = SqlAttemptRepository(session)
        uow = UnitOfWork(session)
        lookup = TestLookup(self.tests)
        self.authoring = TestAuthoringService(self.tests, self.domains, uow, lookup=lookup)
        self.attempt_service = AttemptService(
            self.attempts, lookup, uow, shuffle_secret="sql-test-secret"
        )


@pytest.fixture
async def database(tmp_path):
    settings = Settings(
        secret_key="sql-test-secret-key-0123456789abcdef",
        environment="test",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'examkit.db'}",
        cache_enabled=False,
    )
    manager = DatabaseManager(settings)
    await manager.connect()
    await manager.create_schema()
    yield manager
    await manager.disconnect()


async def seed(database, *items):
    """Store domains and tests in the given order."""
    async with database.session() as session:
        store = Store(session)
        for item in items:
            if isinstance(item, Domain):
                await store.domains.add(item)
            else:
                await store.tests.add(item)
        await session.commit()


def published_test(days_ago, **kwargs):
    test = build_test(**kwargs)
    test.published_at = NOW - timedelta(days=days_ago)
    return test


def answers_for(test, q1_label, q2_labels):
    q1, q2 = test.questions
    return {
        str(q1.id): [option_id(q1, q1_label)],
        str(q2.id): [option_id(q2, label) for label in q2_labels],
    }


class TestSqlTestRepository:
    """Tests for storing and listing tests."""

    async def test_round_trip(self, database, life_domain):
        """A stored test should load back with questions in order."""
        test = published_test(1, domain_id=life_domain.id,
                              settings=TestSettings(shuffle_answers=True, max_attempts=3))
        await seed(database, life_domain, test)

        async with database.session() as session:
            loaded = await Store(session).tests.get(test.id)

        assert loaded.title == test.title
        assert loaded.domain_id == life_domain.id
        assert loaded.pass_percentage == Decimal("70")
        assert loaded.settings == test.settings
        assert [q.stem for q in loaded.questions] == [q.stem for q in test.questions]
        assert [o.label for o in loaded.questions[0].options] == ["Severn", "Thames", "Trent"]
        assert [o.is_correct for o in loaded.questions[1].options] == [True, False, True]
        assert loaded.questions[0].points == Decimal("1")
        assert loaded.created_at.tzinfo is not None

    async def test_published_listing(self, database):
        """Only public published tests, newest first, paged."""
        oldest, middle, newest = (published_test(days) for days in (3, 2, 1))
        private = published_test(0, settings=TestSettings(is_public=False))
        pending = build_test(status=TestStatus.PENDING_REVIEW)
        await seed(database, oldest, middle, newest, private, pending)

        async with database.session() as session:
            tests = Store(session).tests
            first, total = await tests.list_published(None, offset=0, limit=2)
            second, _ = await tests.list_published(None, offset=2, limit=2)

        assert total == 3
        assert [t.id for t in first] == [newest.id, middle.id]
        assert [t.id for t in second] == [oldest.id]

    async def test_listing_by_domain(self, database, life_domain):
        in_domain = published_test(1, domain_id=life_domain.id)
        await seed(database, life_domain, in_domain, published_test(2))

        async with database.session() as session:
            tests, total = await Store(session).tests.list_published(
                life_domain.id, offset=0, limit=10
            )

        assert total == 1
        assert tests[0].id == in_domain.id

    async def test_review_persisted(self, database, draft_factory):
        """Approval should be stored and the test become listable."""
        async with database.session() as session:
            created = await Store(session).authoring.create_test(draft_factory(), "author-9")

        async with database.session() as session:
            store = Store(session)
            assert [t.id for t in await store.tests.list_by_status(TestStatus.PENDING_REVIEW)] == [
                created.id
            ]
            await store.authoring.approve_test(created.id, "admin-1", "Looks good")

        async with database.session() as session:
            loaded = await Store(session).tests.get(created.id)

        assert loaded.status == TestStatus.PUBLISHED
        assert loaded.reviewer_id == "admin-1"
        assert loaded.review_note == "Looks good"
        assert loaded.published_at is not None

    async def test_domains(self, database, life_domain, auto_publish_domain):
        auto_publish_domain.is_active = False
        await seed(database, life_domain, auto_publish_domain)

        async with database.session() as session:
            domains = Store(session).domains
            by_name = await domains.get_by_name("driving-theory")
            active = await domains.list_active()
            every = await domains.list_all()

        assert by_name.config.default_time_limit == 57
        assert by_name.config.default_pass_percentage == Decimal("86")
        assert [d.name for d in active] == ["life-in-uk"]
        assert [d.name for d in every] == ["driving-theory", "life-in-uk"]


class TestSqlAttemptRepository:
    """Tests for storing attempts and their evaluations."""

    async def test_evaluation_round_trip(self, database):
        """The stored result should match the one returned on submit."""
        test = published_test(1)
        await seed(database, test)

        async with database.session() as session:
            service = Store(session).attempt_service
            paper = await service.start_attempt(test.id, "learner-1")
            submitted = await service.complete_attempt(
                paper.attempt.id, answers_for(test, "Thames", ["Cardiff"]), "learner-1"
            )

        async with database.session() as session:
            store = Store(session)
            again = await store.attempt_service.get_attempt_result(paper.attempt.id, "learner-1")
            stored = await store.attempts.get(paper.attempt.id)

        assert submitted["percentage"] == 50.0
        assert again == submitted
        assert stored.status == AttemptStatus.COMPLETED
        assert stored.evaluation.percentage == Decimal("50")
        assert len(stored.evaluation.question_results) == 2
        assert stored.completed_at.tzinfo is not None

    async def test_finished_counting(self, database):
        """Only completed or timed-out attempts count, newest first."""
        test = published_test(1)
        await seed(database, test)

        async with database.session() as session:
            service = Store(session).attempt_service
            first = await service.start_attempt(test.id, "learner-1")
            await service.complete_attempt(first.attempt.id, user_id="learner-1")
            second = await service.start_attempt(test.id, "learner-1")
            await service.complete_attempt(second.attempt.id, user_id="learner-1")
            dropped = await service.start_attempt(test.id, "learner-1")
            await service.abandon_attempt(dropped.attempt.id, "learner-1")
            await service.start_attempt(test.id, "learner-1")
            await service.start_attempt(test.id, "learner-2")

        async with database.session() as session:
            attempts = Store(session).attempts
            count = await attempts.count_finished(test.id, "learner-1")
            finished = await attempts.list_finished_for_user("learner-1")

        assert count == 2
        assert [a.id for a in finished] == [second.attempt.id, first.attempt.id]

    async def test_stale_copy_cannot_finish_again(self, database):
        """An attempt finished elsewhere should not be overwritten."""
        test = published_test(1)
        await seed(database, test)
        async with database.session() as session:
            paper = await Store(session).attempt_service.start_attempt(test.id)
        attempt_id = paper.attempt.id

        async with database.session() as stale_session:
            stale = await SqlAttemptRepository(stale_session).get(attempt_id)

            async with database.session() as session:
                await Store(session).attempt_service.complete_attempt(
                    attempt_id, answers_for(test, "Thames", ["Cardiff", "Edinburgh"])
                )

            stale.record_answers(answers_for(test, "Severn", ["Manchester"]))
            stale.complete(test)
            with pytest.raises(AttemptClosedError):
                await SqlAttemptRepository(stale_session).save(stale)

        async with database.session() as session:
            stored = await Store(session).attempts.get(attempt_id)
        assert stored.evaluation.percentage == Decimal("100")

    async def test_concurrent_submits_score_once(self, database):
        """Two simultaneous submits should leave exactly one result."""
        test = published_test(1)
        await seed(database, test)
        async with database.session() as session:
            paper = await Store(session).attempt_service.start_attempt(test.id)
        attempt_id = paper.attempt.id

        async def submit(answers):
            async with database.session() as session:
                return await Store(session).attempt_service.complete_attempt(attempt_id, answers)

        outcomes = await asyncio.gather(
            submit(answers_for(test, "Thames", ["Cardiff", "Edinburgh"])),
            submit(answers_for(test, "Severn", ["Manchester"])),
            return_exceptions=True,
        )

        results = [o for o in outcomes if isinstance(o, dict)]
        errors = [o for o in outcomes if isinstance(o, Exception)]
        assert len(results) == 1
        assert len(errors) == 1
        assert isinstance(errors[0], AttemptClosedError)

        async with database.session() as session:
            stored = await Store(session).attempts.get(attempt_id)
        assert float(stored.evaluation.percentage) == results[0]["percentage"]


class TestSqlAnalytics:
    """Tests for the dashboard aggregates."""

    async def test_dashboard(self, database, life_domain):
        scored = published_test(1, domain_id=life_domain.id)
        pending = build_test(status=TestStatus.PENDING_REVIEW)
        await seed(database, life_domain, scored, pending)

        async with database.session() as session:
            service = Store(session).attempt_service
            for user_id, answers in [
                ("learner-1", answers_for(scored, "Thames", ["Cardiff", "Edinburgh"])),
                ("learner-2", answers_for(scored, "Thames", ["Cardiff"])),
            ]:
                paper = await service.start_attempt(scored.id, user_id)
                await service.complete_attempt(paper.attempt.id, answers, user_id)
            await service.start_attempt(scored.id)

        async with database.session() as session:
            store = Store(session)
            analytics = await PlatformAnalyticsService(
                store.tests, store.attempts, store.domains
            ).dashboard()

        assert analytics.total_tests == 2
        assert analytics.total_questions == 4
        assert analytics.total_attempts == 3
        assert analytics.total_learners == 2
        assert analytics.total_domains == 1
        assert analytics.new_tests == 2
        assert analytics.new_attempts == 3
        assert analytics.tests_by_status["published"] == 1
        assert analytics.tests_by_status["pending_review"] == 1
        assert analytics.questions_by_difficulty == {"easy": 0, "medium": 4, "hard": 0}

        top = analytics.top_performing_tests
        assert [(t.test_id, t.attempts, t.average_score) for t in top] == [(scored.id, 3, 75.0)]
        assert top[0].domain == "Life in the UK"

        row = analytics.domain_stats[0]
        assert (row.tests_count, row.questions_count, row.attempts_count) == (1, 2, 3)
        assert row.average_score == 75.0
