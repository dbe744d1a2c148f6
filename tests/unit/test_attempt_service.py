"""
Unit tests for the attempt application service.

Tests:
- Starting attempts (published only, guests, retake limits)
- Deterministic per-attempt shuffling
- Completing and reviewing attempts
- Ownership checks
"""

import pytest
from uuid import uuid4

from examkit.application.exams.attempts import AttemptService, build_review
from examkit.application.exams.lookup import TestLookup
from examkit.domain.exams.attempts import AttemptStatus, TestAttempt
from examkit.domain.exams.entities import TestSettings, TestStatus
from examkit.domain.exceptions import (
    AttemptAccessDeniedError,
    AttemptClosedError,
    AttemptLimitReachedError,
    AttemptNotFoundError,
    ExamValidationError,
    TestNotFoundError,
)
from tests.fixtures.exam_fixtures import build_test


@pytest.fixture
def service(attempt_repo, exam_repo, uow):
    return AttemptService(
        attempts=attempt_repo,
        lookup=TestLookup(exam_repo),
        uow=uow,
        shuffle_secret="unit-test-secret",
    )


@pytest.fixture
async def published(exam_repo, two_question_test):
    await exam_repo.add(two_question_test)
    return two_question_test


def shuffled_test(**settings):
    return build_test(settings=TestSettings(shuffle_questions=True, shuffle_answers=True, **settings))


class TestStartAttempt:
    """Test opening attempts."""

    async def test_user_attempt(self, service, attempt_repo, uow, published, sample_user_id):
        """Test a signed-in learner gets a stored in-progress attempt."""
        paper = await service.start_attempt(published.id, sample_user_id)

        stored = attempt_repo.rows[paper.attempt.id]
        assert stored.status == AttemptStatus.IN_PROGRESS
        assert stored.user_id == sample_user_id
        assert stored.session_id is None
        assert uow.commits == 1
        assert len(paper.questions) == 2

    async def test_guest_attempt(self, service, published):
        """Test guests get a generated session id."""
        paper = await service.start_attempt(published.id)

        assert paper.attempt.user_id is None
        assert paper.attempt.session_id.startswith("guest_")

    async def test_unknown_test(self, service):
        """Test starting on a missing test raises not found."""
        with pytest.raises(TestNotFoundError):
            await service.start_attempt(uuid4())

    @pytest.mark.parametrize("status", [
        TestStatus.DRAFT,
        TestStatus.PENDING_REVIEW,
        TestStatus.REJECTED,
        TestStatus.ARCHIVED,
    ])
    async def test_unpublished_test(self, service, exam_repo, status):
        """Test only published tests can be attempted."""
        test = build_test(status=status)
        await exam_repo.add(test)

        with pytest.raises(ExamValidationError):
            await service.start_attempt(test.id)

    async def test_paper_hides_correctness(self, service, published):
        """Test presented options carry no answers."""
        paper = await service.start_attempt(published.id)

        data = paper.to_dict()

        option = data["questions"][0]["options"][0]
        assert set(option) == {"id", "label"}
        assert "explanation" not in data["questions"][0]
        assert data["deadline"] is None

    async def test_deadline_from_time_limit(self, service, exam_repo):
        """Test timed tests report a deadline."""
        test = build_test(time_limit_minutes=45)
        await exam_repo.add(test)

        paper = await service.start_attempt(test.id)

        assert (paper.deadline - paper.attempt.started_at).total_seconds() == 45 * 60


class TestAttemptLimits:
    """Test retake and max-attempt rules."""

    async def finish_one(self, service, test_id, user_id):
        paper = await service.start_attempt(test_id, user_id)
        await service.complete_attempt(paper.attempt.id, user_id=user_id)

    async def test_no_retakes(self, service, exam_repo, sample_user_id):
        """Test a second attempt is refused when retakes are off."""
        test = build_test(settings=TestSettings(allow_retakes=False))
        await exam_repo.add(test)
        await self.finish_one(service, test.id, sample_user_id)

        with pytest.raises(AttemptLimitReachedError):
            await service.start_attempt(test.id, sample_user_id)

    async def test_max_attempts(self, service, exam_repo, sample_user_id):
        """Test the max attempt count is enforced."""
        test = build_test(settings=TestSettings(max_attempts=2))
        await exam_repo.add(test)
        await self.finish_one(service, test.id, sample_user_id)
        await self.finish_one(service, test.id, sample_user_id)

        with pytest.raises(AttemptLimitReachedError):
            await service.start_attempt(test.id, sample_user_id)

    async def test_abandoned_attempts_not_counted(self, service, exam_repo, sample_user_id):
        """Test abandoned attempts do not use up the allowance."""
        test = build_test(settings=TestSettings(allow_retakes=False))
        await exam_repo.add(test)
        paper = await service.start_attempt(test.id, sample_user_id)
        await service.abandon_attempt(paper.attempt.id, sample_user_id)

        await service.start_attempt(test.id, sample_user_id)

    async def test_guests_unlimited(self, service, exam_repo):
        """Test limits apply to signed-in users only."""
        test = build_test(settings=TestSettings(allow_retakes=False))
        await exam_repo.add(test)
        await self.finish_one(service, test.id, None)

        await service.start_attempt(test.id)


class TestShuffling:
    """Test per-attempt presentation order."""

    def test_same_attempt_same_order(self, service):
        """Test rebuilding a paper keeps the order."""
        test = shuffled_test()
        attempt = TestAttempt(test_id=test.id)

        first = service.build_paper(attempt, test)
        second = service.build_paper(attempt, test)

        assert [q.question.id for q in first.questions] == [q.question.id for q in second.questions]
        assert [o.id for o in first.questions[0].options] == [o.id for o in second.questions[0].options]

    def test_order_without_shuffle(self, service, two_question_test):
        """Test authoring order is kept when shuffling is off."""
        paper = service.build_paper(TestAttempt(test_id=two_question_test.id), two_question_test)

        assert [q.question for q in paper.questions] == two_question_test.questions
        assert paper.questions[0].options == two_question_test.questions[0].options

    def test_seed_depends_on_attempt_and_secret(self, service, attempt_repo, exam_repo, uow):
        """Test seeds differ across attempts and secrets."""
        test_id, attempt_id = uuid4(), uuid4()
        other = AttemptService(attempt_repo, TestLookup(exam_repo), uow, shuffle_secret="other")

        seed = service._generate_shuffle_seed(test_id, attempt_id)

        assert seed == service._generate_shuffle_seed(test_id, attempt_id)
        assert seed != service._generate_shuffle_seed(test_id, uuid4())
        assert seed != other._generate_shuffle_seed(test_id, attempt_id)

    def test_shuffle_keeps_every_option(self, service):
        """Test shuffling is a permutation."""
        test = shuffled_test()
        paper = service.build_paper(TestAttempt(test_id=test.id), test)

        for presented in paper.questions:
            assert sorted(o.label for o in presented.options) == sorted(
                o.label for o in presented.question.options
            )


class TestCompleteAttempt:
    """Test submission and result review."""

    async def test_complete_with_saved_answers(self, service, attempt_repo, published, perfect_answers):
        """Test answers saved earlier are scored on completion."""
        paper = await service.start_attempt(published.id)
        await service.save_answers(paper.attempt.id, perfect_answers)

        review = await service.complete_attempt(paper.attempt.id)

        assert review["percentage"] == 100.0
        assert review["passed"] is True
        assert attempt_repo.rows[paper.attempt.id].status == AttemptStatus.COMPLETED

    async def test_complete_with_final_answers(self, service, published, half_answers):
        """Test answers sent with completion replace saved ones."""
        paper = await service.start_attempt(published.id)

        review = await service.complete_attempt(paper.attempt.id, half_answers)

        assert review["score"] == 1.0
        assert review["total_points"] == 2.0
        assert review["passed"] is False
        assert review["correct_answers"] == 1

    async def test_complete_twice(self, service, published):
        """Test a finished attempt cannot be submitted again."""
        paper = await service.start_attempt(published.id)
        await service.complete_attempt(paper.attempt.id)

        with pytest.raises(AttemptClosedError):
            await service.complete_attempt(paper.attempt.id)

    async def test_result_readable_later(self, service, published, wrong_answers):
        """Test the stored result can be fetched again."""
        paper = await service.start_attempt(published.id)
        submitted = await service.complete_attempt(paper.attempt.id, wrong_answers)

        again = await service.get_attempt_result(paper.attempt.id)

        assert again == submitted

    async def test_no_result_while_in_progress(self, service, published):
        """Test in-progress attempts have no result yet."""
        paper = await service.start_attempt(published.id)

        with pytest.raises(ExamValidationError):
            await service.get_attempt_result(paper.attempt.id)

    async def test_unknown_attempt(self, service):
        """Test missing attempts raise not found."""
        with pytest.raises(AttemptNotFoundError):
            await service.get_paper(uuid4())


class TestResultFiltering:
    """Test review settings on the returned result."""

    def completed(self, test, answers=None):
        attempt = TestAttempt(test_id=test.id)
        attempt.record_answers(answers or {})
        attempt.complete(test)
        return attempt

    def test_full_review(self, two_question_test, perfect_answers):
        """Test defaults show breakdown, correct answers and explanations."""
        review = build_review(self.completed(two_question_test, perfect_answers), two_question_test)

        first = review["question_results"][0]
        assert first["correct_answers"]
        assert first["explanation"] == "The Thames flows through London."

    def test_results_hidden(self):
        """Test show_results off hides the breakdown."""
        test = build_test(settings=TestSettings(show_results=False))

        review = build_review(self.completed(test), test)

        assert "question_results" not in review
        assert review["percentage"] == 0.0

    def test_correct_answers_hidden(self):
        """Test show_correct_answers off drops the correct ids."""
        test = build_test(settings=TestSettings(show_correct_answers=False))

        review = build_review(self.completed(test), test)

        assert all("correct_answers" not in r for r in review["question_results"])
        assert all("is_correct" in r for r in review["question_results"])

    def test_explanations_hidden(self):
        """Test show_explanations off leaves explanations out."""
        test = build_test(settings=TestSettings(show_explanations=False))

        review = build_review(self.completed(test), test)

        assert all("explanation" not in r for r in review["question_results"])


class TestAttemptOwnership:
    """Test attempts are private to the learner who started them."""

    async def test_other_user_denied(self, service, published, sample_user_id, perfect_answers):
        """Test another user cannot read or answer the attempt."""
        paper = await service.start_attempt(published.id, sample_user_id)

        with pytest.raises(AttemptAccessDeniedError):
            await service.get_paper(paper.attempt.id, "someone-else")
        with pytest.raises(AttemptAccessDeniedError):
            await service.save_answers(paper.attempt.id, perfect_answers, None)

    async def test_owner_allowed(self, service, published, sample_user_id):
        """Test the owner can resume the attempt."""
        paper = await service.start_attempt(published.id, sample_user_id)

        resumed = await service.get_paper(paper.attempt.id, sample_user_id)

        assert resumed.attempt.id == paper.attempt.id

    async def test_guest_attempt_open_to_holder(self, service, published):
        """Test guest attempts are reachable by id alone."""
        paper = await service.start_attempt(published.id)

        resumed = await service.get_paper(paper.attempt.id, "any-user")

        assert resumed.attempt.session_id == paper.attempt.session_id
