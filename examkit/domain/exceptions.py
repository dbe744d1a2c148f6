"""
ExamKit - Domain Errors

Each error subclasses the builtin category the API error middleware
classifies, so services raise them without knowing about HTTP.
"""


class NotFoundError(LookupError):
    """A requested record does not exist."""

    def __init__(self, kind: str, identifier: object):
        super().__init__(f"{kind} not found: {identifier}")
        self.kind = kind
        self.identifier = identifier


class TestNotFoundError(NotFoundError):
    __test__ = False  # keep pytest from collecting this class

    def __init__(self, test_id: object):
        super().__init__("Test", test_id)


class DomainNotFoundError(NotFoundError):
    def __init__(self, domain: object):
        super().__init__("Domain", domain)


class AttemptNotFoundError(NotFoundError):
    def __init__(self, attempt_id: object):
        super().__init__("Test attempt", attempt_id)


class ExamValidationError(ValueError):
    """Input that breaks a test-authoring or workflow rule."""

    def __init__(self, message: str, errors: list[str] | None = None):
        super().__init__(message)
        self.errors = errors or [message]


class InvalidTransitionError(ExamValidationError):
    """A status change not allowed from the current status."""


class AttemptClosedError(ExamValidationError):
    """The attempt is no longer in progress."""


class AttemptLimitReachedError(PermissionError):
    """The learner may not start another attempt on this test."""


class DuplicateDomainError(ExamValidationError):
    """A domain with the same name already exists."""


class AttemptAccessDeniedError(PermissionError):
    """The attempt belongs to another learner."""
