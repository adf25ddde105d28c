class AttemptError(Exception):
    code = "E_ATTEMPT"
    default_message = "Attempt operation failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class AttemptNotFoundError(AttemptError):
    code = "E_ATTEMPT_NOT_FOUND"
    default_message = "Attempt not found"


class AttemptForbiddenError(AttemptError):
    code = "E_ATTEMPT_FORBIDDEN"
    default_message = "This attempt does not belong to you"


class AttemptPolicyViolationError(AttemptError):
    code = "E_ATTEMPT_POLICY_VIOLATION"
    default_message = "Quiz is not available"


class AttemptConflictError(AttemptError):
    code = "E_ATTEMPT_CONFLICT"
    default_message = "Attempt is not in progress"


class AttemptInvalidInputError(AttemptError):
    code = "E_ATTEMPT_INVALID_INPUT"
    default_message = "Invalid answers payload"


class AttemptDependencyError(AttemptError):
    code = "E_ATTEMPT_DEPENDENCY_FAILURE"
    default_message = "Attempt storage is temporarily unavailable"
