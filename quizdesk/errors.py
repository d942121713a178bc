"""Exception taxonomy for the attempt engine."""


class QuizdeskError(Exception):
    """Base class for every error raised by quizdesk."""


class SetupError(QuizdeskError):
    """An attempt could not be started (no questions, inactive quiz, attempt limit)."""


class ValidationError(QuizdeskError):
    """An operation is not legal in the session's current state."""


class PersistenceError(QuizdeskError):
    """A call to the attempt store failed after retries."""

    def __init__(self, operation: str, message: str):
        self.operation = operation
        super().__init__(f"{operation} failed: {message}")
