"""Errors raised by the schedule generator."""


class SchedulerError(Exception):
    pass


class FeasibilityError(SchedulerError):
    """Declared workloads cannot fit in the week. Generation is never attempted."""

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__(
            f"Found {len(self.errors)} workload issue(s) that make scheduling impossible: "
            + "; ".join(self.errors)
        )


class GenerationFailure(SchedulerError):
    """Best attempt stayed below the acceptance threshold."""

    def __init__(self, message: str, diagnostics: dict):
        self.message = message
        self.diagnostics = diagnostics
        super().__init__(message)
