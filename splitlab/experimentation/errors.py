"""Error taxonomy for the experimentation core."""


class ExperimentError(Exception):
    """Base class for experimentation errors."""


class ValidationError(ExperimentError):
    """An experiment definition violates one or more structural rules.

    All violated rules are collected in ``errors`` so callers can report
    them at once.
    """

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class NotFoundError(ExperimentError):
    """Unknown experiment, variant or assignment."""


class InvalidStateError(ExperimentError):
    """Illegal lifecycle transition or edit of a running experiment."""


class IneligibleError(ExperimentError):
    """Subject does not satisfy the experiment's targeting rules."""
