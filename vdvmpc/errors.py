class ConfigurationError(ValueError):
    """Invalid run configuration, rejected before any simulation."""


class IntegrationFailure(RuntimeError):
    """The stiff solver could not meet its tolerances."""

    def __init__(self, message, t_span=None):
        super().__init__(message)
        self.t_span = t_span


class ControlLoopError(RuntimeError):
    """Fatal error during the closed loop.

    ``record`` holds only the samples recorded before ``iteration``.
    """

    def __init__(self, message, iteration, record):
        super().__init__(f'{message} (iteration {iteration})')
        self.iteration = iteration
        self.record = record
