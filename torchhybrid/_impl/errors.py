class ConfigurationError(ValueError):
    """Raised for malformed configs, event specs or grids, before any integration starts."""


class GradientUnavailableError(ValueError):
    """Raised when the requested sensitivity strategy cannot differentiate the given event setup."""


class NumericalDivergenceError(RuntimeError):
    """Raised when a trajectory produces a non-finite or unbounded state.

    Attributes:
        t: time at which the divergence was detected, or None.
        trajectory: index of the trajectory within an ensemble, or None for a single solve.
    """

    def __init__(self, message, t=None, trajectory=None):
        super(NumericalDivergenceError, self).__init__(message)
        self.t = t
        self.trajectory = trajectory

    def __str__(self):
        msg = super(NumericalDivergenceError, self).__str__()
        if self.trajectory is not None:
            msg = 'trajectory {}: {}'.format(self.trajectory, msg)
        return msg


class TrainingError(RuntimeError):
    """Raised when a training iteration cannot produce a usable loss or gradient."""

    def __init__(self, message, iteration):
        super(TrainingError, self).__init__(message)
        self.iteration = iteration
