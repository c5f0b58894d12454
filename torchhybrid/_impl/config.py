import collections
import torch
from .errors import ConfigurationError


class SimulationConfig(collections.namedtuple(
        'SimulationConfig',
        'step_size, t_interval, n_intervals, numtraj, numtrajplot, detuning, omega_max, decay_rate, loss_weight, dtype')):
    """Hyperparameters of the controlled qubit simulation.

    Attributes:
        step_size: SDE time step.
        t_interval: time between consecutive checkpoints.
        n_intervals: number of checkpoint intervals; the horizon is `t_interval * n_intervals`.
        numtraj: trajectories per loss evaluation during training.
        numtrajplot: trajectories per diagnostic evaluation.
        detuning: qubit detuning.
        omega_max: maximum control amplitude.
        decay_rate: spontaneous emission rate.
        loss_weight: weight of the infidelity term in the loss.
        dtype: floating point precision of states and parameters.
    """
    __slots__ = ()

    def __new__(cls, step_size=0.001, t_interval=0.05, n_intervals=20, numtraj=16, numtrajplot=32, detuning=20.0,
                omega_max=10.0, decay_rate=0.3, loss_weight=1.0, dtype=torch.float32):
        return super(SimulationConfig, cls).__new__(cls, step_size, t_interval, n_intervals, numtraj, numtrajplot,
                                                    detuning, omega_max, decay_rate, loss_weight, dtype)

    @property
    def t_end(self):
        return self.t_interval * self.n_intervals

    @property
    def steps_per_interval(self):
        return int(round(self.t_interval / self.step_size))

    def checkpoint_times(self, device=None):
        # Sliced from the step grid so both agree exactly in any dtype.
        return self.time_grid(device)[::self.steps_per_interval]

    def time_grid(self, device=None):
        """Step grid of the solver; contains every checkpoint time."""
        nsteps = self.steps_per_interval * self.n_intervals
        return torch.arange(nsteps + 1, dtype=self.dtype, device=device) * self.step_size


class DosingConfig(collections.namedtuple(
        'DosingConfig', 'y0, t_end, datasize, dose_times, dose, step_size, hidden, dtype')):
    """Setup of the dosing example: exponential decay with additive doses at preset times."""
    __slots__ = ()

    def __new__(cls, y0=(2.0, 0.0), t_end=10.5, datasize=100, dose_times=(1.0, 2.0, 4.0, 8.0), dose=1.0,
                step_size=0.01, hidden=50, dtype=torch.float32):
        return super(DosingConfig, cls).__new__(cls, tuple(y0), t_end, datasize, tuple(dose_times), dose, step_size,
                                                hidden, dtype)

    def initial_state(self, device=None):
        return torch.tensor(self.y0, dtype=self.dtype, device=device)

    def checkpoint_times(self, device=None):
        return torch.linspace(0., self.t_end, self.datasize, dtype=self.dtype, device=device)


def check_config(config):
    """Validate a configuration record, raising ConfigurationError on the first problem found."""
    if isinstance(config, SimulationConfig):
        _check_positive(config, ('step_size', 't_interval', 'n_intervals', 'numtraj', 'numtrajplot', 'loss_weight'))
        _check_integer(config, ('n_intervals', 'numtraj', 'numtrajplot'))
        if config.omega_max < 0 or config.decay_rate < 0:
            raise ConfigurationError('omega_max and decay_rate must be non-negative')
        ratio = config.t_interval / config.step_size
        if abs(ratio - round(ratio)) > 1e-6 * ratio:
            raise ConfigurationError('t_interval={} is not a multiple of step_size={}; checkpoints would not fall '
                                     'on step boundaries'.format(config.t_interval, config.step_size))
    elif isinstance(config, DosingConfig):
        _check_positive(config, ('t_end', 'datasize', 'step_size', 'hidden'))
        _check_integer(config, ('datasize', 'hidden'))
        if config.datasize < 2:
            raise ConfigurationError('datasize must be at least 2')
        times = config.dose_times
        if len(times) == 0:
            raise ConfigurationError('dose_times must contain at least one dose time')
        if any(t1 <= t0 for t0, t1 in zip(times[:-1], times[1:])):
            raise ConfigurationError('dose_times must be strictly increasing, got {}'.format(times))
        if times[0] < 0 or times[-1] > config.t_end:
            raise ConfigurationError('dose_times must lie within [0, t_end]')
    else:
        raise ConfigurationError('unknown configuration type {}'.format(type(config).__name__))
    if not config.dtype.is_floating_point:
        raise ConfigurationError('dtype must be a floating point dtype, got {}'.format(config.dtype))
    return config


def _check_positive(config, fields):
    for field in fields:
        value = getattr(config, field)
        if not value > 0:
            raise ConfigurationError('{} must be positive, got {}'.format(field, value))


def _check_integer(config, fields):
    for field in fields:
        if not isinstance(getattr(config, field), int):
            raise ConfigurationError('{} must be an integer, got {!r}'.format(field, getattr(config, field)))
