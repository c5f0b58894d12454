import abc
import torch
from .errors import ConfigurationError
from .event_handling import EventSchedule, preset_times
from .misc import _ParamFunc, _align, _check_finite, _handle_unused_kwargs, _merge_stops
from .noise import brownian_noise


class FixedGridSolver(metaclass=abc.ABCMeta):
    """Common stepping loop for fixed grid ODE and SDE solvers.

    The time grid always contains every checkpoint time and every preset trigger time, so that
    states are recorded and events applied exactly on step boundaries.
    """
    order: int

    def __init__(self, y0, params=None, max_value=None):
        self.y0 = y0
        self.params = params
        self.dtype = y0.dtype
        self.device = y0.device
        self.max_value = max_value

    @abc.abstractmethod
    def _time_grid(self, t, stops):
        """Returns the grid of step boundaries covering `t` and containing `stops`."""

    @abc.abstractmethod
    def _advance(self, index, t0, dt, t1, y0):
        """Returns the increment of the state over the step from grid point `index` to `index + 1`."""

    def _prepare(self, t, events):
        stops = preset_times(events, t)
        time_grid = self._time_grid(t, stops)
        schedule = EventSchedule(events, time_grid)
        save_at = _align('t', time_grid, t)
        return time_grid, schedule, save_at

    def integrate(self, t, events=()):
        time_grid, schedule, save_at = self._prepare(t, events)
        return self._integrate(time_grid, schedule, save_at)

    def _integrate(self, time_grid, schedule, save_at, pre_event=None):
        """Run the stepping loop.

        If `pre_event` is a dict, the state just before the preset effects at each trigger index is
        stored in it, keyed by grid index.
        """
        save_at = set(save_at)
        solution = []

        y0 = self._apply_preset(schedule, 0, self.y0, pre_event)
        _check_finite(y0, time_grid[0], self.max_value)
        if 0 in save_at:
            solution.append(y0)

        for i in range(len(time_grid) - 1):
            t0, t1 = time_grid[i], time_grid[i + 1]
            dt = t1 - t0
            y1 = y0 + self._advance(i, t0, dt, t1, y0)
            _check_finite(y1, t1, self.max_value)

            y1 = self._apply_preset(schedule, i + 1, y1, pre_event)
            y1 = schedule.apply_conditional(i + 1, y1, self.params)
            _check_finite(y1, t1, self.max_value)

            if i + 1 in save_at:
                solution.append(y1)
            y0 = y1

        return torch.stack(solution)

    def _apply_preset(self, schedule, index, y, pre_event):
        if pre_event is not None and schedule.fires_at(index):
            pre_event[index] = y
        return schedule.apply_preset(index, y, self.params)


class FixedGridODESolver(FixedGridSolver, metaclass=abc.ABCMeta):

    def __init__(self, func, y0, params=None, step_size=None, grid_constructor=None, max_value=None, **unused_kwargs):
        _handle_unused_kwargs(self, unused_kwargs)
        del unused_kwargs
        super(FixedGridODESolver, self).__init__(y0, params=params, max_value=max_value)

        self.base_func = func
        self.func = _ParamFunc(func, params)
        self.step_size = step_size
        self.grid_constructor = grid_constructor

        if step_size is not None and grid_constructor is not None:
            raise ConfigurationError("step_size and grid_constructor are mutually exclusive arguments.")

    @staticmethod
    def _grid_from_step_size(t, step_size):
        start_time = t[0]
        end_time = t[-1]

        niters = torch.ceil((end_time - start_time) / step_size + 1).item()
        t_infer = torch.arange(0, niters, dtype=t.dtype, device=t.device) * step_size + start_time
        t_infer[-1] = t[-1]
        if len(t_infer) > 2 and t_infer[-1] - t_infer[-2] < 1e-3 * step_size:
            # The last arange point rounded onto t[-1].
            t_infer = torch.cat([t_infer[:-2], t_infer[-1:]])

        return t_infer

    def _time_grid(self, t, stops):
        if self.grid_constructor is not None:
            time_grid = self.grid_constructor(self.func, self.y0, t).to(t)
            if time_grid[0] != t[0] or time_grid[-1] != t[-1]:
                raise ConfigurationError('grid_constructor must return a grid starting at t[0] and ending at t[-1]')
            if not (time_grid[1:] > time_grid[:-1]).all():
                raise ConfigurationError('grid_constructor must return a strictly increasing grid')
            # Trigger and checkpoint times are checked against the user's grid, never inserted into it.
            return time_grid
        if self.step_size is None:
            return _merge_stops(t, stops)
        time_grid = self._grid_from_step_size(t, self.step_size)
        return _merge_stops(time_grid, torch.cat([t, stops]))

    def _advance(self, index, t0, dt, t1, y0):
        return self._step_func(self.func, t0, dt, t1, y0)

    @abc.abstractmethod
    def _step_func(self, func, t0, dt, t1, y0):
        pass


class FixedGridSDESolver(FixedGridSolver, metaclass=abc.ABCMeta):
    """Fixed grid solver for `dy = drift(t, y, p) dt + diffusion(t, y, p) dW`.

    The diffusion term is multiplied elementwise with the Brownian increment, so `noise.W` may either
    match the state's shape (diagonal noise) or broadcast against it (e.g. scalar noise).
    """

    def __init__(self, drift, diffusion, y0, params=None, noise=None, step_size=None, generator=None,
                 noise_shape=None, max_value=None, **unused_kwargs):
        _handle_unused_kwargs(self, unused_kwargs)
        del unused_kwargs
        super(FixedGridSDESolver, self).__init__(y0, params=params, max_value=max_value)

        self.drift = _ParamFunc(drift, params)
        self.diffusion = _ParamFunc(diffusion, params)
        self.noise = noise
        self.step_size = step_size
        self.generator = generator
        self.noise_shape = y0.shape if noise_shape is None else torch.Size(noise_shape)

        if noise is None and step_size is None:
            raise ConfigurationError('sdeint needs either a noise realization or a step_size to sample one.')
        if noise is not None and step_size is not None:
            raise ConfigurationError('step_size and noise are mutually exclusive arguments; '
                                     'the noise grid defines the steps.')
        if noise is not None:
            try:
                torch.broadcast_shapes(noise.W.shape[1:], y0.shape)
            except RuntimeError:
                raise ConfigurationError('noise of shape {} does not broadcast against a state of shape {}'.format(
                    tuple(noise.W.shape[1:]), tuple(y0.shape)))
        self._W = None

    def _time_grid(self, t, stops):
        if self.noise is None:
            time_grid = FixedGridODESolver._grid_from_step_size(t, self.step_size)
            time_grid = _merge_stops(time_grid, torch.cat([t, stops]))
            noise = brownian_noise(time_grid, self.noise_shape, generator=self.generator)
            self._W = noise.W
            return time_grid

        noise_t = self.noise.t.to(t)
        first, last = _align('t', noise_t, t[[0, -1]])
        self._W = self.noise.W[first:last + 1].to(self.y0)
        return noise_t[first:last + 1]

    def _advance(self, index, t0, dt, t1, y0):
        dW = self._W[index + 1] - self._W[index]
        return self._step_func(self.drift, self.diffusion, t0, dt, t1, y0, dW)

    @abc.abstractmethod
    def _step_func(self, drift, diffusion, t0, dt, t1, y0, dW):
        pass
