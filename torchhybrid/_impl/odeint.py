import torch
from .adjoint import adjoint_integrate
from .errors import ConfigurationError, GradientUnavailableError
from .event_handling import _check_events
from .fixed_grid import Euler, Heun, Midpoint, RK4, ClassicRK4, EulerMaruyama, EulerHeun
from .misc import _check_inputs

SOLVERS = {
    'euler': Euler,
    'heun': Heun,
    'midpoint': Midpoint,
    'rk4': RK4,
    'classic_rk4': ClassicRK4,
}

SDE_SOLVERS = {
    'euler_maruyama': EulerMaruyama,
    'euler_heun': EulerHeun,
}

SENSITIVITIES = ('autograd', 'adjoint')


def odeint(func, y0, t, params=None, *, method='rk4', options=None, events=(), sensitivity='autograd'):
    """Integrate a hybrid system of ordinary differential equations on a fixed grid.

    Solves the initial value problem
        ```
        dy/dt = func(t, y, params), y(t[0]) = y0
        ```
    where the state is additionally changed by discrete `events` at preset times or whenever a
    condition holds after a step.

    Output dtypes and numerical precision are based on the dtype of `y0`.

    Args:
        func: Pure function mapping a scalar Tensor `t`, the state Tensor `y` and the parameter
            vector `params` to the time derivative of `y`, with the same shape as `y`.
        y0: N-D Tensor giving the starting value of `y` at time point `t[0]`.
        t: 1-D Tensor of strictly increasing checkpoint times at which to record `y`. The first
            element is taken to be the initial time point.
        params: optional 1-D Tensor of parameters, passed unchanged to `func` and to event effects.
        method: one of the fixed grid methods in `SOLVERS`.
        options: optional dict of solver options: `step_size` or `grid_constructor` (mutually
            exclusive) and `max_value`, a bound on `|y|` beyond which the solve is considered
            divergent. Without `step_size` or `grid_constructor`, steps are taken between
            consecutive checkpoint and trigger times.
        events: a PresetTimeEvent or DiscreteEvent, or a sequence of them.
        sensitivity: 'autograd' to differentiate through every step of the solve, or 'adjoint' to
            compute gradients by solving the adjoint equation backwards over the same grid.

    Returns:
        y: Tensor of shape (len(t), *y0.shape) holding the state at each checkpoint. Where an event
            fires at a checkpoint, the state after the event is recorded.

    Raises:
        ConfigurationError: if the inputs, options or events are malformed.
        GradientUnavailableError: if `sensitivity='adjoint'` is used with events it cannot handle.
        NumericalDivergenceError: if the state becomes non-finite or exceeds `max_value`.
    """
    y0, t, options = _check_inputs(y0, t, params, method, options, SOLVERS)
    events = _check_events(events)
    if sensitivity not in SENSITIVITIES:
        raise ConfigurationError('Invalid sensitivity "{}". Must be one of {}'.format(sensitivity, SENSITIVITIES))
    _check_dynamics('func', func, t[0], y0, params, broadcast=False)

    solver = SOLVERS[method](func=func, y0=y0, params=params, **options)

    if sensitivity == 'adjoint':
        return adjoint_integrate(solver, t, events)
    return solver.integrate(t, events)


def sdeint(drift, diffusion, y0, t, params=None, *, noise=None, method='euler_maruyama', options=None, events=(),
           generator=None, sensitivity='autograd'):
    """Integrate a hybrid system of stochastic differential equations on a fixed grid.

    Solves
        ```
        dy = drift(t, y, params) dt + diffusion(t, y, params) * dW, y(t[0]) = y0
        ```
    with elementwise (diagonal or broadcast) noise, applying `events` as in `odeint`.

    Args:
        drift, diffusion: pure functions of `(t, y, params)`. The drift has the shape of `y`; the
            diffusion must broadcast against both `y` and the noise.
        y0, t, params, events: as in `odeint`.
        noise: optional NoiseGrid. Its grid defines the steps, so every checkpoint and trigger time
            must lie on it. If omitted, a fresh Brownian path is sampled on a grid built from
            `options['step_size']`.
        method: one of the methods in `SDE_SOLVERS`.
        options: optional dict with `step_size` (required without `noise`), `noise_shape` (shape of
            sampled noise, defaults to `y0.shape`) and `max_value`.
        generator: optional torch.Generator used when sampling noise.
        sensitivity: only 'autograd' is supported for SDEs.

    Returns:
        y: Tensor of shape (len(t), *y0.shape).
    """
    y0, t, options = _check_inputs(y0, t, params, method, options, SDE_SOLVERS)
    events = _check_events(events)
    if sensitivity == 'adjoint':
        raise GradientUnavailableError('adjoint sensitivity is not available for SDEs; use sensitivity="autograd"')
    if sensitivity not in SENSITIVITIES:
        raise ConfigurationError('Invalid sensitivity "{}". Must be one of {}'.format(sensitivity, SENSITIVITIES))
    _check_dynamics('drift', drift, t[0], y0, params, broadcast=False)
    _check_dynamics('diffusion', diffusion, t[0], y0, params, broadcast=True)

    solver = SDE_SOLVERS[method](drift=drift, diffusion=diffusion, y0=y0, params=params, noise=noise,
                                 generator=generator, **options)
    return solver.integrate(t, events)


def _check_dynamics(name, func, t0, y0, params, broadcast):
    """Evaluate `func` once at the initial point to catch state/parameter mismatches before stepping."""
    with torch.no_grad():
        try:
            out = func(t0, y0, params)
        except (RuntimeError, IndexError) as e:
            raise ConfigurationError('{} could not be evaluated at the initial state: {}'.format(name, e)) from e
    if not isinstance(out, torch.Tensor):
        raise ConfigurationError('{} must return a Tensor, got {}'.format(name, type(out).__name__))
    if broadcast:
        try:
            torch.broadcast_shapes(out.shape, y0.shape)
        except RuntimeError:
            raise ConfigurationError('{} returned shape {} which does not broadcast against the state shape {}'.format(
                name, tuple(out.shape), tuple(y0.shape)))
    elif out.shape != y0.shape:
        raise ConfigurationError('{} returned shape {} but the state has shape {}'.format(
            name, tuple(out.shape), tuple(y0.shape)))
