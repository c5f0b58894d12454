import warnings
import torch
from .errors import ConfigurationError, NumericalDivergenceError

# Fraction of the smallest step within which a requested time is considered to lie on a grid point.
_ALIGN_RTOL = 1e-3


def _handle_unused_kwargs(solver, unused_kwargs):
    if len(unused_kwargs) > 0:
        warnings.warn('{}: Unexpected arguments {}'.format(solver.__class__.__name__, unused_kwargs))


def _assert_floating(name, t):
    if not torch.is_floating_point(t):
        raise ConfigurationError('`{}` must be a floating point Tensor but is a {}'.format(name, t.type()))


def _flat_to_shape(tensor, length, shapes):
    tensor_list = []
    total = 0
    for shape in shapes:
        next_total = total + shape.numel()
        # It's important that this be view((...)), not view(...). Else when length=(), shape=() it fails.
        tensor_list.append(tensor[..., total:next_total].view((*length, *shape)))
        total = next_total
    return tuple(tensor_list)


def _check_timelike(name, timelike):
    if not isinstance(timelike, torch.Tensor):
        raise ConfigurationError('{} must be a torch.Tensor'.format(name))
    _assert_floating(name, timelike)
    if timelike.ndimension() != 1:
        raise ConfigurationError('{} must be one dimensional'.format(name))
    if timelike.requires_grad:
        raise ConfigurationError('{} cannot require gradient with fixed grid solvers'.format(name))
    if not (timelike[1:] > timelike[:-1]).all():
        raise ConfigurationError('{} must be strictly increasing'.format(name))


def _check_finite(y, t, max_value=None):
    with torch.no_grad():
        if not torch.isfinite(y).all():
            raise NumericalDivergenceError('non-finite state at t={:.6g}'.format(float(t)), t=float(t))
        if max_value is not None and y.abs().max() > max_value:
            raise NumericalDivergenceError('state exceeded {:g} at t={:.6g}'.format(max_value, float(t)), t=float(t))


def _min_spacing(grid):
    return (grid[1:] - grid[:-1]).min()


def _merge_stops(grid, stops):
    """Insert `stops` into `grid`, dropping grid points that would create a degenerate step."""
    if len(stops) == 0:
        return grid
    tol = _ALIGN_RTOL * _min_spacing(grid)
    dist = (grid[:, None] - stops[None, :]).abs().min(dim=1).values
    return torch.unique(torch.cat([grid[dist > tol], stops]), sorted=True)


def _align(name, grid, times):
    """Map each of `times` to the index of the grid point it lands on.

    Raises ConfigurationError if a time is not on the grid, or if two times land on the same point.
    """
    if len(times) == 0:
        return []
    tol = _ALIGN_RTOL * _min_spacing(grid) if len(grid) > 1 else 0.
    dist = (times[:, None] - grid[None, :]).abs()
    min_dist, index = dist.min(dim=1)
    if (min_dist > tol).any():
        bad = times[min_dist > tol][0]
        raise ConfigurationError('{} contains time {:.6g} which is not a step boundary of the '
                                 'integration grid'.format(name, float(bad)))
    index = index.tolist()
    if any(i1 <= i0 for i0, i1 in zip(index[:-1], index[1:])):
        raise ConfigurationError('{} contains distinct times that fall on the same step boundary'.format(name))
    return index


class _ParamFunc(torch.nn.Module):
    """Binds a parameter vector to a dynamics function `f(t, y, p)`, giving `f(t, y)`."""

    def __init__(self, base_func, params):
        super(_ParamFunc, self).__init__()
        self.base_func = base_func
        self.params = params

    def forward(self, t, y):
        return self.base_func(t, y, self.params)


def _check_inputs(y0, t, params, method, options, SOLVERS):
    _assert_floating('y0', y0)
    _check_timelike('t', t)
    if len(t) < 2:
        raise ConfigurationError('t must contain at least the start and end times')
    if params is not None:
        if not isinstance(params, torch.Tensor):
            raise ConfigurationError('params must be a torch.Tensor, got {}'.format(type(params).__name__))
        _assert_floating('params', params)

    if options is None:
        options = {}
    else:
        options = options.copy()
    if method not in SOLVERS:
        raise ConfigurationError('Invalid method "{}". Must be one of {}'.format(
            method, '{"' + '", "'.join(SOLVERS.keys()) + '"}.'))

    step_size = options.get('step_size')
    if step_size is not None and not step_size > 0:
        raise ConfigurationError('step_size must be positive, got {}'.format(step_size))

    # Checkpoint times follow the state's precision.
    t = t.to(y0.dtype)
    if t.device != y0.device:
        warnings.warn("t is not on the same device as y0. Coercing to y0.device.")
        t = t.to(y0.device)

    return y0, t, options
