import collections
import torch
from .errors import ConfigurationError


NoiseGrid = collections.namedtuple('NoiseGrid', 't, W')
# A sampled Brownian path.
#
# Attributes:
#     t: 1-D Tensor of grid times; SDE steps are taken between consecutive entries.
#     W: Tensor of shape (len(t), *noise_shape) with the cumulative path, W[0] = 0.


def uniform_grid(t0, t1, step_size, dtype=None, device=None):
    """Grid from `t0` to `t1` in steps of `step_size`; the last step is shortened to end exactly at `t1`."""
    if not step_size > 0:
        raise ConfigurationError('step_size must be positive, got {}'.format(step_size))
    niters = int(torch.ceil(torch.tensor((t1 - t0) / step_size, dtype=torch.float64)).item())
    grid = torch.arange(0, niters + 1, dtype=dtype, device=device) * step_size + t0
    grid[-1] = t1
    if niters > 1 and grid[-1] - grid[-2] < 1e-3 * step_size:
        grid = torch.cat([grid[:-2], grid[-1:]])
    return grid


def brownian_noise(t, shape=(), *, generator=None):
    """Sample one Brownian path on the grid `t`.

    Increments over [t_k, t_{k+1}] are independent normals with variance t_{k+1} - t_k. A new path
    is drawn on every call, so each trajectory and each loss evaluation sees fresh noise.
    """
    shape = torch.Size(shape)
    dt = (t[1:] - t[:-1]).reshape(-1, *([1] * len(shape)))
    if (dt <= 0).any():
        raise ConfigurationError('noise grid must be strictly increasing')
    dW = torch.randn((len(t) - 1, *shape), generator=generator, dtype=t.dtype, device=t.device) * dt.sqrt()
    W = torch.cat([torch.zeros((1, *shape), dtype=t.dtype, device=t.device), torch.cumsum(dW, dim=0)], dim=0)
    return NoiseGrid(t, W)
