import collections
import numpy as np
import torch
from .errors import ConfigurationError
from .misc import _flat_to_shape


class ParameterLayout(object):
    """Ordered named blocks of a flat parameter vector.

    Each block is a `(name, shape)` pair; blocks are laid out contiguously in the given order.
    """

    def __init__(self, blocks):
        blocks = tuple((str(name), torch.Size(shape)) for name, shape in blocks)
        names = [name for name, _ in blocks]
        if len(set(names)) != len(names):
            raise ConfigurationError('parameter block names must be unique, got {}'.format(names))
        self.blocks = blocks
        self.names = tuple(names)
        self.shapes = tuple(shape for _, shape in blocks)
        self.numel = sum(shape.numel() for shape in self.shapes)

        self._slices = {}
        total = 0
        for name, shape in blocks:
            self._slices[name] = slice(total, total + shape.numel())
            total += shape.numel()

    def __eq__(self, other):
        return isinstance(other, ParameterLayout) and self.blocks == other.blocks

    def __hash__(self):
        return hash(self.blocks)

    def __repr__(self):
        return 'ParameterLayout({})'.format(', '.join('{}={}'.format(n, tuple(s)) for n, s in self.blocks))

    def index(self, name):
        try:
            return self._slices[name]
        except KeyError:
            raise ConfigurationError('unknown parameter block "{}", blocks are {}'.format(name, self.names))

    def split(self, flat):
        """Views of `flat` for every block, keyed by name."""
        if flat.shape[-1] != self.numel:
            raise ConfigurationError('parameter vector has {} entries but the layout needs {}'.format(
                flat.shape[-1], self.numel))
        return collections.OrderedDict(zip(self.names, _flat_to_shape(flat, flat.shape[:-1], self.shapes)))

    def block(self, flat, name):
        return flat[..., self.index(name)].reshape((*flat.shape[:-1], *self.shapes[self.names.index(name)]))

    def mask(self, names, device=None):
        """Boolean mask over the flat vector selecting the entries of the named blocks."""
        mask = torch.zeros(self.numel, dtype=torch.bool, device=device)
        for name in names:
            mask[self.index(name)] = True
        return mask


class ParameterVector(collections.namedtuple('ParameterVector', 'data, layout')):
    """A flat parameter Tensor together with the layout naming its blocks."""
    __slots__ = ()

    @classmethod
    def from_blocks(cls, blocks, dtype=None, device=None):
        """Build from an ordered mapping or sequence of `(name, tensor-like)` pairs."""
        if isinstance(blocks, dict):
            blocks = blocks.items()
        tensors = [(name, torch.as_tensor(value, dtype=dtype, device=device)) for name, value in blocks]
        layout = ParameterLayout([(name, value.shape) for name, value in tensors])
        data = torch.cat([value.detach().reshape(-1) for _, value in tensors])
        return cls(data, layout)

    def block(self, name):
        return self.layout.block(self.data, name)

    def blocks(self):
        return self.layout.split(self.data)

    def with_data(self, data):
        if data.shape != self.data.shape:
            raise ConfigurationError('new data has shape {}, expected {}'.format(tuple(data.shape),
                                                                                 tuple(self.data.shape)))
        return ParameterVector(data, self.layout)

    def snapshot(self):
        """An immutable copy, safe to share between concurrently evaluated trajectories."""
        return ParameterVector(self.data.detach().clone(), self.layout)

    def save(self, path):
        """Save the flat vector and its block names and shapes to a `.npz` file."""
        np.savez(path,
                 data=self.data.detach().cpu().numpy(),
                 names=np.array(self.layout.names),
                 sizes=np.array([len(shape) for shape in self.layout.shapes], dtype=np.int64),
                 dims=np.array([d for shape in self.layout.shapes for d in shape], dtype=np.int64))

    @classmethod
    def load(cls, path, device=None):
        with np.load(path) as f:
            data, names, sizes, dims = f['data'], f['names'], f['sizes'], f['dims']
        shapes = []
        offset = 0
        for size in sizes:
            shapes.append(tuple(int(d) for d in dims[offset:offset + size]))
            offset += size
        layout = ParameterLayout(zip(names.tolist(), shapes))
        if layout.numel != data.size:
            raise ConfigurationError('saved vector has {} entries but its layout needs {}'.format(data.size,
                                                                                                 layout.numel))
        return cls(torch.as_tensor(data, device=device), layout)
