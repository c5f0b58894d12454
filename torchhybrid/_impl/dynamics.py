import torch
import torch.nn as nn
import torch.nn.functional as F
from .errors import ConfigurationError
from .parameters import ParameterLayout


def mlp(sizes, activation=nn.Tanh, out_activation=None, dtype=None):
    """Feed-forward network with `activation` between layers and an optional `out_activation`."""
    layers = []
    for i, (n_in, n_out) in enumerate(zip(sizes[:-1], sizes[1:])):
        layers.append(nn.Linear(n_in, n_out, dtype=dtype))
        if i < len(sizes) - 2:
            layers.append(activation())
    if out_activation is not None:
        layers.append(out_activation())
    return nn.Sequential(*layers)


class Restructure(object):
    """Evaluates a Sequential of Linear layers and parameter-free activations with weights taken
    from a flat vector: `restructure(flat, x)`.

    The module only supplies the architecture; its own parameters are never read, so the call is a
    pure function of `flat` and `x` and may be made from several threads at once.
    """

    def __init__(self, module, layout):
        if not isinstance(module, nn.Sequential):
            raise ConfigurationError('only nn.Sequential networks can be destructured, got {}'.format(
                type(module).__name__))
        for name, layer in module.named_children():
            if not isinstance(layer, nn.Linear) and len(list(layer.parameters())) > 0:
                raise ConfigurationError('layer {} ({}) has parameters but is not nn.Linear'.format(
                    name, type(layer).__name__))
        self.module = module
        self.layout = layout

    def __call__(self, flat, x):
        weights = self.layout.split(flat)
        for name, layer in self.module.named_children():
            if isinstance(layer, nn.Linear):
                bias = weights[name + '.bias'] if layer.bias is not None else None
                x = F.linear(x, weights[name + '.weight'], bias)
            else:
                x = layer(x)
        return x


def destructure(module):
    """Flatten the parameters of `module`.

    Returns:
        `(flat, layout, restructure)`: a detached copy of the parameters as one 1-D Tensor, the
        layout of that vector, and a Restructure that evaluates the module on any vector of that
        layout.
    """
    named = list(module.named_parameters())
    layout = ParameterLayout([(name, p.shape) for name, p in named])
    flat = torch.cat([p.detach().reshape(-1) for _, p in named])
    return flat, layout, Restructure(module, layout)
