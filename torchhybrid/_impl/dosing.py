"""Pharmacometric dosing: exponential elimination with additive doses at preset times.

The reference system is `du/dt = -u` with a dose added to every compartment at each dose time. The
model keeps the known structure (decay plus doses) but with a decay rate `k` that starts out wrong,
and adds a learned correction: `du/dt = -k u + net(u)`.
"""
import functools
import torch
import torch.nn as nn
from .dynamics import destructure, mlp
from .event_handling import PresetTimeEvent
from .odeint import odeint
from .parameters import ParameterLayout, ParameterVector


def decay(t, u, params):
    return -u


def add_dose(t, u, params, dose=1.0):
    return u + dose


def dosing_event(config):
    return PresetTimeEvent(torch.tensor(config.dose_times, dtype=config.dtype),
                           functools.partial(add_dose, dose=config.dose))


def reference_trajectory(config, method='rk4'):
    """The target data: the reference system sampled at the checkpoint times."""
    with torch.no_grad():
        return odeint(decay, config.initial_state(), config.checkpoint_times(), method=method,
                      options={'step_size': config.step_size}, events=dosing_event(config))


class DosingModel(object):

    def __init__(self, config, correction_scale=1e-2):
        self.config = config
        net = mlp([2, config.hidden, 2], activation=nn.Tanh, dtype=config.dtype)
        with torch.no_grad():
            # Start from an almost vanishing correction.
            net[-1].weight.mul_(correction_scale)
            net[-1].bias.zero_()
        self._net_init, net_layout, self.net = destructure(net)
        self.layout = ParameterLayout([('net', (net_layout.numel,)), ('decay', ())])
        self.event = dosing_event(config)

    def initial_parameters(self, decay_rate=0.5):
        return ParameterVector.from_blocks([('net', self._net_init), ('decay', decay_rate)], dtype=self.config.dtype)

    def drift(self, t, u, params):
        k = self.layout.block(params, 'decay')
        return -k * u + self.net(self.layout.block(params, 'net'), u)

    def predict(self, params, method='rk4', sensitivity='autograd'):
        config = self.config
        return odeint(self.drift, config.initial_state(), config.checkpoint_times(), params, method=method,
                      options={'step_size': config.step_size}, events=self.event, sensitivity=sensitivity)

    def loss(self, params, target, **kwargs):
        """Sum of squared errors against `target` over all checkpoints."""
        return torch.sum((target - self.predict(params, **kwargs)) ** 2)
