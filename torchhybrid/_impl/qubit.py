"""Feedback control of a decaying, continuously monitored qubit.

The state |psi> = ce |e> + cd |d> is stored as four real components `(ceR, cdR, ceI, cdI)`. A network
reads the state and outputs a control amplitude in [-omega_max, omega_max]; the goal is to keep the
ensemble in the excited state |e> while homodyne detection of the decay channel drives the state
stochastically. The norm is only conserved in the continuum limit, so the state is renormalised
after every step.
"""
import torch
import torch.nn as nn
from .dynamics import destructure, mlp
from .ensemble import ensemble_solve
from .event_handling import DiscreteEvent, always, normalize
from .noise import brownian_noise
from .odeint import sdeint
from .parameters import ParameterLayout, ParameterVector

PHYSICAL_BLOCKS = ('detuning', 'omega_max', 'decay_rate')


def bloch_sphere_states(n, dtype=torch.float32, generator=None, device=None):
    """`n` states drawn uniformly from the Bloch sphere, shape (n, 4)."""
    theta = torch.acos(2 * torch.rand(n, dtype=dtype, generator=generator, device=device) - 1)
    phi = torch.rand(n, dtype=dtype, generator=generator, device=device) * 2 * torch.pi
    return torch.stack([torch.cos(theta / 2),
                        torch.sin(theta / 2) * torch.cos(phi),
                        torch.zeros_like(theta),
                        torch.sin(theta / 2) * torch.sin(phi)], dim=-1)


def infidelity(u):
    """Population of |d> relative to the total, for states with components on the first axis."""
    ceR, cdR, ceI, cdI = u.unbind(0)
    return (cdR ** 2 + cdI ** 2) / (ceR ** 2 + cdR ** 2 + ceI ** 2 + cdI ** 2)


def fidelity(u):
    return 1 - infidelity(u)


class QubitControl(object):

    def __init__(self, config, hidden=256, method='euler_maruyama'):
        self.config = config
        net = mlp([4, hidden, 1], activation=nn.ReLU, out_activation=nn.Tanh, dtype=config.dtype)
        self._net_init, net_layout, self.net = destructure(net)
        self.layout = ParameterLayout([('net', (net_layout.numel,))] + [(name, ()) for name in PHYSICAL_BLOCKS])
        self.method = method
        self.events = (DiscreteEvent(always, normalize),)

    def initial_parameters(self):
        config = self.config
        return ParameterVector.from_blocks([('net', self._net_init),
                                            ('detuning', config.detuning),
                                            ('omega_max', config.omega_max),
                                            ('decay_rate', config.decay_rate)], dtype=config.dtype)

    def control(self, u, params):
        omega_max = self.layout.block(params, 'omega_max')
        return omega_max * self.net(self.layout.block(params, 'net'), u)[..., 0]

    def drift(self, t, u, params):
        delta = self.layout.block(params, 'detuning')
        kappa = self.layout.block(params, 'decay_rate')
        omega = self.control(u, params)
        ceR, cdR, ceI, cdI = u.unbind(-1)
        # Measurement backaction of the decay channel.
        backaction = (cdI * ceI + cdR * ceR) * kappa
        return torch.stack([
            0.5 * (ceI * delta - ceR * kappa + cdI * omega),
            -cdI * delta / 2 + ceR * backaction + ceI * omega / 2,
            0.5 * (-ceR * delta - ceI * kappa - cdR * omega),
            cdR * delta / 2 + ceI * backaction - ceR * omega / 2,
        ], dim=-1)

    def diffusion(self, t, u, params):
        kappa = self.layout.block(params, 'decay_rate')
        ceR, cdR, ceI, cdI = u.unbind(-1)
        zero = torch.zeros_like(ceR)
        return torch.stack([zero, kappa.sqrt() * ceR, zero, kappa.sqrt() * ceI], dim=-1)

    def simulate(self, params, trajectories, generator=None, parallel=False, retries=0):
        """Solve an ensemble from random initial states with one fresh noise path per trajectory.

        Returns a Tensor of shape (4, n_intervals + 1, trajectories).
        """
        config = self.config
        t = config.checkpoint_times()
        grid = config.time_grid()
        # Drawn up front so that slot i gets the same inputs whatever order the trajectories run in.
        u0 = bloch_sphere_states(trajectories, dtype=config.dtype, generator=generator)
        noises = [brownian_noise(grid, (), generator=generator) for _ in range(trajectories)]
        attempts = [0] * trajectories

        def trajectory(i):
            noise = noises[i]
            if attempts[i] > 0:
                noise = brownian_noise(grid, ())
            attempts[i] += 1
            return sdeint(self.drift, self.diffusion, u0[i], t, params, noise=noise, method=self.method,
                          events=self.events)

        return ensemble_solve(trajectory, trajectories, parallel=parallel, retries=retries)

    def loss(self, params, generator=None, parallel=False):
        u = self.simulate(params, self.config.numtraj, generator=generator, parallel=parallel)
        return self.config.loss_weight * infidelity(u).mean()

    def mean_fidelity(self, params, trajectories=None, generator=None, parallel=False):
        """Mean fidelity with |e> over an independent ensemble, per checkpoint."""
        if trajectories is None:
            trajectories = self.config.numtrajplot
        with torch.no_grad():
            u = self.simulate(params, trajectories, generator=generator, parallel=parallel)
        return fidelity(u).mean(dim=-1)
