import unittest
import torch
import torchhybrid
from torchhybrid import DiscreteEvent, GradientUnavailableError, PresetTimeEvent
from torchhybrid.dosing import DosingModel, reference_trajectory
from torchhybrid.qubit import QubitControl

from problems import construct_problem, max_abs, FIXED_METHODS


def dose_from_params(t, y, params):
    return y * 1.1 + params[0]


class TestGradient(unittest.TestCase):

    def test_odeint(self):
        for method in FIXED_METHODS:
            with self.subTest(method=method):
                f, y0, _, _, params = construct_problem(ode='linear')
                t_points = torch.linspace(0, 1, 4, dtype=torch.float64)
                y0.requires_grad_(True)
                params.requires_grad_(True)
                func = lambda y0, params: torchhybrid.odeint(f, y0, t_points, params, method=method,
                                                              options={'step_size': 0.1})
                self.assertTrue(torch.autograd.gradcheck(func, (y0, params)))

    def test_preset_event(self):
        f, y0, _, _, params = construct_problem(ode='linear')
        t_points = torch.linspace(0, 1, 4, dtype=torch.float64)
        y0.requires_grad_(True)
        params.requires_grad_(True)
        event = PresetTimeEvent([0.25, 0.5], dose_from_params)
        func = lambda y0, params: torchhybrid.odeint(f, y0, t_points, params, options={'step_size': 0.05},
                                                      events=event)
        self.assertTrue(torch.autograd.gradcheck(func, (y0, params)))

    def test_normalization_event(self):
        f, y0, _, _, params = construct_problem(ode='linear')
        t_points = torch.linspace(0, 1, 4, dtype=torch.float64)
        y0.requires_grad_(True)
        params.requires_grad_(True)
        event = DiscreteEvent(torchhybrid.always, torchhybrid.normalize)
        func = lambda y0, params: torchhybrid.odeint(f, y0, t_points, params, options={'step_size': 0.1},
                                                      events=event)
        self.assertTrue(torch.autograd.gradcheck(func, (y0, params)))

    def test_sdeint(self):
        y0 = torch.tensor([1.0, 2.0], dtype=torch.float64, requires_grad=True)
        params = torch.tensor([0.5, 0.3], dtype=torch.float64, requires_grad=True)
        t_points = torch.linspace(0, 1, 3, dtype=torch.float64)
        grid = torchhybrid.uniform_grid(0., 1., 0.05, dtype=torch.float64)
        noise = torchhybrid.brownian_noise(grid, (2,), generator=torch.Generator().manual_seed(0))
        drift = lambda t, y, p: p[0] * y
        diffusion = lambda t, y, p: p[1] * y
        for method in ('euler_maruyama', 'euler_heun'):
            with self.subTest(method=method):
                func = lambda y0, params: torchhybrid.sdeint(drift, diffusion, y0, t_points, params, noise=noise,
                                                              method=method)
                self.assertTrue(torch.autograd.gradcheck(func, (y0, params)))


class TestAdjointGradient(unittest.TestCase):

    def _gradients(self, sensitivity, method, events):
        f, y0, t_points, _, params = construct_problem(ode='linear')
        y0.requires_grad_(True)
        params.requires_grad_(True)
        ys = torchhybrid.odeint(f, y0, t_points, params, method=method, options={'step_size': 0.01},
                                events=events, sensitivity=sensitivity)
        grad_ys = torch.rand(ys.shape, dtype=ys.dtype, generator=torch.Generator().manual_seed(0))
        ys.backward(grad_ys)
        return ys.detach(), y0.grad, params.grad

    def test_adjoint_matches_autograd(self):
        for method in ('rk4', 'classic_rk4'):
            for events in ((), PresetTimeEvent([0.5, 1.3], dose_from_params)):
                with self.subTest(method=method, events=events):
                    ys, reg_y0_grad, reg_params_grad = self._gradients('autograd', method, events)
                    adj_ys, adj_y0_grad, adj_params_grad = self._gradients('adjoint', method, events)
                    self.assertLess(max_abs(ys - adj_ys), 1e-12)
                    self.assertLess(max_abs(reg_y0_grad - adj_y0_grad), 1e-6)
                    self.assertLess(max_abs(reg_params_grad - adj_params_grad), 1e-6)

    def test_adjoint_without_params(self):
        f, y0, t_points, _, params = construct_problem(ode='decay')
        y0.requires_grad_(True)
        ys = torchhybrid.odeint(lambda t, y, p: -0.7 * y, y0, t_points, options={'step_size': 0.01},
                                events=PresetTimeEvent([1.0], lambda t, y, p: 2 * y), sensitivity='adjoint')
        ys[-1].sum().backward()
        # y(2) = 2 y0 exp(-1.4), so each component has derivative 2 exp(-1.4).
        expected = torch.full_like(y0, 2 * torch.exp(torch.tensor(-1.4, dtype=torch.float64)).item())
        self.assertLess(max_abs(y0.grad - expected), 1e-6)

    def test_dosing_model(self):
        config = torchhybrid.DosingConfig(datasize=20, hidden=8, dtype=torch.float64)
        torch.manual_seed(0)
        model = DosingModel(config, correction_scale=0.5)
        target = reference_trajectory(config)
        grads = []
        for sensitivity in ('autograd', 'adjoint'):
            p = model.initial_parameters().data.clone().requires_grad_(True)
            model.loss(p, target, sensitivity=sensitivity).backward()
            grads.append(p.grad)
        reg_grad, adj_grad = grads
        self.assertTrue(torch.allclose(reg_grad, adj_grad, rtol=1e-4, atol=1e-7))

    def test_unavailable(self):
        f, y0, t_points, _, params = construct_problem(ode='decay')
        with self.assertRaises(GradientUnavailableError):
            torchhybrid.odeint(f, y0, t_points, params, sensitivity='adjoint',
                               events=DiscreteEvent(torchhybrid.always, torchhybrid.normalize))
        with self.assertRaises(GradientUnavailableError):
            torchhybrid.odeint(f, y0, t_points, params, sensitivity='adjoint',
                               events=[PresetTimeEvent([1.0], dose_from_params),
                                       PresetTimeEvent([0.5, 1.0], dose_from_params)])
        # Distinct trigger times are fine.
        torchhybrid.odeint(f, y0, t_points, params, sensitivity='adjoint',
                           events=[PresetTimeEvent([1.0], dose_from_params),
                                   PresetTimeEvent([0.5], dose_from_params)])


class TestQubitGradient(unittest.TestCase):

    def test_directional_derivative(self):
        config = torchhybrid.SimulationConfig(n_intervals=2, numtraj=2, dtype=torch.float64)
        torch.manual_seed(0)
        model = QubitControl(config, hidden=8)
        params = model.initial_parameters().data

        def loss(p):
            return model.loss(p, generator=torch.Generator().manual_seed(0))

        p = params.clone().requires_grad_(True)
        loss(p).backward()
        direction = torch.randn(params.shape, dtype=params.dtype, generator=torch.Generator().manual_seed(1))
        eps = 1e-6
        with torch.no_grad():
            numerical = (loss(params + eps * direction) - loss(params - eps * direction)) / (2 * eps)
        analytical = torch.dot(p.grad, direction)
        self.assertTrue(torch.isfinite(analytical))
        self.assertLess(abs(numerical.item() - analytical.item()), 1e-4 * max(1., abs(analytical.item())))

    def test_physical_parameters_receive_gradient(self):
        config = torchhybrid.SimulationConfig(n_intervals=2, numtraj=2, dtype=torch.float64)
        torch.manual_seed(0)
        model = QubitControl(config, hidden=8)
        p = model.initial_parameters().data.clone().requires_grad_(True)
        model.loss(p, generator=torch.Generator().manual_seed(0)).backward()
        for name in ('detuning', 'decay_rate'):
            self.assertNotEqual(model.layout.block(p.grad, name).item(), 0.)


if __name__ == '__main__':
    unittest.main()
