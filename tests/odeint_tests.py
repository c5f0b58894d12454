import unittest
import torch
import torchhybrid
from torchhybrid import ConfigurationError, NumericalDivergenceError

from problems import construct_problem, max_abs, DTYPES, FIXED_METHODS, METHOD_EPS, DTYPE_EPS, PROBLEMS


class TestSolverError(unittest.TestCase):

    def test_odeint(self):
        for dtype in DTYPES:
            for method in FIXED_METHODS:
                for ode in PROBLEMS:
                    eps = METHOD_EPS[method] + DTYPE_EPS[dtype]
                    with self.subTest(dtype=dtype, ode=ode, method=method):
                        f, y0, t_points, sol, params = construct_problem(dtype=dtype, ode=ode)
                        y = torchhybrid.odeint(f, y0, t_points, params, method=method, options={'step_size': 0.01})
                        self.assertEqual(y.dtype, dtype)
                        self.assertEqual(y.shape, (len(t_points), *y0.shape))
                        self.assertLess(max_abs(sol - y), eps)

    def test_checkpoints_off_step_grid(self):
        # Checkpoints that are not multiples of the step size are inserted into the grid.
        f, y0, _, _, params = construct_problem(ode='decay')
        t_points = torch.tensor([0., 0.123, 0.5, 1.0 / 3.0, 1.7], dtype=torch.float64).sort().values
        y = torchhybrid.odeint(f, y0, t_points, params, method='rk4', options={'step_size': 0.1})
        self.assertLess(max_abs(f.y_exact(t_points) - y), 1e-6)

    def test_default_grid(self):
        # Without step_size, steps go from checkpoint to checkpoint.
        f, y0, _, _, params = construct_problem(ode='decay')
        t_points = torch.tensor([0., 1.], dtype=torch.float64)
        y = torchhybrid.odeint(f, y0, t_points, params, method='euler')
        self.assertTrue(torch.allclose(y[-1], y0 * (1 - 0.7)))

    def test_grid_constructor(self):
        f, y0, _, _, params = construct_problem(ode='decay')
        t_points = torch.tensor([0., 1.], dtype=torch.float64)

        def grid_constructor(func, y0, t):
            return torch.tensor([0., 0.5, 1.], dtype=t.dtype)

        y = torchhybrid.odeint(f, y0, t_points, params, method='euler', options={'grid_constructor': grid_constructor})
        self.assertTrue(torch.allclose(y[-1], y0 * (1 - 0.35) ** 2))

    def test_deterministic(self):
        for method in FIXED_METHODS:
            with self.subTest(method=method):
                f, y0, t_points, _, params = construct_problem(dtype=torch.float32)
                y1 = torchhybrid.odeint(f, y0, t_points, params, method=method, options={'step_size': 0.01})
                y2 = torchhybrid.odeint(f, y0, t_points, params, method=method, options={'step_size': 0.01})
                self.assertTrue(torch.equal(y1, y2))

    def test_params_none(self):
        y0 = torch.tensor([1.0], dtype=torch.float64)
        t_points = torch.linspace(0, 1, 5, dtype=torch.float64)
        y = torchhybrid.odeint(lambda t, y, p: -y, y0, t_points, options={'step_size': 0.01})
        self.assertLess(max_abs(y[:, 0] - torch.exp(-t_points)), 1e-6)


class TestDivergence(unittest.TestCase):

    def test_non_finite(self):
        y0 = torch.tensor([1.0], dtype=torch.float64)
        t_points = torch.tensor([0., 2.], dtype=torch.float64)
        func = lambda t, y, p: y / (1 - t)
        with self.assertRaises(NumericalDivergenceError) as cm:
            torchhybrid.odeint(func, y0, t_points, method='euler', options={'step_size': 0.5})
        self.assertEqual(cm.exception.t, 1.5)
        self.assertIsNone(cm.exception.trajectory)

    def test_max_value(self):
        y0 = torch.tensor([1.0], dtype=torch.float64)
        t_points = torch.tensor([0., 2.], dtype=torch.float64)
        with self.assertRaises(NumericalDivergenceError):
            torchhybrid.odeint(lambda t, y, p: y ** 2, y0, t_points, method='euler',
                               options={'step_size': 0.01, 'max_value': 1e3})


class TestInputValidation(unittest.TestCase):

    def setUp(self):
        self.f, self.y0, self.t_points, _, self.params = construct_problem(ode='decay')

    def test_t(self):
        with self.assertRaises(ConfigurationError):
            torchhybrid.odeint(self.f, self.y0, self.t_points.flip(0), self.params)
        with self.assertRaises(ConfigurationError):
            torchhybrid.odeint(self.f, self.y0, torch.tensor([0, 1]), self.params)
        with self.assertRaises(ConfigurationError):
            torchhybrid.odeint(self.f, self.y0, self.t_points[:1], self.params)
        with self.assertRaises(ConfigurationError):
            torchhybrid.odeint(self.f, self.y0, self.t_points.clone().requires_grad_(True), self.params)

    def test_y0(self):
        with self.assertRaises(ConfigurationError):
            torchhybrid.odeint(self.f, torch.tensor([1, 2]), self.t_points, self.params)

    def test_options(self):
        with self.assertRaises(ConfigurationError):
            torchhybrid.odeint(self.f, self.y0, self.t_points, self.params, method='dopri5')
        with self.assertRaises(ConfigurationError):
            torchhybrid.odeint(self.f, self.y0, self.t_points, self.params, options={'step_size': 0.})
        with self.assertRaises(ConfigurationError):
            torchhybrid.odeint(self.f, self.y0, self.t_points, self.params,
                               options={'step_size': 0.1, 'grid_constructor': lambda f, y0, t: t})
        with self.assertRaises(ConfigurationError):
            torchhybrid.odeint(self.f, self.y0, self.t_points, self.params, sensitivity='backsolve')

    def test_unused_options_warn(self):
        with self.assertWarns(UserWarning):
            torchhybrid.odeint(self.f, self.y0, self.t_points, self.params, options={'step_size': 0.1, 'rtol': 1e-3})

    def test_dimension_mismatch(self):
        # State and parameter shapes that do not fit the dynamics are rejected before stepping.
        linear, y0, t_points, _, params = construct_problem(ode='linear')
        with self.assertRaises(ConfigurationError):
            torchhybrid.odeint(linear, y0[:3], t_points, params)
        with self.assertRaises(ConfigurationError):
            torchhybrid.odeint(linear, y0, t_points, params[:-1])
        with self.assertRaises(ConfigurationError):
            torchhybrid.odeint(lambda t, y, p: y.sum(), y0, t_points, params)


if __name__ == '__main__':
    unittest.main()
