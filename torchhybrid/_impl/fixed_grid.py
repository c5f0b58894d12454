from .solvers import FixedGridODESolver, FixedGridSDESolver

_one_third = 1 / 3
_two_thirds = 2 / 3
_one_sixth = 1 / 6


class Euler(FixedGridODESolver):
    order = 1

    def _step_func(self, func, t0, dt, t1, y0):
        return dt * func(t0, y0)


class Heun(FixedGridODESolver):
    order = 2

    def _step_func(self, func, t0, dt, t1, y0):
        half_dt = 0.5 * dt
        f0 = func(t0, y0)
        f1 = func(t1, y0 + dt * f0)
        return half_dt * (f0 + f1)


class Midpoint(FixedGridODESolver):
    order = 2

    def _step_func(self, func, t0, dt, t1, y0):
        half_dt = 0.5 * dt
        f0 = func(t0, y0)
        y_mid = y0 + f0 * half_dt
        return dt * func(t0 + half_dt, y_mid)


class RK4(FixedGridODESolver):
    """Fourth order Runge-Kutta with the 3/8 rule, which is slightly more accurate than the classic scheme."""
    order = 4

    def _step_func(self, func, t0, dt, t1, y0):
        k1 = func(t0, y0)
        k2 = func(t0 + dt * _one_third, y0 + dt * k1 * _one_third)
        k3 = func(t0 + dt * _two_thirds, y0 + dt * (k2 - k1 * _one_third))
        k4 = func(t1, y0 + dt * (k1 - k2 + k3))
        return (k1 + 3 * (k2 + k3) + k4) * dt * 0.125


class ClassicRK4(FixedGridODESolver):
    order = 4

    def _step_func(self, func, t0, dt, t1, y0):
        half_dt = 0.5 * dt
        k1 = func(t0, y0)
        k2 = func(t0 + half_dt, y0 + half_dt * k1)
        k3 = func(t0 + half_dt, y0 + half_dt * k2)
        k4 = func(t1, y0 + dt * k3)
        return (k1 + 2 * (k2 + k3) + k4) * dt * _one_sixth


class EulerMaruyama(FixedGridSDESolver):
    """Ito Euler-Maruyama: strong order 1/2, weak order 1."""
    order = 0.5

    def _step_func(self, drift, diffusion, t0, dt, t1, y0, dW):
        return dt * drift(t0, y0) + diffusion(t0, y0) * dW


class EulerHeun(FixedGridSDESolver):
    """Stratonovich Euler-Heun; the predictor only corrects the diffusion term."""
    order = 0.5

    def _step_func(self, drift, diffusion, t0, dt, t1, y0, dW):
        f0 = drift(t0, y0)
        g0 = diffusion(t0, y0)
        y_pred = y0 + g0 * dW
        g1 = diffusion(t1, y_pred)
        return dt * f0 + 0.5 * (g0 + g1) * dW
