import torch
from .errors import GradientUnavailableError
from .event_handling import DiscreteEvent


class FixedGridAdjointMethod(torch.autograd.Function):
    """Continuous adjoint for fixed grid ODE solves with preset events.

    The forward solve runs without building a graph. The backward pass integrates the state, its
    adjoint and the parameter adjoint backwards over the same grid, resetting the state to the
    recorded checkpoints and pulling the adjoint back through each event effect.
    """

    @staticmethod
    def forward(ctx, solver, time_grid, schedule, save_at, y0, params):
        ctx.solver = solver
        ctx.time_grid = time_grid
        ctx.schedule = schedule
        ctx.save_at = save_at

        with torch.no_grad():
            pre_event = {}
            solution = solver._integrate(time_grid, schedule, save_at, pre_event=pre_event)
        ctx.pre_event = pre_event
        ctx.save_for_backward(solution)
        return solution

    @staticmethod
    def backward(ctx, grad_solution):
        solver = ctx.solver
        time_grid = ctx.time_grid
        schedule = ctx.schedule
        pre_event = ctx.pre_event
        solution, = ctx.saved_tensors

        func = solver.base_func
        params = solver.params
        has_params = params is not None and params.requires_grad
        checkpoints = {index: j for j, index in enumerate(ctx.save_at)}

        shape = solution.shape[1:]
        ny = shape.numel()

        def augmented_dynamics(t, aug):
            # Dynamics of the original system augmented with the adjoint wrt y and an integrator wrt params.
            y = aug[:ny].view(shape)
            adj_y = aug[ny:2 * ny].view(shape)

            with torch.enable_grad():
                y = y.detach().requires_grad_(True)
                p = params.detach().requires_grad_(True) if has_params else params
                func_eval = func(t, y, p)
                inputs = (y, p) if has_params else (y,)
                vjps = torch.autograd.grad(func_eval, inputs, -adj_y, allow_unused=True)

            # autograd.grad returns None if no gradient, set to zero.
            out = [func_eval.reshape(-1), _or_zeros(vjps[0], y).reshape(-1)]
            if has_params:
                out.append(_or_zeros(vjps[1], p).reshape(-1))
            return torch.cat(out)

        with torch.no_grad():
            y = solution[-1]
            adj_y = torch.zeros_like(y)
            adj_params = torch.zeros_like(params) if has_params else None

            for i in range(len(time_grid) - 1, -1, -1):
                if i in checkpoints:
                    # Use our forward-pass estimate of the state and add any gradient wrt it.
                    j = checkpoints[i]
                    y = solution[j]
                    adj_y = adj_y + grad_solution[j]
                if i in pre_event:
                    y = pre_event[i]
                    adj_y, adj_p = _effect_vjp(schedule, i, y, params, adj_y, has_params)
                    if has_params:
                        adj_params = adj_params + adj_p
                if i == 0:
                    break

                aug = [y.reshape(-1), adj_y.reshape(-1)]
                if has_params:
                    aug.append(adj_params.reshape(-1))
                aug = torch.cat(aug)

                # Run the augmented system backwards over one step.
                t1, t0 = time_grid[i], time_grid[i - 1]
                aug = aug + solver._step_func(augmented_dynamics, t1, t0 - t1, t0, aug)

                y = aug[:ny].view(shape)
                adj_y = aug[ny:2 * ny].view(shape)
                if has_params:
                    adj_params = aug[2 * ny:].view_as(params)

        return None, None, None, None, adj_y, adj_params


def _or_zeros(grad, like):
    return torch.zeros_like(like) if grad is None else grad


def _effect_vjp(schedule, index, y, params, adj_y, has_params):
    with torch.enable_grad():
        y = y.detach().requires_grad_(True)
        p = params.detach().requires_grad_(True) if has_params else params
        y_after = schedule.apply_preset(index, y, p)
        if not y_after.requires_grad:
            return torch.zeros_like(y), torch.zeros_like(p) if has_params else None
        inputs = (y, p) if has_params else (y,)
        vjps = torch.autograd.grad(y_after, inputs, adj_y, allow_unused=True)
    adj_p = _or_zeros(vjps[1], p) if has_params else None
    return _or_zeros(vjps[0], y), adj_p


def adjoint_integrate(solver, t, events):
    """Integrate with `solver`, differentiating by the continuous adjoint instead of through every step."""
    for event in events:
        if isinstance(event, DiscreteEvent):
            raise GradientUnavailableError('adjoint sensitivity does not support condition-triggered events; '
                                           'use sensitivity="autograd"')

    time_grid, schedule, save_at = solver._prepare(t, events)
    if schedule.simultaneous():
        raise GradientUnavailableError('adjoint sensitivity requires at most one event per instant, but several '
                                       'preset events trigger at the same time')

    return FixedGridAdjointMethod.apply(solver, time_grid, schedule, save_at, solver.y0, solver.params)
