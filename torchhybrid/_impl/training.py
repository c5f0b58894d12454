import collections
import logging
import torch
from .errors import ConfigurationError, NumericalDivergenceError, TrainingError
from .parameters import ParameterVector

logger = logging.getLogger(__name__)


TrainingResult = collections.namedtuple('TrainingResult', 'params, losses, iterations, halted')
# Outcome of `train`.
#
# Attributes:
#     params: ParameterVector holding the final parameters.
#     losses: list of floats, the loss at every completed iteration.
#     iterations: number of iterations run.
#     halted: True if the observer or the loss threshold stopped training before the budget ran out.


def train(loss_fn, params, *, lr=0.001, niters=100, callback=None, frozen=(), loss_thr=None, log_every=1):
    """Minimise `loss_fn` over a parameter vector with Adam.

    Args:
        loss_fn: callable mapping a flat parameter Tensor to a scalar loss Tensor.
        params: initial ParameterVector. It is not modified.
        lr: Adam learning rate.
        niters: iteration budget.
        callback: optional observer `callback(iteration, params, loss)` receiving a snapshot of the
            parameters the loss was evaluated at and the loss as a float. Returning True stops
            training. Exceptions raised by the observer are logged and otherwise ignored.
        frozen: names of parameter blocks that keep their initial values.
        loss_thr: optional threshold; training stops once the loss falls to or below it.
        log_every: log the loss every `log_every` iterations.

    Returns:
        TrainingResult.

    Raises:
        TrainingError: if `loss_fn` or the backward pass raises any exception, or the loss is not
            finite. The failing iteration is available as `iteration` and the cause is chained.
    """
    if not isinstance(params, ParameterVector):
        raise ConfigurationError('params must be a ParameterVector, got {}'.format(type(params).__name__))
    if not lr > 0:
        raise ConfigurationError('lr must be positive, got {}'.format(lr))
    if not isinstance(niters, int) or niters <= 0:
        raise ConfigurationError('niters must be a positive integer, got {}'.format(niters))

    p = params.data.detach().clone().requires_grad_(True)
    frozen_mask = params.layout.mask(frozen, device=p.device) if frozen else None
    optimizer = torch.optim.Adam([p], lr=lr)

    losses = []
    halted = False
    itr = 0
    for itr in range(1, niters + 1):
        optimizer.zero_grad()
        try:
            loss = loss_fn(p)
            if not torch.isfinite(loss):
                raise NumericalDivergenceError('loss is {}'.format(loss.item()))
            loss.backward()
        except Exception as e:
            logger.error('Iter {:04d} | failed: {}'.format(itr, e))
            raise TrainingError('training failed at iteration {}: {}'.format(itr, e), iteration=itr) from e

        if frozen_mask is not None:
            p.grad[frozen_mask] = 0

        loss_value = loss.item()
        losses.append(loss_value)
        if itr % log_every == 0:
            logger.info('Iter {:04d} | Loss {:.6f}'.format(itr, loss_value))

        if callback is not None and _notify(callback, itr, params.with_data(p.detach().clone()), loss_value):
            logger.info('Iter {:04d} | stopped by callback'.format(itr))
            halted = True
            break
        if loss_thr is not None and loss_value <= loss_thr:
            logger.info('Iter {:04d} | loss {:.6f} <= loss_thr = {}, quitting'.format(itr, loss_value, loss_thr))
            halted = True
            break

        optimizer.step()

    return TrainingResult(params.with_data(p.detach().clone()), losses, itr, halted)


def _notify(callback, itr, params, loss_value):
    try:
        return bool(callback(itr, params, loss_value))
    except Exception:
        logger.exception('Iter {:04d} | callback failed, continuing'.format(itr))
        return False
