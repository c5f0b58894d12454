import concurrent.futures
import logging
import torch
from .errors import ConfigurationError, NumericalDivergenceError

logger = logging.getLogger(__name__)


def ensemble_solve(trajectory_fn, trajectories, *, parallel=False, max_workers=None, retries=0):
    """Solve `trajectories` independent problems and batch their solutions.

    Args:
        trajectory_fn: callable `trajectory_fn(i)` returning the Solution of trajectory `i`, a Tensor
            of shape (len(t), *state_shape). It must only read shared data; everything that differs
            per trajectory (initial state, noise) should be prepared before the call so that slot `i`
            always corresponds to the same inputs.
        trajectories: number of trajectories.
        parallel: run trajectories on a thread pool instead of one after another.
        max_workers: size of the thread pool, defaults to `trajectories`.
        retries: number of times a diverging trajectory is re-run before giving up. Only useful if
            `trajectory_fn` samples fresh noise on each call. Off by default, since re-running
            changes which noise paths contribute to the result.

    Returns:
        Tensor of shape (*state_shape, len(t), trajectories).

    Raises:
        NumericalDivergenceError: for the lowest-index trajectory that failed, with its index in
            `trajectory`. Failures of other trajectories are logged.
    """
    if not isinstance(trajectories, int) or trajectories <= 0:
        raise ConfigurationError('trajectories must be a positive integer, got {}'.format(trajectories))
    if retries < 0:
        raise ConfigurationError('retries must be non-negative, got {}'.format(retries))

    def run(i):
        for attempt in range(retries + 1):
            try:
                return trajectory_fn(i)
            except NumericalDivergenceError as e:
                if attempt == retries:
                    raise NumericalDivergenceError(str(e), t=e.t, trajectory=i) from e
                logger.warning('trajectory %d diverged (%s), retrying with fresh noise (%d/%d)',
                               i, e, attempt + 1, retries)

    if parallel:
        with concurrent.futures.ThreadPoolExecutor(max_workers=max_workers or trajectories) as pool:
            futures = [pool.submit(run, i) for i in range(trajectories)]
            concurrent.futures.wait(futures)
        results, failures = [], []
        for future in futures:
            error = future.exception()
            if error is None:
                results.append(future.result())
            elif isinstance(error, NumericalDivergenceError):
                failures.append(error)
            else:
                raise error
        if failures:
            for error in failures[1:]:
                logger.error('%s', error)
            raise failures[0]
    else:
        results = [run(i) for i in range(trajectories)]

    return _gather(results)


def _gather(solutions):
    shape = solutions[0].shape
    for i, solution in enumerate(solutions):
        if solution.shape != shape:
            raise ConfigurationError('trajectory {} returned shape {}, expected {}'.format(
                i, tuple(solution.shape), tuple(shape)))
    # (len(t), *state_shape, N) -> (*state_shape, len(t), N)
    return torch.stack(solutions, dim=-1).movedim(0, -2)
