#!/usr/bin/env python3
import argparse
import logging

import torch

import torchhybrid
from torchhybrid.qubit import PHYSICAL_BLOCKS, QubitControl

FORMAT = "[%(filename)s:%(lineno)s - %(funcName)5s() ] %(message)s"

parser = argparse.ArgumentParser('Train a feedback controller for a continuously monitored qubit.')
parser.add_argument('--method', type=str, choices=['euler_maruyama', 'euler_heun'], default='euler_maruyama')
parser.add_argument('--step_size', type=float, default=0.001)
parser.add_argument('--n_intervals', type=int, default=20)
parser.add_argument('--numtraj', type=int, default=16)
parser.add_argument('--numtrajplot', type=int, default=32)
parser.add_argument('--hidden', type=int, default=256)
parser.add_argument('--niters', type=int, default=100)
parser.add_argument('--lr', type=float, default=0.01)
parser.add_argument('--test_freq', type=int, default=10)
parser.add_argument('--train_physics', action='store_true', help='also train detuning, omega_max and decay_rate')
parser.add_argument('--parallel', action='store_true', help='solve trajectories on a thread pool')
parser.add_argument('--float64', action='store_true')
parser.add_argument('--seed', type=int, default=0)
parser.add_argument('--save', type=str, default=None, help='save the trained parameters to this .npz file')
args = parser.parse_args()


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO, format=FORMAT)
    logger = logging.getLogger()
    torch.manual_seed(args.seed)

    config = torchhybrid.check_config(torchhybrid.SimulationConfig(
        step_size=args.step_size, n_intervals=args.n_intervals, numtraj=args.numtraj, numtrajplot=args.numtrajplot,
        dtype=torch.float64 if args.float64 else torch.float32))
    model = QubitControl(config, hidden=args.hidden, method=args.method)
    params = model.initial_parameters()

    def evaluate(p):
        # A fixed independent ensemble, so that evaluations are comparable across iterations.
        fid = model.mean_fidelity(p.data, generator=torch.Generator().manual_seed(args.seed + 1),
                                  parallel=args.parallel)
        return fid.mean().item(), fid[-1].item()

    def callback(itr, p, loss):
        if itr % args.test_freq == 0:
            mean_fid, final_fid = evaluate(p)
            logger.info('Iter {:04d} | mean fidelity {:.4f} | final fidelity {:.4f}'.format(
                itr, mean_fid, final_fid))

    def loss_fn(p):
        return model.loss(p, parallel=args.parallel)

    logger.info('Untrained controller: mean fidelity {:.4f} | final fidelity {:.4f}'.format(*evaluate(params)))
    result = torchhybrid.train(loss_fn, params, lr=args.lr, niters=args.niters, callback=callback,
                               frozen=() if args.train_physics else PHYSICAL_BLOCKS, log_every=args.test_freq)
    logger.info('Trained controller: mean fidelity {:.4f} | final fidelity {:.4f}'.format(*evaluate(result.params)))

    if args.save is not None:
        result.params.save(args.save)
        logger.info('Saved parameters to {}'.format(args.save))
