#!/usr/bin/env python3
import argparse
import logging

import torch

import torchhybrid
from torchhybrid.dosing import DosingModel, reference_trajectory

FORMAT = "[%(filename)s:%(lineno)s - %(funcName)5s() ] %(message)s"

parser = argparse.ArgumentParser('Learn a correction to a dosing model from a reference trajectory.')
parser.add_argument('--method', type=str, choices=['euler', 'heun', 'midpoint', 'rk4', 'classic_rk4'], default='rk4')
parser.add_argument('--sensitivity', type=str, choices=['autograd', 'adjoint'], default='autograd')
parser.add_argument('--step_size', type=float, default=0.01)
parser.add_argument('--data_size', type=int, default=100)
parser.add_argument('--hidden', type=int, default=50)
parser.add_argument('--niters', type=int, default=1000)
parser.add_argument('--lr', type=float, default=0.01)
parser.add_argument('--test_freq', type=int, default=20)
parser.add_argument('--seed', type=int, default=0)
parser.add_argument('--save', type=str, default=None, help='save the trained parameters to this .npz file')
args = parser.parse_args()


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO, format=FORMAT)
    logger = logging.getLogger()
    torch.manual_seed(args.seed)

    config = torchhybrid.check_config(torchhybrid.DosingConfig(datasize=args.data_size, step_size=args.step_size,
                                                               hidden=args.hidden))
    model = DosingModel(config)
    target = reference_trajectory(config, method=args.method)

    def loss_fn(p):
        return model.loss(p, target, method=args.method, sensitivity=args.sensitivity)

    def callback(itr, params, loss):
        if itr % args.test_freq == 0:
            logger.info('Iter {:04d} | decay rate {:.4f}'.format(itr, params.block('decay').item()))

    result = torchhybrid.train(loss_fn, model.initial_parameters(), lr=args.lr, niters=args.niters,
                               callback=callback, log_every=args.test_freq)
    logger.info('Training finished after {} iterations: loss {:.6f} -> {:.6f}'.format(
        result.iterations, result.losses[0], result.losses[-1]))

    if args.save is not None:
        result.params.save(args.save)
        logger.info('Saved parameters to {}'.format(args.save))
