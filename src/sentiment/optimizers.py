"""
Optimizers

Builds the torch optimizer, the learning-rate decay schedule and the
gradient clipping step from an OptimizerConfig.
"""

from typing import Iterable, Optional

import torch
import torch.optim as optim

from .config import OptimizerConfig


def build_optimizer(parameters: Iterable[torch.nn.Parameter],
                    config: OptimizerConfig) -> optim.Optimizer:
    """
    Create the optimizer named in the config.

    L2 regularization is applied as weight decay.
    """
    config.validate()
    weight_decay = config.regularization

    if config.name == 'sgd':
        return optim.SGD(parameters,
                         lr=config.resolved('learning_rate'),
                         momentum=config.resolved('momentum') or 0.0,
                         weight_decay=weight_decay)
    if config.name == 'adagrad':
        return optim.Adagrad(parameters,
                             lr=config.resolved('learning_rate'),
                             eps=config.resolved('epsilon'),
                             weight_decay=weight_decay)
    if config.name == 'adadelta':
        return optim.Adadelta(parameters,
                              lr=config.resolved('learning_rate'),
                              rho=config.resolved('rho'),
                              eps=config.resolved('epsilon'),
                              weight_decay=weight_decay)
    if config.name == 'rmsprop':
        return optim.RMSprop(parameters,
                             lr=config.resolved('learning_rate'),
                             alpha=config.resolved('rho'),
                             eps=config.resolved('epsilon'),
                             weight_decay=weight_decay)
    # adam
    return optim.Adam(parameters,
                      lr=config.resolved('alpha'),
                      betas=(config.resolved('beta1'), config.resolved('beta2')),
                      eps=config.resolved('epsilon'),
                      weight_decay=weight_decay)


def build_scheduler(optimizer: optim.Optimizer,
                    config: OptimizerConfig) -> Optional[optim.lr_scheduler.LambdaLR]:
    """
    Per-epoch learning-rate decay lr = lr0 / (1 + eta_decay * epoch).

    Only plain/momentum SGD decays; other optimizers adapt their own steps.
    """
    if config.name != 'sgd' or config.eta_decay == 0:
        return None
    eta_decay = config.eta_decay
    return optim.lr_scheduler.LambdaLR(optimizer, lambda epoch: 1.0 / (1.0 + eta_decay * epoch))


def clip_gradients(parameters: Iterable[torch.nn.Parameter], config: OptimizerConfig):
    """Rescale gradients to the configured global norm (unless disabled)."""
    if config.clipping:
        torch.nn.utils.clip_grad_norm_(parameters, max_norm=config.clip_threshold)
