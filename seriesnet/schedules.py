"""Learning rate schedules, applied by the trainer at the end of every epoch."""
from __future__ import annotations


class LearnRateSchedule:
    def update(self, learn_rate, epoch: int):
        raise NotImplementedError


class ConstantSchedule(LearnRateSchedule):
    """Keeps the learning rate unchanged."""
    def update(self, learn_rate, epoch):
        return learn_rate


class PiecewiseSchedule(LearnRateSchedule):
    """Multiply the learning rate by ``drop_factor`` every ``drop_period`` epochs."""
    def __init__(self, drop_factor: float = 0.1, drop_period: int = 10):
        self.drop_factor = drop_factor
        self.drop_period = drop_period

    def update(self, learn_rate, epoch):
        if epoch % self.drop_period == 0:
            return learn_rate * self.drop_factor
        return learn_rate


NAME2SCHEDULE = {'none': ConstantSchedule, 'piecewise': PiecewiseSchedule}


def create_schedule(method: str = 'none', **settings) -> LearnRateSchedule:
    if method not in NAME2SCHEDULE:
        raise ValueError(f"Unknown learn rate schedule '{method}'. Available: {list(NAME2SCHEDULE)}")
    if method == 'none':
        return ConstantSchedule()
    return NAME2SCHEDULE[method](**settings)
