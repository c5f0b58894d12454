import torch
from .errors import ConfigurationError
from .misc import _align


class PresetTimeEvent(object):
    """Apply `affect(t, y, params)` exactly at each of `times`.

    The integrator always places a step boundary on every trigger time, so the effect is applied at
    the time itself rather than near it. The effect must return the new state; it must not modify
    `y` in place.
    """

    def __init__(self, times, affect):
        times = torch.as_tensor(times).reshape(-1)
        if not torch.is_floating_point(times):
            times = times.to(torch.get_default_dtype())
        if len(times) == 0:
            raise ConfigurationError('PresetTimeEvent needs at least one trigger time')
        if not (times[1:] > times[:-1]).all():
            raise ConfigurationError('PresetTimeEvent trigger times must be strictly increasing, '
                                     'got {}'.format(times.tolist()))
        self.times = times
        self.affect = affect

    def __repr__(self):
        return 'PresetTimeEvent(times={}, affect={})'.format(self.times.tolist(), getattr(self.affect, '__name__', self.affect))


class DiscreteEvent(object):
    """Apply `affect(t, y, params)` after every step at which `condition(t, y, params)` holds.

    The condition is evaluated on the state at the end of each step (no interpolation) and must be
    free of side effects.
    """

    def __init__(self, condition, affect):
        self.condition = condition
        self.affect = affect

    def __repr__(self):
        return 'DiscreteEvent(condition={}, affect={})'.format(getattr(self.condition, '__name__', self.condition),
                                                              getattr(self.affect, '__name__', self.affect))


def always(t, y, params):
    return True


def normalize(t, y, params):
    """Rescale the state to unit Euclidean norm."""
    return y / torch.linalg.vector_norm(y)


def _check_events(events):
    if isinstance(events, (PresetTimeEvent, DiscreteEvent)):
        events = (events,)
    events = tuple(events)
    for event in events:
        if not isinstance(event, (PresetTimeEvent, DiscreteEvent)):
            raise ConfigurationError('events must be PresetTimeEvent or DiscreteEvent instances, '
                                     'got {}'.format(type(event).__name__))
    return events


def preset_times(events, t):
    """All trigger times of the preset events, checked against the span of `t`."""
    stops = []
    for event in events:
        if isinstance(event, PresetTimeEvent):
            times = event.times.to(t)
            if times[0] < t[0] or times[-1] > t[-1]:
                raise ConfigurationError('trigger times {} fall outside the integration span [{:.6g}, {:.6g}]'.format(
                    times.tolist(), float(t[0]), float(t[-1])))
            stops.append(times)
    if len(stops) == 0:
        return t.new_empty(0)
    return torch.cat(stops)


class EventSchedule(object):
    """Per-solve dispatcher mapping each preset trigger time to the grid index it fires at."""

    def __init__(self, events, time_grid):
        self.preset = []
        self.conditional = []
        for event in events:
            if isinstance(event, PresetTimeEvent):
                fire_at = _align('PresetTimeEvent times', time_grid, event.times.to(time_grid))
                self.preset.append((event, frozenset(fire_at)))
            else:
                self.conditional.append(event)
        self.time_grid = time_grid

    def fires_at(self, index):
        """Preset events that trigger at grid `index`, in the order they were given."""
        return [event for event, fire_at in self.preset if index in fire_at]

    def simultaneous(self):
        counts = {}
        for _, fire_at in self.preset:
            for index in fire_at:
                counts[index] = counts.get(index, 0) + 1
        return any(count > 1 for count in counts.values())

    def apply_preset(self, index, y, params):
        t = self.time_grid[index]
        for event in self.fires_at(index):
            y = event.affect(t, y, params)
        return y

    def apply_conditional(self, index, y, params):
        t = self.time_grid[index]
        for event in self.conditional:
            if event.condition(t, y, params):
                y = event.affect(t, y, params)
        return y
