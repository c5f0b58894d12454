from .odeint import odeint, sdeint
from .ensemble import ensemble_solve
from .event_handling import PresetTimeEvent, DiscreteEvent, always, normalize
from .noise import NoiseGrid, brownian_noise, uniform_grid
from .parameters import ParameterLayout, ParameterVector
from .dynamics import mlp, destructure
from .config import SimulationConfig, DosingConfig, check_config
from .training import train, TrainingResult
from .errors import ConfigurationError, GradientUnavailableError, NumericalDivergenceError, TrainingError
