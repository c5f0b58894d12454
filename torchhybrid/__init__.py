from ._impl import odeint
from ._impl import sdeint
from ._impl import ensemble_solve
from ._impl import PresetTimeEvent, DiscreteEvent, always, normalize
from ._impl import NoiseGrid, brownian_noise, uniform_grid
from ._impl import ParameterLayout, ParameterVector
from ._impl import mlp, destructure
from ._impl import SimulationConfig, DosingConfig, check_config
from ._impl import train, TrainingResult
from ._impl import ConfigurationError, GradientUnavailableError, NumericalDivergenceError, TrainingError
from . import dosing
from . import qubit
__version__ = "0.1.0"
