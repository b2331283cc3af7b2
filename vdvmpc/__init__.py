"""Model predictive control of a Van de Vusse CSTR."""

from .controller import FAILED_INTEGRATION_COST, MPCCost, solve_mpc
from .errors import ConfigurationError, ControlLoopError, IntegrationFailure
from .integration import integrate, integrate_final
from .model import ProcessState, VanDeVusseCSTR, control_signal
from .parameters import ControllerSettings, ReactorParameters, SimulationSettings
from .simulation import ControlLoop, SamplingRecord, replay_plant, run_simulation

__all__ = [
    "FAILED_INTEGRATION_COST",
    "MPCCost",
    "solve_mpc",
    "ConfigurationError",
    "ControlLoopError",
    "IntegrationFailure",
    "integrate",
    "integrate_final",
    "ProcessState",
    "VanDeVusseCSTR",
    "control_signal",
    "ControllerSettings",
    "ReactorParameters",
    "SimulationSettings",
    "ControlLoop",
    "SamplingRecord",
    "replay_plant",
    "run_simulation",
]
