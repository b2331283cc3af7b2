from dataclasses import dataclass, field
from typing import Union

import numpy as np

from .errors import ConfigurationError

# --- Kinetic parameters (Van de Vusse: A -> B -> C, 2A -> D) ---
K1 = 3.575e8        # 1/s
K2 = 3.575e8        # 1/s
K3 = 2.5119e3       # m3/(mol s)
E1 = 8.2101e4       # J/mol
E2 = 8.2101e4       # J/mol
E3 = 7.1172e4       # J/mol
H1 = 4.2e3          # J/mol
H2 = -11e3          # J/mol
H3 = -41.85e3       # J/mol
R_GAS = 8.3145      # J/(mol K)

# --- Reactor parameters ---
RHO = 0.9342e3      # kg/m3
CP = 3.01e3         # J/(kg K)
V = 10e-3           # m3
TAU = 80            # Residence time (s)
T_FEED = 403.15     # Feed temperature (K)
CA_FEED = 1000      # Feed concentration of A (mol/m3)
UA = 0.215 * 1120   # Heat transfer coefficient times area (W/K)

# --- MPC parameters ---
HP = 1000           # Prediction horizon (s)
NT = 50             # Time sampling points over the prediction horizon
P_SP = 1            # Set point violation penalty
P_U = 1e6           # Saturation penalty
P_DU = 1e6          # Delta u penalty
LB = 273.15         # Lower bound to the jacket temperature
UB = 373.15         # Upper bound to the jacket temperature
DU_MAX = 10         # Max Delta u
SHARPNESS = 20      # Regularization parameter of the control signal
TD = (0, 10, 20, 40)  # Control anchor times (their number is the control horizon)
SETPOINT = 380      # Reactor temperature set point (K)
OPTIMIZATION_METHOD = 'Nelder-Mead'  # Other options: 'Powell', 'COBYLA'
TOL_FUN = 1e-8
TOL_X = 1e-8
MAX_ITER = 100

# --- Simulation parameters ---
TA = 100                        # Sampling time (s)
SPAN = 3 * HP                   # Simulated time (s)
Y0 = (0.0, 0.0, 300.0)          # Initial Ca, Cb, T
U0 = (298.15, 0.0, 0.0, 0.0)    # Initial control horizon (must have len(TD) values)
DISTURBANCE_FRACTION = 0.5      # Fraction of the samples after which the feed temperature steps
T_FEED_DISTURBED = 420          # Feed temperature after the disturbance (K)
ATOL = 1e-4
RTOL = 1e-3
ODE_SOLVER = 'BDF'              # Other options: 'Radau', 'LSODA'

DERIVATIVE_FREE_METHODS = ('Nelder-Mead', 'Powell', 'COBYLA')
STIFF_METHODS = ('BDF', 'Radau', 'LSODA')


@dataclass(frozen=True)
class ReactorParameters:
    """Physical and chemical constants of the Van de Vusse CSTR.

    ``T_feed`` is only the nominal feed temperature; the value in force
    during a run lives in :class:`vdvmpc.model.ProcessState`.
    """

    k1: float = K1
    k2: float = K2
    k3: float = K3
    E1: float = E1
    E2: float = E2
    E3: float = E3
    H1: float = H1
    H2: float = H2
    H3: float = H3
    R: float = R_GAS
    rho: float = RHO
    cp: float = CP
    V: float = V
    tau: float = TAU
    T_feed: float = T_FEED
    Ca_feed: float = CA_FEED
    UA: float = UA

    def validate(self):
        for name in ('rho', 'cp', 'V', 'tau', 'R'):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f'{name} must be positive, got {getattr(self, name)}')


@dataclass(frozen=True)
class ControllerSettings:
    """Tuning of the predictive controller.

    Attributes:
        Hp: Prediction horizon length.
        nt: Number of equally spaced prediction points on ``[0, Hp]``.
        P_sp, P_u, P_du: Weights of the tracking, saturation and move penalties.
        lb, ub: Bounds of the cumulative jacket-temperature level.
        du_max: Largest admissible control move.
        p: Sharpness of the smooth step used by the control signal.
        td: Anchor times of the control moves, ``td[0] == 0``.
        setpoint: Flat set point or an array of ``nt`` values.
        method: Derivative-free ``scipy.optimize.minimize`` method.
        tol_fun, tol_x, maxiter: Optimizer stopping rules.
    """

    Hp: float = HP
    nt: int = NT
    P_sp: float = P_SP
    P_u: float = P_U
    P_du: float = P_DU
    lb: float = LB
    ub: float = UB
    du_max: float = DU_MAX
    p: float = SHARPNESS
    td: tuple = TD
    setpoint: Union[float, tuple] = SETPOINT
    method: str = OPTIMIZATION_METHOD
    tol_fun: float = TOL_FUN
    tol_x: float = TOL_X
    maxiter: int = MAX_ITER

    @property
    def horizon(self) -> int:
        return len(self.td)

    def setpoint_trajectory(self) -> np.ndarray:
        """Set point sampled on the prediction grid."""
        if np.isscalar(self.setpoint):
            return np.full(self.nt, float(self.setpoint))
        return np.asarray(self.setpoint, dtype=float)

    def validate(self):
        if self.lb >= self.ub:
            raise ConfigurationError(f'lb ({self.lb}) must be smaller than ub ({self.ub})')
        if len(self.td) == 0:
            raise ConfigurationError('td needs at least one anchor time')
        td = np.asarray(self.td, dtype=float)
        if td[0] != 0:
            raise ConfigurationError('td[0] must be 0')
        if np.any(np.diff(td) <= 0):
            raise ConfigurationError('td must be strictly increasing')
        if self.Hp <= 0:
            raise ConfigurationError(f'Hp must be positive, got {self.Hp}')
        if self.nt < 2:
            raise ConfigurationError(f'nt must be at least 2, got {self.nt}')
        if self.p <= 0:
            raise ConfigurationError(f'p must be positive, got {self.p}')
        if self.du_max <= 0:
            raise ConfigurationError(f'du_max must be positive, got {self.du_max}')
        if min(self.P_sp, self.P_u, self.P_du) < 0:
            raise ConfigurationError('penalty weights must be non-negative')
        if not np.isscalar(self.setpoint) and len(self.setpoint) != self.nt:
            raise ConfigurationError(f'setpoint trajectory needs {self.nt} values, got {len(self.setpoint)}')
        if self.method not in DERIVATIVE_FREE_METHODS:
            raise ConfigurationError(f'method must be one of {DERIVATIVE_FREE_METHODS}, got {self.method!r}')
        if self.tol_fun <= 0 or self.tol_x <= 0 or self.maxiter <= 0:
            raise ConfigurationError('optimizer tolerances and maxiter must be positive')


@dataclass(frozen=True)
class SimulationSettings:
    """Closed-loop run: sampling, span, initial condition and disturbance."""

    Ta: float = TA
    span: float = SPAN
    y0: tuple = Y0
    u0: tuple = U0
    disturbance_fraction: float = DISTURBANCE_FRACTION
    T_feed_disturbed: float = T_FEED_DISTURBED
    atol: float = ATOL
    rtol: float = RTOL
    ode_solver: str = ODE_SOLVER
    disturbance: bool = field(default=True)

    @property
    def nsamples(self) -> int:
        return int(np.fix(self.span / self.Ta))

    @property
    def disturbance_index(self) -> int:
        """Loop iteration (1-based) after which the feed temperature steps."""
        return int(np.fix(self.nsamples * self.disturbance_fraction))

    def validate(self, controller: ControllerSettings):
        if self.Ta <= 0:
            raise ConfigurationError(f'Ta must be positive, got {self.Ta}')
        if self.nsamples < 2:
            raise ConfigurationError(f'span ({self.span}) must cover at least two sampling intervals')
        if len(self.y0) != 3:
            raise ConfigurationError(f'y0 must hold (Ca, Cb, T), got {self.y0}')
        if len(self.u0) != controller.horizon:
            raise ConfigurationError(f'u0 must have {controller.horizon} values, got {len(self.u0)}')
        if not 0 <= self.disturbance_fraction <= 1:
            raise ConfigurationError('disturbance_fraction must lie in [0, 1]')
        if self.atol <= 0 or self.rtol <= 0:
            raise ConfigurationError('integrator tolerances must be positive')
        if self.ode_solver not in STIFF_METHODS:
            raise ConfigurationError(f'ode_solver must be one of {STIFF_METHODS}, got {self.ode_solver!r}')
