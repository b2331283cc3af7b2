import numpy as np
from scipy.integrate import trapezoid
from scipy.optimize import minimize
from tqdm import tqdm

from .errors import IntegrationFailure
from .integration import integrate
from .parameters import ATOL, ODE_SOLVER, RTOL, ControllerSettings

# Cost returned when the predictive model cannot be integrated
FAILED_INTEGRATION_COST = 1e20


# --- Cost Function --- #
class MPCCost:
    """Soft-constrained tracking cost of a candidate control horizon.

    The predictive model is integrated from ``ynow`` over ``nt`` points on
    ``[0, Hp]``. The cost is ``P_sp*f1 + P_u*f2 + P_du*f3`` where ``f1`` is
    the integrated squared tracking error of the reactor temperature,
    ``f2`` the hinge violation of ``[lb, ub]`` by the cumulative levels
    ``cumsum(u)`` and ``f3`` the hinge violation of ``du_max`` by the moves
    ``[u_prev - u[0], u[1], ..., u[-1]]``.
    """

    def __init__(self, model, settings: ControllerSettings, atol=ATOL, rtol=RTOL, ode_solver=ODE_SOLVER):
        self.model = model
        self.settings = settings
        self.atol = atol
        self.rtol = rtol
        self.ode_solver = ode_solver
        self.t_pred = np.linspace(0, settings.Hp, settings.nt)
        self.T_sp = settings.setpoint_trajectory()

    def predict(self, u, ynow):
        return integrate(
            self.model, ynow, (0, self.settings.Hp), u,
            t_eval=self.t_pred, atol=self.atol, rtol=self.rtol, method=self.ode_solver,
        )

    def tracking_error(self, u, ynow):
        t, y = self.predict(u, ynow)
        return trapezoid((y[:, 2] - self.T_sp) ** 2, t)

    def bound_violation(self, u):
        cs = np.cumsum(u)
        return max(0.0, cs.max() - self.settings.ub) + max(0.0, self.settings.lb - cs.min())

    def move_violation(self, u, u_prev):
        moves = np.concatenate(([u_prev - u[0]], u[1:]))
        return max(0.0, np.abs(moves).max() - self.settings.du_max)

    def terms(self, u, ynow, u_prev):
        u = np.asarray(u, dtype=float)
        return (
            self.tracking_error(u, ynow),
            self.bound_violation(u),
            self.move_violation(u, u_prev),
        )

    def __call__(self, u, ynow, u_prev):
        s = self.settings
        try:
            f1, f2, f3 = self.terms(u, ynow, u_prev)
        except IntegrationFailure:
            return FAILED_INTEGRATION_COST
        f = s.P_sp * f1 + s.P_u * f2 + s.P_du * f3
        if not np.isfinite(f):
            return FAILED_INTEGRATION_COST
        return f


def optimizer_options(settings: ControllerSettings):
    """Stopping rules of ``settings.method`` in scipy's option names."""
    if settings.method == 'Nelder-Mead':
        return {'xatol': settings.tol_x, 'fatol': settings.tol_fun, 'maxiter': settings.maxiter}
    if settings.method == 'Powell':
        return {'xtol': settings.tol_x, 'ftol': settings.tol_fun, 'maxiter': settings.maxiter}
    return {'tol': settings.tol_x, 'maxiter': settings.maxiter}


# --- MPC Solver ---
def solve_mpc(cost: MPCCost, u, ynow, u_prev, verbose=False):
    """Improve the control horizon ``u`` by derivative-free minimization.

    An exhausted iteration budget is not an error: the best point found is
    returned either way.
    """
    u = np.asarray(u, dtype=float)
    result = minimize(
        cost,
        u,
        args=(np.asarray(ynow, dtype=float), u_prev),
        method=cost.settings.method,
        options=optimizer_options(cost.settings),
    )
    if not result.success and verbose:
        tqdm.write(f'Optimizer stopped early ({result.message}), using best point found')
    return np.array(result.x, dtype=float).reshape(u.shape)
