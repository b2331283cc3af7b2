import numpy as np
from scipy.integrate import solve_ivp

from .errors import IntegrationFailure
from .parameters import ATOL, ODE_SOLVER, RTOL


def integrate(rhs, y0, t_span, u, t_eval=None, atol=ATOL, rtol=RTOL, method=ODE_SOLVER):
    """Integrate ``rhs(t, y, u)`` with a stiff solver, ``u`` held fixed.

    Returns the solver times and the states as an ``(n, len(y0))`` array,
    sampled at ``t_eval`` when given. Raises :class:`IntegrationFailure`
    when the solver gives up or the state leaves the finite range.
    """
    sol = solve_ivp(
        rhs,
        t_span=(t_span[0], t_span[-1]),
        y0=np.asarray(y0, dtype=float),
        args=(np.asarray(u, dtype=float),),
        t_eval=t_eval,
        method=method,
        atol=atol,
        rtol=rtol,
    )
    if not sol.success:
        raise IntegrationFailure(f'{method} failed on [{t_span[0]}, {t_span[-1]}]: {sol.message}', t_span)
    y = sol.y.T
    if y.size == 0 or not np.all(np.isfinite(y)):
        raise IntegrationFailure(f'{method} returned a non-finite state on [{t_span[0]}, {t_span[-1]}]', t_span)
    return sol.t, y


def integrate_final(rhs, y0, t_span, u, **kwargs):
    """Final state of :func:`integrate` over ``t_span``."""
    _, y = integrate(rhs, y0, t_span, u, **kwargs)
    return y[-1]
