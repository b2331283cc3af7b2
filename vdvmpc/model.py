import numpy as np

from .parameters import ReactorParameters


# --- Control signal ---
def control_signal(t, u, td, p):
    """Jacket temperature at time ``t`` built from the control horizon ``u``.

    Each move ``u[i]`` is switched on at ``td[i]`` by a smooth step
    ``0.5 + 0.5 * tanh(p * (t - td[i]))``; larger ``p`` approaches a
    zero-order hold.
    """
    reg = 0.5 + 0.5 * np.tanh(p * (t - np.asarray(td, dtype=float)))
    return float(np.sum(np.asarray(u, dtype=float) * reg))


# --- Disturbance state ---
class ProcessState:
    """Feed temperature in force, mutated at most once per run."""

    def __init__(self, T_feed):
        self.T_feed = float(T_feed)
        self.disturbed = False

    def apply_disturbance(self, T_feed):
        if self.disturbed:
            raise RuntimeError('the feed temperature disturbance has already been applied')
        self.T_feed = float(T_feed)
        self.disturbed = True


# --- Real System Dynamics --- #
class VanDeVusseCSTR:
    """Mass and energy balances of the Van de Vusse reactor.

    Shared by the plant and the predictive model: the controller assumes a
    perfect model unless it is handed its own :class:`ProcessState`.
    """

    def __init__(self, td, p, params: ReactorParameters = None, state: ProcessState = None):
        self.params = params or ReactorParameters()
        self.state = state or ProcessState(self.params.T_feed)
        self.td = np.asarray(td, dtype=float)
        self.p = p

    def rates(self, Ca, Cb, T):
        prm = self.params
        r1 = prm.k1 * np.exp(-prm.E1 / prm.R / T) * Ca
        r2 = prm.k2 * np.exp(-prm.E2 / prm.R / T) * Cb
        r3 = prm.k3 * np.exp(-prm.E3 / prm.R / T) * Ca ** 2
        return r1, r2, r3

    def __call__(self, t, y, u):
        prm = self.params
        Ca, Cb, T = y
        Tc = control_signal(t, u, self.td, self.p)
        r1, r2, r3 = self.rates(Ca, Cb, T)

        dCa_dt = (prm.Ca_feed - Ca) / prm.tau - r1 - 2 * r3
        dCb_dt = -Cb / prm.tau + r1 - r2
        dT_dt = (self.state.T_feed - T) / prm.tau - (
            prm.UA / prm.V * (T - Tc) + prm.H1 * r1 + prm.H2 * r2 + prm.H3 * r3
        ) / (prm.rho * prm.cp)
        return np.array([dCa_dt, dCb_dt, dT_dt])

    def with_state(self, state: ProcessState):
        """Same reactor reading a different feed-temperature state."""
        return VanDeVusseCSTR(self.td, self.p, self.params, state)
