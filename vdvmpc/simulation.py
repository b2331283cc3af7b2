from dataclasses import dataclass, field

import numpy as np
import pandas as pd
from tqdm import tqdm

from .controller import MPCCost, solve_mpc
from .errors import ControlLoopError, IntegrationFailure
from .integration import integrate_final
from .model import ProcessState, VanDeVusseCSTR
from .parameters import ControllerSettings, ReactorParameters, SimulationSettings


@dataclass
class SamplingRecord:
    """Append-only history of the closed loop, one entry per sampling instant."""

    t: list = field(default_factory=list)
    y: list = field(default_factory=list)
    u: list = field(default_factory=list)
    T_feed: list = field(default_factory=list)

    def append(self, t, y, u, T_feed):
        self.t.append(float(t))
        self.y.append(np.array(y, dtype=float))
        self.u.append(float(u))
        self.T_feed.append(float(T_feed))

    def __len__(self):
        return len(self.t)

    @property
    def tm(self) -> np.ndarray:
        return np.array(self.t)

    @property
    def ym(self) -> np.ndarray:
        return np.array(self.y).reshape(-1, 3)

    @property
    def um(self) -> np.ndarray:
        return np.array(self.u)

    @property
    def feed_temperature_history(self) -> np.ndarray:
        return np.array(self.T_feed)

    def to_dataframe(self) -> pd.DataFrame:
        df = pd.DataFrame(self.ym, columns=['Ca', 'Cb', 'T'])
        df.insert(0, 't', self.tm)
        df['Tc'] = self.um
        df['T_feed'] = self.feed_temperature_history
        return df


def advance_plant(plant, ynow, t0, u, sim: SimulationSettings):
    """Plant state after one sampling interval starting at ``t0``."""
    return integrate_final(
        plant, ynow, (t0, t0 + sim.Ta), u,
        atol=sim.atol, rtol=sim.rtol, method=sim.ode_solver,
    )


class ControlLoop:
    """Receding-horizon driver of the reactor.

    Every iteration optimizes the control horizon, keeps only its first
    move, advances the plant by ``Ta`` and records the new sample. The
    feed temperature steps once, after iteration ``sim.disturbance_index``.

    :param informed: when False the predictive model keeps the nominal feed
        temperature after the disturbance instead of sharing the plant's.
    :param verbose: progress bar and disturbance message.
    :param debug: also report optimizer runs that stop on their iteration budget.
    """

    def __init__(self, controller: ControllerSettings = None, sim: SimulationSettings = None,
                 params: ReactorParameters = None, informed=True, verbose=True, debug=False):
        self.controller = controller or ControllerSettings()
        self.sim = sim or SimulationSettings()
        self.params = params or ReactorParameters()
        self.params.validate()
        self.controller.validate()
        self.sim.validate(self.controller)
        self.verbose = verbose
        self.debug = debug

        self.process = ProcessState(self.params.T_feed)
        self.plant = VanDeVusseCSTR(self.controller.td, self.controller.p, self.params, self.process)
        self.model = self.plant if informed else self.plant.with_state(ProcessState(self.params.T_feed))
        self.cost = MPCCost(self.model, self.controller, self.sim.atol, self.sim.rtol, self.sim.ode_solver)

        self.u = np.array(self.sim.u0, dtype=float)
        self.u_prev = self.u[0]
        self.ynow = np.array(self.sim.y0, dtype=float)
        self.record = SamplingRecord()
        self.record.append(0.0, self.ynow, self.u_prev, self.process.T_feed)
        self.iteration = 0
        self.phase = 'WARM'

    def log(self, message):
        if self.verbose:
            tqdm.write(message)

    @property
    def done(self):
        return self.iteration >= self.sim.nsamples - 1

    def step(self):
        """One sampling instant. Either the sample is recorded or nothing changes.

        Once the run is done further calls leave the record untouched.
        """
        if self.done:
            self.phase = 'DONE'
            return self.record
        i = self.iteration + 1
        u = solve_mpc(self.cost, self.u, self.ynow, self.u_prev, verbose=self.debug)

        # Apply only the first control action
        u[1:] = 0.0

        t0 = self.record.t[-1]
        try:
            ynext = advance_plant(self.plant, self.ynow, t0, u, self.sim)
        except IntegrationFailure as exc:
            raise ControlLoopError(f'plant integration failed: {exc}', i, self.record) from exc

        self.u = u
        self.u_prev = u[0]
        self.ynow = ynext
        self.record.append(t0 + self.sim.Ta, ynext, u[0], self.process.T_feed)
        self.iteration = i

        self.phase = 'STEADY'
        # Disturbance in the feed temperature
        if self.sim.disturbance and i == self.sim.disturbance_index:
            self.process.apply_disturbance(self.sim.T_feed_disturbed)
            self.phase = 'DISTURBED'
            self.log(f'Sampling time {i}: feed temperature set to {self.process.T_feed}')
        if self.done:
            self.phase = 'DONE'
        return self.record

    def run(self) -> SamplingRecord:
        remaining = range(self.iteration, self.sim.nsamples - 1)
        for _ in tqdm(remaining, desc='Sampling time', disable=not self.verbose):
            self.step()
        self.phase = 'DONE'
        return self.record


def run_simulation(controller: ControllerSettings = None, sim: SimulationSettings = None,
                   params: ReactorParameters = None, informed=True, verbose=True,
                   debug=False) -> SamplingRecord:
    """Run the closed loop with the given (or default) configuration."""
    return ControlLoop(controller, sim, params, informed=informed, verbose=verbose, debug=debug).run()


def replay_plant(controls, controller: ControllerSettings = None, sim: SimulationSettings = None,
                 params: ReactorParameters = None, disturbance=None) -> SamplingRecord:
    """Open-loop plant run under an applied-control sequence.

    ``controls[0]`` is the initial entry of a record and is not applied,
    matching the layout of :class:`SamplingRecord`. ``disturbance``
    defaults to ``sim.disturbance``; ``False`` gives the disturbance-free
    baseline.
    """
    controller = controller or ControllerSettings()
    sim = sim or SimulationSettings()
    params = params or ReactorParameters()
    if disturbance is None:
        disturbance = sim.disturbance
    process = ProcessState(params.T_feed)
    plant = VanDeVusseCSTR(controller.td, controller.p, params, process)

    ynow = np.array(sim.y0, dtype=float)
    record = SamplingRecord()
    record.append(0.0, ynow, controls[0], process.T_feed)
    for i in range(1, len(controls)):
        u = np.zeros(controller.horizon)
        u[0] = controls[i]
        ynow = advance_plant(plant, ynow, record.t[-1], u, sim)
        record.append(record.t[-1] + sim.Ta, ynow, controls[i], process.T_feed)
        if disturbance and i == sim.disturbance_index:
            process.apply_disturbance(sim.T_feed_disturbed)
    return record
