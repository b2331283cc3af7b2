"""Closed-loop tests: receding horizon, disturbance and error handling."""

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pytest

import vdvmpc.simulation
from vdvmpc.errors import ConfigurationError, ControlLoopError, IntegrationFailure
from vdvmpc.parameters import ControllerSettings, SimulationSettings
from vdvmpc.plotting import plot_results
from vdvmpc.simulation import ControlLoop, SamplingRecord, replay_plant, run_simulation

FAST = ControllerSettings(maxiter=5)
SHORT = SimulationSettings(span=500)  # 5 samples, feed temperature steps after iteration 2


def hold_warm_start(cost, u, ynow, u_prev, verbose=False):
    return np.array(u, dtype=float)


@pytest.fixture(scope="module")
def disturbed_record() -> SamplingRecord:
    return run_simulation(FAST, SHORT, verbose=False)


class TestFirstSample:
    def test_control_acts_within_bounds(self) -> None:
        controller = ControllerSettings()
        record = run_simulation(controller, SimulationSettings(span=200), verbose=False)
        assert len(record) == 2
        assert record.tm[1] == pytest.approx(100.0)
        assert record.ym[1, 2] != pytest.approx(300.0)
        assert controller.lb <= record.um[1] <= controller.ub


class TestRecord:
    def test_layout(self, disturbed_record: SamplingRecord) -> None:
        assert len(disturbed_record) == SHORT.nsamples
        np.testing.assert_allclose(disturbed_record.tm, [0, 100, 200, 300, 400])
        np.testing.assert_array_equal(disturbed_record.ym[0], SHORT.y0)
        assert disturbed_record.um[0] == SHORT.u0[0]

    def test_dataframe(self, disturbed_record: SamplingRecord) -> None:
        df = disturbed_record.to_dataframe()
        assert list(df.columns) == ["t", "Ca", "Cb", "T", "Tc", "T_feed"]
        assert len(df) == SHORT.nsamples
        np.testing.assert_allclose(df["T"].values, disturbed_record.ym[:, 2])

    def test_plot(self, disturbed_record: SamplingRecord) -> None:
        fig = plot_results(disturbed_record, FAST, show=False)
        assert len(fig.axes) == 2

    def test_runs_are_reproducible(self, disturbed_record: SamplingRecord) -> None:
        again = run_simulation(FAST, SHORT, verbose=False)
        np.testing.assert_array_equal(again.tm, disturbed_record.tm)
        np.testing.assert_array_equal(again.ym, disturbed_record.ym)
        np.testing.assert_array_equal(again.um, disturbed_record.um)


class TestDisturbance:
    def test_feed_temperature_steps_once(self, disturbed_record: SamplingRecord) -> None:
        assert SHORT.disturbance_index == 2
        history = disturbed_record.feed_temperature_history
        np.testing.assert_allclose(history, [403.15, 403.15, 403.15, 420.0, 420.0])
        assert np.count_nonzero(np.diff(history)) == 1

    def test_replay_reproduces_closed_loop(self, disturbed_record: SamplingRecord) -> None:
        replay = replay_plant(disturbed_record.um, FAST, SHORT)
        np.testing.assert_allclose(replay.ym, disturbed_record.ym, rtol=1e-10, atol=1e-10)

    def test_differs_from_baseline_after_step(self, disturbed_record: SamplingRecord) -> None:
        baseline = replay_plant(disturbed_record.um, FAST, SHORT, disturbance=False)
        k = SHORT.disturbance_index + 1
        np.testing.assert_allclose(baseline.ym[:k], disturbed_record.ym[:k], rtol=1e-10, atol=1e-10)
        assert np.all(np.abs(disturbed_record.ym[k:, 2] - baseline.ym[k:, 2]) > 1e-3)
        assert np.all(baseline.feed_temperature_history == 403.15)

    def test_phases(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(vdvmpc.simulation, "solve_mpc", hold_warm_start)
        loop = ControlLoop(FAST, SHORT, verbose=False)
        assert loop.phase == "WARM"
        phases = []
        while not loop.done:
            loop.step()
            phases.append(loop.phase)
        assert phases == ["STEADY", "DISTURBED", "STEADY", "DONE"]

    def test_uninformed_model_keeps_nominal_feed(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(vdvmpc.simulation, "solve_mpc", hold_warm_start)
        loop = ControlLoop(FAST, SHORT, informed=False, verbose=False)
        loop.run()
        assert loop.plant.state.T_feed == 420.0
        assert loop.model.state.T_feed == pytest.approx(403.15)
        assert loop.cost.model is loop.model

    def test_informed_model_is_the_plant(self) -> None:
        loop = ControlLoop(FAST, SHORT, verbose=False)
        assert loop.model is loop.plant


class TestTruncation:
    def test_warm_start_keeps_only_first_move(self, monkeypatch: pytest.MonkeyPatch) -> None:
        warm_starts = []
        solve = vdvmpc.simulation.solve_mpc

        def spy(cost, u, ynow, u_prev, verbose=False):
            warm_starts.append(np.array(u))
            return solve(cost, u, ynow, u_prev, verbose)

        monkeypatch.setattr(vdvmpc.simulation, "solve_mpc", spy)
        loop = ControlLoop(FAST, SimulationSettings(span=400), verbose=False)
        record = loop.run()

        assert len(warm_starts) == 3
        for u in warm_starts:
            np.testing.assert_array_equal(u[1:], 0.0)
        np.testing.assert_array_equal(loop.u[1:], 0.0)
        assert loop.u_prev == record.um[-1]


class TestFatalIntegration:
    def test_plant_failure_stops_run(self, monkeypatch: pytest.MonkeyPatch) -> None:
        advance = vdvmpc.simulation.advance_plant
        calls = []

        def flaky(plant, ynow, t0, u, sim):
            calls.append(t0)
            if len(calls) == 2:
                raise IntegrationFailure("step size too small")
            return advance(plant, ynow, t0, u, sim)

        monkeypatch.setattr(vdvmpc.simulation, "solve_mpc", hold_warm_start)
        monkeypatch.setattr(vdvmpc.simulation, "advance_plant", flaky)
        loop = ControlLoop(FAST, SHORT, verbose=False)

        with pytest.raises(ControlLoopError) as excinfo:
            loop.run()
        assert excinfo.value.iteration == 2
        assert len(excinfo.value.record) == 2
        assert isinstance(excinfo.value.__cause__, IntegrationFailure)
        assert loop.iteration == 1


class TestConfiguration:
    @pytest.mark.parametrize(
        "controller, sim",
        [
            (ControllerSettings(lb=380.0, ub=373.15), SimulationSettings()),
            (ControllerSettings(lb=300.0, ub=300.0), SimulationSettings()),
            (ControllerSettings(td=()), SimulationSettings(u0=())),
            (ControllerSettings(td=(0, 20, 10, 40)), SimulationSettings()),
            (ControllerSettings(td=(5, 10, 20, 40)), SimulationSettings()),
            (ControllerSettings(Hp=0), SimulationSettings()),
            (ControllerSettings(nt=0), SimulationSettings()),
            (ControllerSettings(nt=3, setpoint=(380, 380)), SimulationSettings()),
            (ControllerSettings(method="BFGS"), SimulationSettings()),
            (ControllerSettings(), SimulationSettings(Ta=0)),
            (ControllerSettings(), SimulationSettings(Ta=-100)),
            (ControllerSettings(), SimulationSettings(span=150)),
            (ControllerSettings(), SimulationSettings(u0=(298.15, 0.0))),
            (ControllerSettings(), SimulationSettings(y0=(0.0, 300.0))),
            (ControllerSettings(), SimulationSettings(ode_solver="RK45")),
            (ControllerSettings(), SimulationSettings(disturbance_fraction=1.5)),
        ],
    )
    def test_rejected_before_simulation(self, controller, sim) -> None:
        with pytest.raises(ConfigurationError):
            ControlLoop(controller, sim, verbose=False)

    def test_default_sample_count(self) -> None:
        sim = SimulationSettings()
        assert sim.nsamples == 30
        assert sim.disturbance_index == 15


class TestPublicApi:
    def test_simulation_module_not_shadowed(self) -> None:
        import types

        import vdvmpc

        assert isinstance(vdvmpc.simulation, types.ModuleType)
        assert vdvmpc.simulation.solve_mpc is vdvmpc.solve_mpc
        assert vdvmpc.run_simulation is run_simulation


class TestLoopEnd:
    def test_step_after_done_keeps_record(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(vdvmpc.simulation, "solve_mpc", hold_warm_start)
        loop = ControlLoop(FAST, SimulationSettings(span=200), verbose=False)
        record = loop.run()
        assert len(record) == 2

        loop.step()
        assert len(loop.record) == 2
        assert loop.iteration == 1
        assert loop.phase == "DONE"


class TestReporting:
    def test_early_optimizer_stop_is_silent_by_default(self, capsys: pytest.CaptureFixture) -> None:
        ControlLoop(FAST, SimulationSettings(span=200)).run()
        assert "stopped early" not in capsys.readouterr().out

    def test_early_optimizer_stop_reported_in_debug(self, capsys: pytest.CaptureFixture) -> None:
        ControlLoop(FAST, SimulationSettings(span=200), verbose=False, debug=True).run()
        assert "stopped early" in capsys.readouterr().out


class TestReplayDefaults:
    def test_replay_follows_disturbance_switch(self, disturbed_record: SamplingRecord) -> None:
        quiet = SimulationSettings(span=500, disturbance=False)
        replay = replay_plant(disturbed_record.um, FAST, quiet)
        assert np.all(replay.feed_temperature_history == 403.15)

        forced = replay_plant(disturbed_record.um, FAST, quiet, disturbance=True)
        assert np.count_nonzero(np.diff(forced.feed_temperature_history)) == 1
