from vdvmpc.parameters import ControllerSettings, SimulationSettings
from vdvmpc.plotting import plot_results
from vdvmpc.simulation import run_simulation

# --- Simulation Setup ---
controller = ControllerSettings()
sim = SimulationSettings()

print(f"Samples: {sim.nsamples}, feed temperature disturbance after sample {sim.disturbance_index}")
record = run_simulation(controller, sim)

df = record.to_dataframe()
print(df.tail())

# --- Plot Results ---
plot_results(record, controller)
