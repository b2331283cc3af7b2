import matplotlib.pyplot as plt
import numpy as np

from .parameters import ControllerSettings


# --- Plot Results ---
def plot_results(record, controller: ControllerSettings = None, show=True):
    controller = controller or ControllerSettings()
    tm, ym, um = record.tm, record.ym, record.um
    ones = np.ones(len(tm))

    fig = plt.figure(figsize=(12, 8))
    plt.subplot(2, 1, 1)
    plt.plot(tm, ym[:, 2], label="Measured", linewidth=1.5)
    plt.plot(tm, controller.setpoint_trajectory()[0] * ones, label="Set Point", linestyle=":", linewidth=1.5)
    plt.ylabel("Temperature")
    plt.title("Controlled variable")
    plt.legend(loc="lower right")
    plt.grid()

    plt.subplot(2, 1, 2)
    plt.plot(tm, um, label="Measured", linewidth=1.5)
    plt.plot(tm, controller.lb * ones, linestyle=":", color="k", label="Bounds")
    plt.plot(tm, controller.ub * ones, linestyle=":", color="k")
    plt.xlabel("Time")
    plt.ylabel("Jacket temperature")
    plt.title("Manipulated variable")
    plt.legend(loc="lower left")
    plt.grid()

    plt.tight_layout()
    if show:
        plt.show()
    return fig
