import matplotlib.pyplot as plt
import pytest

from lungreg.plots.plots import plot_error_histogram, plot_errors_before_after, plot_registration_progress
from lungreg.registration.filters import RegistrationMonitor


@pytest.fixture(autouse=True)
def close_figures():
    yield
    plt.close("all")


def test_plot_error_histogram(tmp_path):
    plot_error_histogram([0.5, 1.0, 1.5, 4.0], title="TRE phase 5", save_path=tmp_path)

    assert (tmp_path / "TRE_phase_5_histogram.png").exists()


def test_plot_error_histogram_without_errors():
    with pytest.raises(ValueError):
        plot_error_histogram([])


def test_plot_errors_before_after(tmp_path):
    plot_errors_before_after([2.0, 3.0, 5.5], [0.5, 1.0, 0.7], bins=5, save_path=tmp_path)

    assert (tmp_path / "TRE_before_after.png").exists()


@pytest.mark.parametrize("track_tre", [True, False])
def test_plot_registration_progress(tmp_path, track_tre):
    monitor = RegistrationMonitor()
    monitor.metric_values = [3.0, 2.0, 1.5, 1.4]
    monitor.level_starts = [0, 2]
    if track_tre:
        monitor.tre_values = [4.0, 3.0, 2.0, 1.0]

    plot_registration_progress(monitor, save_path=tmp_path)

    assert (tmp_path / "registration_progress.png").exists()


def test_plot_registration_progress_without_iterations():
    with pytest.raises(ValueError):
        plot_registration_progress(RegistrationMonitor())
