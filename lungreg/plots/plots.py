from typing import Optional, Sequence, Tuple

import matplotlib.pyplot as plt
import numpy as np

from lungreg.registration.filters import RegistrationMonitor


def plot_error_histogram(
        errors: Sequence[float],
        title: str = 'TRE',
        bins: int = 20,
        min_err: Optional[float] = None,
        max_err: Optional[float] = None,
        xlabel: str = 'TRE (mm)',
        ax=None,
        **kwargs) -> None:
    """Histogram of target registration errors, annotated with mean, std and max.
    min_err/max_err fix the histogram range so that several plots can be compared."""

    errors = np.asarray(errors)
    if errors.size == 0:
        raise ValueError("Can't plot a histogram without errors.")

    min_err = errors.min() if min_err is None else min_err
    max_err = errors.max() if max_err is None else max_err

    if ax is None:
        fig, ax = plt.subplots(figsize=(8, 6))

    ax.hist(errors, bins=bins, range=(min_err, max_err), color='#1f77b4', edgecolor='black')
    ax.set_title(f'{title}')
    ax.set_xlabel(xlabel)
    ax.set_ylabel('Frequency')
    ax.text(0.6, 0.85, f'mean={errors.mean():.2f}, std={errors.std():.2f}\nmax={errors.max():.2f}', transform=ax.transAxes)

    plt.tight_layout()

    if 'save_path' in kwargs:
        plt.savefig(f"{kwargs['save_path']}/{title.replace(' ', '_')}_histogram.png", dpi=300)

    return None


def plot_errors_before_after(
        errors_before: Sequence[float],
        errors_after: Sequence[float],
        bins: int = 20,
        figure_size: Tuple[int, int] = (12, 5),
        **kwargs) -> None:
    """Side by side TRE histograms before and after registration, sharing the same range."""

    all_errors = np.concatenate([np.asarray(errors_before), np.asarray(errors_after)])
    if all_errors.size == 0:
        raise ValueError("Can't plot a histogram without errors.")

    fig, axes = plt.subplots(1, 2, figsize=figure_size, sharey=True)

    plot_error_histogram(errors_before, title='TRE before registration', bins=bins,
                         min_err=all_errors.min(), max_err=all_errors.max(), ax=axes[0])
    plot_error_histogram(errors_after, title='TRE after registration', bins=bins,
                         min_err=all_errors.min(), max_err=all_errors.max(), ax=axes[1])

    plt.tight_layout()

    if 'save_path' in kwargs:
        plt.savefig(f"{kwargs['save_path']}/TRE_before_after.png", dpi=300)

    return None


def plot_registration_progress(monitor: RegistrationMonitor, **kwargs) -> None:
    """Metric (and TRE, when tracked) per iteration. Dashed lines mark the start of each resolution level."""

    if len(monitor.metric_values) == 0:
        raise ValueError("The monitor did not record any iteration.")

    n_panels = 2 if monitor.tre_values else 1
    fig, axes = plt.subplots(1, n_panels, figsize=(6 * n_panels, 4), squeeze=False)

    axes[0, 0].plot(monitor.metric_values, 'r')
    axes[0, 0].set_xlabel('Iteration')
    axes[0, 0].set_ylabel('Metric')

    if monitor.tre_values:
        axes[0, 1].plot(monitor.tre_values, 'b')
        axes[0, 1].set_xlabel('Iteration')
        axes[0, 1].set_ylabel('TRE (mm)')

    for ax in axes[0]:
        for level_start in monitor.level_starts[1:]:
            ax.axvline(level_start, color='grey', linestyle='--')

    plt.tight_layout()

    if 'save_path' in kwargs:
        plt.savefig(f"{kwargs['save_path']}/registration_progress.png", dpi=300)

    return None
