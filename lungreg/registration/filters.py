import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy
import SimpleITK

from lungreg.evaluation.metrics import registration_errors
from lungreg.registration.pyramid import validate_schedule
from lungreg.utils.logging_config import get_logger

logger = get_logger(__name__)

this_dir = Path(__file__).resolve().parent.parent
DEMONS_DEFAULTS_FILE = Path(this_dir, "data", "demons_defaults.json")

DEMONS_FILTERS = {
    "Demons": SimpleITK.DemonsRegistrationFilter,
    "DiffeomorphicDemons": SimpleITK.DiffeomorphicDemonsRegistrationFilter,
    "SymmetricForcesDemons": SimpleITK.SymmetricForcesDemonsRegistrationFilter,
    "FastSymmetricForcesDemons": SimpleITK.FastSymmetricForcesDemonsRegistrationFilter,
}

INITIAL_ALIGNMENTS = ["None", "Geometry", "Moments"]

ConfigType = Dict[str, Any]
PointType = Tuple[float, ...]


def load_demons_config(user_config: Optional[ConfigType] = None) -> ConfigType:
    """Demons configuration: packaged defaults, overridden by user_config.

    Args:
        user_config (Optional[ConfigType], optional): User defined parameters. Defaults to None.

    Raises:
        ValueError: If a parameter is unknown or out of range.

    Returns:
        ConfigType: Complete configuration.
    """
    with open(DEMONS_DEFAULTS_FILE) as f:
        config = json.load(f)

    if user_config is not None:
        unknown_keys = set(user_config) - set(config)
        if unknown_keys:
            raise ValueError(f"Unknown Demons parameters: {sorted(unknown_keys)}. Valid parameters are: {sorted(config)}")
        config.update(user_config)

    if config["Algorithm"] not in DEMONS_FILTERS:
        raise ValueError(f"Algorithm {config['Algorithm']} is not supported. Please use one of: {list(DEMONS_FILTERS)}")

    if config["InitialAlignment"] not in INITIAL_ALIGNMENTS:
        raise ValueError(f"Initial alignment {config['InitialAlignment']} is not supported. Please use one of: {INITIAL_ALIGNMENTS}")

    if int(config["NumberOfIterations"]) < 1:
        raise ValueError(f"NumberOfIterations should be a positive integer, got {config['NumberOfIterations']}")

    # Standard deviations may be given per axis.
    for key in ["StandardDeviations", "UpdateFieldStandardDeviations", "VarianceForUpdateField", "VarianceForTotalField"]:
        if numpy.any(numpy.asarray(config[key]) < 0):
            raise ValueError(f"{key} can't be negative, got {config[key]}")

    # Schedule errors surface here, before any image is touched.
    validate_schedule(config["ShrinkFactors"], config["SmoothingSigmas"])

    return config


def create_demons_filter(config: Optional[ConfigType] = None) -> Any:
    """Instantiate and configure a SimpleITK Demons registration filter."""
    config = load_demons_config(config)

    demons_filter = DEMONS_FILTERS[config["Algorithm"]]()
    demons_filter.SetNumberOfIterations(int(config["NumberOfIterations"]))
    demons_filter.SetMaximumRMSError(config["MaximumRMSError"])

    # Regularization (update field - viscous, total field - elastic).
    demons_filter.SetSmoothDisplacementField(bool(config["SmoothDisplacementField"]))
    demons_filter.SetStandardDeviations(config["StandardDeviations"])
    demons_filter.SetSmoothUpdateField(bool(config["SmoothUpdateField"]))
    demons_filter.SetUpdateFieldStandardDeviations(config["UpdateFieldStandardDeviations"])

    logger.debug(f"Created {config['Algorithm']} filter with {config['NumberOfIterations']} iterations per level.")

    return demons_filter


class RegistrationMonitor:
    """Keeps track of the metric (and optionally the target registration error) during registration.

    Parameters
    ----------
        fixed_points, moving_points: Optional corresponding landmarks. When given, and the observed
            registration exposes its transform while iterating, the mean TRE is recorded at each iteration.
    """

    def __init__(self,
                 fixed_points: Optional[Sequence[PointType]] = None,
                 moving_points: Optional[Sequence[PointType]] = None) -> None:
        self.fixed_points = fixed_points
        self.moving_points = moving_points
        self.metric_values: List[float] = []
        self.tre_values: List[float] = []
        self.level_starts: List[int] = []

    @property
    def tracks_tre(self) -> bool:
        return bool(self.fixed_points) and bool(self.moving_points)

    def start_level(self) -> None:
        self.level_starts.append(len(self.metric_values))
        logger.info(f"Starting resolution level {len(self.level_starts)}")

    def record(self, iteration: int, metric: float, transform: Optional[SimpleITK.Transform] = None) -> None:
        self.metric_values.append(metric)
        message = f"Iteration: {iteration}, Metric: {metric:.5f}"

        if transform is not None and self.tracks_tre:
            mean_error, _, _, _, _ = registration_errors(transform, self.fixed_points, self.moving_points)
            self.tre_values.append(mean_error)
            message += f", TRE: {mean_error:.2f}"

        logger.debug(message)

    def attach_to_filter(self, demons_filter: Any) -> None:
        """Observe a Demons filter. Each execution of the filter (one per pyramid level) starts a new level."""
        demons_filter.AddCommand(SimpleITK.sitkStartEvent, self.start_level)
        demons_filter.AddCommand(SimpleITK.sitkIterationEvent,
                                 lambda: self.record(demons_filter.GetElapsedIterations(), demons_filter.GetMetric()))

    def attach_to_method(self,
                         registration_method: SimpleITK.ImageRegistrationMethod,
                         transform: Optional[SimpleITK.Transform] = None) -> None:
        """Observe an ImageRegistrationMethod. transform should be the in-place optimized transform for TRE tracking."""
        registration_method.AddCommand(SimpleITK.sitkMultiResolutionIterationEvent, self.start_level)
        registration_method.AddCommand(SimpleITK.sitkIterationEvent,
                                       lambda: self.record(registration_method.GetOptimizerIteration(),
                                                           registration_method.GetMetricValue(),
                                                           transform))
