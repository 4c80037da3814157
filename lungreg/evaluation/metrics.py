from typing import Dict, List, Sequence, Tuple

import numpy
import pandas
import SimpleITK

from lungreg.ImagingTools.Tools import transform_points

PointType = Tuple[float, ...]
ErrorStatsType = Tuple[float, float, float, float, List[float]]


def registration_errors(transform: SimpleITK.Transform,
                        fixed_points: Sequence[PointType],
                        moving_points: Sequence[PointType]) -> ErrorStatsType:
    """Target registration errors (TRE) of corresponding landmarks.

    Each fixed point is mapped with transform and compared to its moving counterpart.

    Args:
        transform (SimpleITK.Transform): Transform mapping points from the fixed to the moving image domain.
        fixed_points (Sequence[PointType]): Landmarks in the fixed image domain.
        moving_points (Sequence[PointType]): Corresponding landmarks in the moving image domain.

    Raises:
        ValueError: If there are no points, or the number of fixed and moving points differ.

    Returns:
        ErrorStatsType: mean, standard deviation, min and max of the errors, and the list of errors.
    """
    if len(fixed_points) != len(moving_points):
        raise ValueError(f"Got {len(fixed_points)} fixed points but {len(moving_points)} moving points.")
    if len(fixed_points) == 0:
        raise ValueError("Can't compute registration errors without points.")

    transformed_points = numpy.array(transform_points(transform, fixed_points))
    errors = numpy.linalg.norm(transformed_points - numpy.asarray(moving_points, dtype=numpy.float64), axis=1)

    return (float(numpy.mean(errors)), float(numpy.std(errors)),
            float(numpy.min(errors)), float(numpy.max(errors)), errors.tolist())


def summarize_errors(errors_by_label: Dict[str, Sequence[float]]) -> pandas.DataFrame:
    """One row per label with mean, std, min, max and count of the errors."""
    rows = {label: {"mean": numpy.mean(errors),
                    "std": numpy.std(errors),
                    "min": numpy.min(errors),
                    "max": numpy.max(errors),
                    "count": len(errors)}
            for label, errors in errors_by_label.items() if len(errors) > 0}

    return pandas.DataFrame.from_dict(rows, orient="index", columns=["mean", "std", "min", "max", "count"])
