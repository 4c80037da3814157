from pathlib import Path
from typing import List, Sequence, Tuple

import pandas
import SimpleITK

from lungreg.utils.logging_config import get_logger

logger = get_logger(__name__)

PointType = Tuple[float, ...]


def read_points(file_name: Path, dimension: int = 3) -> List[PointType]:
    """Read landmarks from a text file with one point per line and whitespace separated
    coordinates (POPI .pts format). Coordinates are in physical units.

    Args:
        file_name (Path): Path to the points file.
        dimension (int, optional): Number of coordinates per point. Defaults to 3.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If a line does not hold exactly `dimension` numeric coordinates.

    Returns:
        List[PointType]: The landmarks, in file order.
    """
    file_name = Path(file_name)
    if not file_name.exists():
        raise FileNotFoundError(f"Points file {file_name.name} does not exists.")

    points_df = pandas.read_csv(file_name, sep=r"\s+", header=None, comment="#")

    if points_df.shape[1] != dimension:
        raise ValueError(f"Expected {dimension} coordinates per point in {file_name.name}, found {points_df.shape[1]}.")

    try:
        points_df = points_df.astype(float)
    except ValueError:
        raise ValueError(f"{file_name.name} contains non numeric coordinates.")

    if points_df.isnull().values.any():
        raise ValueError(f"{file_name.name} contains incomplete points.")

    return [tuple(row) for row in points_df.itertuples(index=False, name=None)]


def write_points(points: Sequence[PointType], file_name: Path) -> None:
    pandas.DataFrame(list(points)).to_csv(file_name, sep="\t", header=False, index=False)
    return None


def load_image(file_name: Path, pixel_type: int = SimpleITK.sitkFloat32) -> SimpleITK.Image:
    """Read an image with SimpleITK (any supported format, e.g. .mha, .nii.gz) and cast it to pixel_type."""
    file_name = Path(file_name)
    if not file_name.exists():
        raise FileNotFoundError(f"Image {file_name.name} does not exists.")

    logger.debug(f"Reading image {file_name}")
    return SimpleITK.ReadImage(str(file_name), pixel_type)


def sitk_load_dcm_series(dcm_dir: Path) -> SimpleITK.Image:
    """Load Series from DICOM folder, and return SITK image

    Parameters
    ----------
        dcm_dir: Folder holding the slices of a single series (e.g. one respiratory phase).

    Returns
    --------
        image: The series as a 3D image.
    """
    reader = SimpleITK.ImageSeriesReader()
    dcm_file_names = reader.GetGDCMSeriesFileNames(str(dcm_dir))

    if len(dcm_file_names) == 0:
        raise FileNotFoundError(f"No Dicom data was found under {dcm_dir}")

    reader.SetFileNames(dcm_file_names)

    return reader.Execute()
