import matplotlib

matplotlib.use("Agg")

import numpy
import pytest
import SimpleITK


def create_blob_image(size=(24, 24, 24), center=(12.0, 12.0, 12.0), sigma=4.0, spacing=None, origin=None):
    """Gaussian blob with peak 100 at center (x, y, z voxel index)."""
    grids = numpy.meshgrid(*[numpy.arange(sz, dtype=numpy.float32) for sz in reversed(size)], indexing="ij")
    squared_distance = sum((grid - c) ** 2 for grid, c in zip(grids, reversed(center)))
    array = (100.0 * numpy.exp(-squared_distance / (2 * sigma ** 2))).astype(numpy.float32)

    image = SimpleITK.GetImageFromArray(array)
    if spacing is not None:
        image.SetSpacing(spacing)
    if origin is not None:
        image.SetOrigin(origin)

    return image


def create_random_image(size, spacing=None, seed=0):
    rng = numpy.random.default_rng(seed)
    image = SimpleITK.GetImageFromArray(rng.random(tuple(reversed(size))).astype(numpy.float32))
    if spacing is not None:
        image.SetSpacing(spacing)
    return image


@pytest.fixture
def blob_pair():
    fixed = create_blob_image(center=(10.0, 12.0, 12.0))
    moving = create_blob_image(center=(12.0, 12.0, 12.0))
    return fixed, moving
