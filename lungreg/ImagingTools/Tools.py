from typing import List, Sequence, Tuple

import numpy
import SimpleITK
from SimpleITK import Image

PointType = Tuple[float, ...]


def same_grid(image_a: Image, image_b: Image, tolerance: float = 1e-6) -> bool:
    """True if both images share size, spacing, origin and direction."""
    if image_a.GetDimension() != image_b.GetDimension() or image_a.GetSize() != image_b.GetSize():
        return False

    return all(numpy.allclose(getter(image_a), getter(image_b), atol=tolerance)
               for getter in (Image.GetSpacing, Image.GetOrigin, Image.GetDirection))


def zero_displacement_field(reference_image: Image) -> Image:
    """Double precision displacement field, zero everywhere, on the grid of reference_image."""
    field = SimpleITK.Image(reference_image.GetSize(), SimpleITK.sitkVectorFloat64)
    field.CopyInformation(reference_image)
    return field


def transform_points(transform: SimpleITK.Transform, points: Sequence[PointType]) -> List[PointType]:
    return [tuple(transform.TransformPoint([float(c) for c in point])) for point in points]


def warp_image(moving_image: Image,
               reference_image: Image,
               transform: SimpleITK.Transform,
               interpolator: int = SimpleITK.sitkLinear,
               default_value: float = 0.0) -> Image:
    """Resample moving_image onto the grid of reference_image. transform maps reference (fixed) points to moving points."""
    return SimpleITK.Resample(moving_image, reference_image, transform, interpolator,
                              default_value, moving_image.GetPixelID())
