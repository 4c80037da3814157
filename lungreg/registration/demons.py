import abc
from typing import Any, Optional, Sequence

import SimpleITK

from lungreg.ImagingTools.Tools import zero_displacement_field
from lungreg.registration.pyramid import build_image_pyramid, validate_schedule
from lungreg.utils.logging_config import Timer, get_logger

logger = get_logger(__name__)

# Demons filters only accept double precision displacement fields.
DISPLACEMENT_FIELD_PIXEL_TYPE = SimpleITK.sitkVectorFloat64


class RegistrationStep(metaclass=abc.ABCMeta):
    """Single resolution registration. Refines a displacement field defined on the fixed image grid."""

    @abc.abstractmethod
    def execute(self,
                fixed_image: SimpleITK.Image,
                moving_image: SimpleITK.Image,
                displacement_field: SimpleITK.Image) -> SimpleITK.Image:
        """Run the registration at one resolution.

        Args:
            fixed_image (SimpleITK.Image): Fixed image at the current level.
            moving_image (SimpleITK.Image): Moving image at the current level.
            displacement_field (SimpleITK.Image): Seed field, already on the fixed image grid.

        Returns:
            SimpleITK.Image: The refined displacement field, on the fixed image grid.
        """
        return displacement_field


class FilterRegistrationStep(RegistrationStep):
    """Adapter for SimpleITK registration filters (Demons family) exposing
    Execute(fixed_image, moving_image, initial_displacement_field)."""

    def __init__(self, registration_filter: Any) -> None:
        self.registration_filter = registration_filter

    def execute(self,
                fixed_image: SimpleITK.Image,
                moving_image: SimpleITK.Image,
                displacement_field: SimpleITK.Image) -> SimpleITK.Image:
        return self.registration_filter.Execute(fixed_image, moving_image, displacement_field)


def as_registration_step(registration_algorithm: Any) -> RegistrationStep:
    if isinstance(registration_algorithm, RegistrationStep):
        return registration_algorithm

    if callable(getattr(registration_algorithm, "Execute", None)):
        return FilterRegistrationStep(registration_algorithm)

    raise TypeError(f"{type(registration_algorithm).__name__} is not a registration step and has no Execute method.")


def initial_displacement_field(reference_image: SimpleITK.Image,
                               initial_transform: Optional[SimpleITK.Transform] = None) -> SimpleITK.Image:
    """Displacement field on the grid of reference_image. Sampled from initial_transform
    when given, zero everywhere otherwise."""
    if initial_transform is not None:
        return SimpleITK.TransformToDisplacementField(initial_transform,
                                                      DISPLACEMENT_FIELD_PIXEL_TYPE,
                                                      reference_image.GetSize(),
                                                      reference_image.GetOrigin(),
                                                      reference_image.GetSpacing(),
                                                      reference_image.GetDirection())

    return zero_displacement_field(reference_image)


def resample_displacement_field(displacement_field: SimpleITK.Image,
                                reference_image: SimpleITK.Image) -> SimpleITK.Image:
    """Carry a displacement field over to the grid of reference_image, interpolating each vector component linearly."""
    return SimpleITK.Resample(displacement_field, reference_image,
                              SimpleITK.Transform(reference_image.GetDimension(), SimpleITK.sitkIdentity),
                              SimpleITK.sitkLinear, 0.0, displacement_field.GetPixelID())


def multiscale_demons(registration_algorithm: Any,
                      fixed_image: SimpleITK.Image,
                      moving_image: SimpleITK.Image,
                      initial_transform: Optional[SimpleITK.Transform] = None,
                      shrink_factors: Optional[Sequence[float]] = None,
                      smoothing_sigmas: Optional[Sequence[float]] = None) -> SimpleITK.DisplacementFieldTransform:
    """
    Run the given registration algorithm in a multiscale fashion. The original scale should not be given as input as the
    original images are implicitly incorporated as the base of the pyramid.
    Args:
        registration_algorithm: A RegistrationStep, or any registration algorithm that has an
                                Execute(fixed_image, moving_image, displacement_field_image) method.
        fixed_image: Resulting transformation maps points from this image's spatial domain to the moving image spatial domain.
        moving_image: Resulting transformation maps points from the fixed_image's spatial domain to this image's spatial domain.
        initial_transform: Any SimpleITK transform, used to initialize the displacement field.
        shrink_factors: Shrink factors relative to the original image's size, coarsest first.
        smoothing_sigmas: Amount of smoothing which is done prior to resampling the image using the given shrink factor. These
                          are in physical (image spacing) units.
    Returns:
        SimpleITK.DisplacementFieldTransform
    """
    step = as_registration_step(registration_algorithm)
    schedule = validate_schedule(shrink_factors, smoothing_sigmas)

    # Create image pyramids, coarsest level first.
    fixed_images = build_image_pyramid(fixed_image, schedule)
    moving_images = build_image_pyramid(moving_image, schedule)
    num_levels = len(fixed_images)

    # Seed the displacement field at the coarsest level.
    displacement_field = initial_displacement_field(fixed_images[0], initial_transform)

    for level, (f_image, m_image) in enumerate(zip(fixed_images, moving_images)):
        if level > 0:
            displacement_field = resample_displacement_field(displacement_field, f_image)

        with Timer(f"Level {level + 1}/{num_levels} (size {f_image.GetSize()})", logger=logger):
            displacement_field = step.execute(f_image, m_image, displacement_field)

    return SimpleITK.DisplacementFieldTransform(displacement_field)
