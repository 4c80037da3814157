from typing import List, Optional, Sequence, Tuple

import SimpleITK

from lungreg.utils.logging_config import get_logger

logger = get_logger(__name__)

ScheduleType = List[Tuple[float, float]]


class ScheduleError(ValueError):
    """Invalid shrink factor / smoothing sigma schedule."""


class DegenerateGeometryError(ValueError):
    """A shrink factor collapses an image axis to a single voxel."""


def validate_schedule(shrink_factors: Optional[Sequence[float]],
                      smoothing_sigmas: Optional[Sequence[float]]) -> ScheduleType:
    """Check a multiscale schedule and pair shrink factors with smoothing sigmas.

    The schedule lists the coarse levels only, coarsest first. The original resolution
    is implicitly the last (finest) level and should not be included.

    Args:
        shrink_factors (Optional[Sequence[float]]): Shrink factors relative to the original image size, each > 1.
        smoothing_sigmas (Optional[Sequence[float]]): Gaussian sigmas in physical units, each >= 0.

    Raises:
        ScheduleError: If the two sequences differ in length, or hold out of range or non decreasing shrink factors.

    Returns:
        ScheduleType: List of (shrink_factor, smoothing_sigma) pairs. Empty if no schedule was given.
    """
    shrink_factors = list(shrink_factors) if shrink_factors is not None else []
    smoothing_sigmas = list(smoothing_sigmas) if smoothing_sigmas is not None else []

    if len(shrink_factors) != len(smoothing_sigmas):
        raise ScheduleError(f"Got {len(shrink_factors)} shrink factors but {len(smoothing_sigmas)} smoothing sigmas.")

    for shrink_factor, smoothing_sigma in zip(shrink_factors, smoothing_sigmas):
        if shrink_factor <= 1:
            raise ScheduleError(f"Shrink factors must be greater than one, got {shrink_factor}.")
        if smoothing_sigma < 0:
            raise ScheduleError(f"Smoothing sigmas can't be negative, got {smoothing_sigma}.")

    for coarser, finer in zip(shrink_factors[:-1], shrink_factors[1:]):
        if finer >= coarser:
            raise ScheduleError(f"Shrink factors should strictly decrease from coarsest to finest, got {shrink_factors}.")

    return [(float(shrink_factor), float(smoothing_sigma))
            for shrink_factor, smoothing_sigma in zip(shrink_factors, smoothing_sigmas)]


def shrunk_geometry(original_size: Sequence[int],
                    original_spacing: Sequence[float],
                    shrink_factor: float) -> Tuple[List[int], List[float]]:
    """Size and spacing of an image shrunk by shrink_factor, keeping the physical extent
    between the first and last sample unchanged.

    Raises:
        DegenerateGeometryError: If an axis with more than one voxel would be reduced to a single voxel.
    """
    new_size = [max(1, int(sz / float(shrink_factor) + 0.5)) for sz in original_size]

    new_spacing = []
    for axis, (original_sz, original_spc, new_sz) in enumerate(zip(original_size, original_spacing, new_size)):
        if original_sz == 1:
            # Nothing to shrink along this axis.
            new_spacing.append(original_spc)
        elif new_sz == 1:
            raise DegenerateGeometryError(
                f"Shrink factor {shrink_factor} reduces axis {axis} (size {original_sz}) to a single voxel.")
        else:
            new_spacing.append(((original_sz - 1) * original_spc) / (new_sz - 1))

    return new_size, new_spacing


def smooth_and_resample(image: SimpleITK.Image, shrink_factor: float, smoothing_sigma: float) -> SimpleITK.Image:
    """
    Args:
        image: The image we want to resample.
        shrink_factor: A number greater than one, such that the new image's size is original_size/shrink_factor.
        smoothing_sigma: Sigma for Gaussian smoothing, this is in physical (image spacing) units, not pixels.
    Return:
        Image which is a result of smoothing the input and then resampling it using the given sigma and shrink factor.
    """
    if shrink_factor <= 1:
        raise ScheduleError(f"Shrink factors must be greater than one, got {shrink_factor}.")
    if smoothing_sigma < 0:
        raise ScheduleError(f"Smoothing sigmas can't be negative, got {smoothing_sigma}.")

    new_size, new_spacing = shrunk_geometry(image.GetSize(), image.GetSpacing(), shrink_factor)

    # The recursive Gaussian rejects a zero sigma.
    smoothed_image = SimpleITK.SmoothingRecursiveGaussian(image, smoothing_sigma) if smoothing_sigma > 0 else image

    return SimpleITK.Resample(smoothed_image, new_size, SimpleITK.Transform(image.GetDimension(), SimpleITK.sitkIdentity),
                              SimpleITK.sitkLinear, image.GetOrigin(),
                              new_spacing, image.GetDirection(), 0.0,
                              image.GetPixelID())


def build_image_pyramid(image: SimpleITK.Image, schedule: ScheduleType) -> List[SimpleITK.Image]:
    """Smoothed and downsampled copies of image, coarsest first. The original image is always the
    last (finest) element, so an empty schedule yields a single level."""
    pyramid = []
    for shrink_factor, smoothing_sigma in schedule:
        level = smooth_and_resample(image, shrink_factor, smoothing_sigma)
        logger.debug(f"Pyramid level (shrink={shrink_factor}, sigma={smoothing_sigma}): size {level.GetSize()}")
        pyramid.append(level)

    pyramid.append(image)

    return pyramid
