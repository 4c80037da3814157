import logging

import numpy
import pytest
import SimpleITK

from conftest import create_blob_image, create_random_image
from lungreg.ImagingTools.Tools import same_grid
from lungreg.registration.demons import (
    FilterRegistrationStep,
    RegistrationStep,
    as_registration_step,
    initial_displacement_field,
    multiscale_demons,
    resample_displacement_field,
)
from lungreg.registration.pyramid import ScheduleError


class RecordingStep(RegistrationStep):
    """Adds one unit of x displacement per call and records what it was given."""

    def __init__(self, fail_at_call=None):
        self.calls = []
        self.fail_at_call = fail_at_call

    def execute(self, fixed_image, moving_image, displacement_field):
        self.calls.append({
            "fixed_size": fixed_image.GetSize(),
            "moving_size": moving_image.GetSize(),
            "seed": SimpleITK.GetArrayFromImage(displacement_field),
            "seed_on_fixed_grid": same_grid(fixed_image, displacement_field),
        })

        if self.fail_at_call is not None and len(self.calls) == self.fail_at_call:
            raise RuntimeError("Demons diverged")

        array = SimpleITK.GetArrayFromImage(displacement_field)
        array[..., 0] += 1.0
        field = SimpleITK.GetImageFromArray(array, isVector=True)
        field.CopyInformation(displacement_field)

        return field


class ExecuteOnly:
    def __init__(self):
        self.count = 0

    def Execute(self, fixed_image, moving_image, displacement_field):
        self.count += 1
        return displacement_field


def test_levels_are_visited_coarsest_first():
    fixed = create_random_image((64, 64, 64))
    moving = create_random_image((64, 64, 64), seed=1)
    step = RecordingStep()

    multiscale_demons(step, fixed, moving, shrink_factors=[4, 2], smoothing_sigmas=[8.0, 4.0])

    assert [call["fixed_size"] for call in step.calls] == [(16, 16, 16), (32, 32, 32), (64, 64, 64)]
    assert [call["moving_size"] for call in step.calls] == [(16, 16, 16), (32, 32, 32), (64, 64, 64)]
    assert all(call["seed_on_fixed_grid"] for call in step.calls)


def test_empty_schedule_runs_once_at_full_resolution():
    fixed = create_random_image((10, 12, 14))
    moving = create_random_image((10, 12, 14), seed=1)
    step = RecordingStep()

    transform = multiscale_demons(step, fixed, moving)

    assert len(step.calls) == 1
    assert step.calls[0]["fixed_size"] == (10, 12, 14)
    assert numpy.all(step.calls[0]["seed"] == 0)
    assert same_grid(transform.GetDisplacementField(), fixed)


def test_zero_seed_without_initial_transform():
    fixed = create_random_image((16, 16, 16))
    step = RecordingStep()

    multiscale_demons(step, fixed, fixed, shrink_factors=[2], smoothing_sigmas=[1.0])

    assert step.calls[0]["seed"].shape == (8, 8, 8, 3)
    assert numpy.all(step.calls[0]["seed"] == 0)


def test_seed_from_initial_transform():
    fixed = create_random_image((16, 16, 16))
    step = RecordingStep()

    multiscale_demons(step, fixed, fixed, initial_transform=SimpleITK.TranslationTransform(3, (1.0, -2.0, 3.0)),
                      shrink_factors=[2], smoothing_sigmas=[1.0])

    seed = step.calls[0]["seed"]
    assert numpy.allclose(seed[..., 0], 1.0)
    assert numpy.allclose(seed[..., 1], -2.0)
    assert numpy.allclose(seed[..., 2], 3.0)


def test_field_is_carried_across_levels():
    fixed = create_random_image((32, 32, 32), spacing=(1.0, 2.0, 0.5))
    step = RecordingStep()

    transform = multiscale_demons(step, fixed, fixed, shrink_factors=[4, 2], smoothing_sigmas=[2.0, 1.0])

    # Each level adds one unit, interior samples of a constant field survive linear resampling.
    assert numpy.allclose(step.calls[1]["seed"][2:-2, 2:-2, 2:-2, 0], 1.0)
    assert numpy.allclose(step.calls[2]["seed"][2:-2, 2:-2, 2:-2, 0], 2.0)
    field = SimpleITK.GetArrayFromImage(transform.GetDisplacementField())
    assert numpy.allclose(field[2:-2, 2:-2, 2:-2, 0], 3.0)


@pytest.mark.parametrize(
    "shrink_factors, smoothing_sigmas",
    [
        [None, None],
        [[2], [1.0]],
        [[4, 2], [2.0, 1.0]],
        [[3, 2, 1.5], [2.0, 1.0, 0.0]],
    ],
)
def test_result_is_on_the_fixed_grid(shrink_factors, smoothing_sigmas):
    fixed = create_random_image((30, 25, 20), spacing=(0.8, 1.2, 2.5))
    fixed.SetOrigin((-12.0, 4.0, 100.0))
    moving = create_random_image((20, 20, 20), seed=3)

    transform = multiscale_demons(RecordingStep(), fixed, moving,
                                  shrink_factors=shrink_factors, smoothing_sigmas=smoothing_sigmas)

    assert isinstance(transform, SimpleITK.DisplacementFieldTransform)
    assert same_grid(transform.GetDisplacementField(), fixed)


def test_step_failure_is_propagated():
    fixed = create_random_image((32, 32, 32))
    step = RecordingStep(fail_at_call=2)

    with pytest.raises(RuntimeError, match="Demons diverged"):
        multiscale_demons(step, fixed, fixed, shrink_factors=[4, 2], smoothing_sigmas=[2.0, 1.0])

    assert len(step.calls) == 2


def test_failed_level_is_logged_as_failure(caplog):
    fixed = create_random_image((32, 32, 32))
    step = RecordingStep(fail_at_call=2)

    with caplog.at_level(logging.INFO, logger="lungreg"):
        with pytest.raises(RuntimeError):
            multiscale_demons(step, fixed, fixed, shrink_factors=[4, 2], smoothing_sigmas=[2.0, 1.0])

    warnings = [record.getMessage() for record in caplog.records if record.levelno == logging.WARNING]
    assert len(warnings) == 1
    assert warnings[0].startswith("Level 2/3") and "failed after" in warnings[0]


def test_invalid_schedule_is_rejected_before_registration():
    fixed = create_random_image((16, 16, 16))
    step = RecordingStep()

    with pytest.raises(ScheduleError):
        multiscale_demons(step, fixed, fixed, shrink_factors=[2, 4], smoothing_sigmas=[1.0, 2.0])

    assert len(step.calls) == 0


def test_repeated_shrink_factor_is_rejected_before_registration():
    fixed = create_random_image((16, 16, 16))
    step = RecordingStep()

    with pytest.raises(ScheduleError):
        multiscale_demons(step, fixed, fixed, shrink_factors=[2, 2], smoothing_sigmas=[1.0, 1.0])

    assert len(step.calls) == 0


def test_objects_with_execute_are_adapted():
    fixed = create_random_image((8, 8, 8))
    algorithm = ExecuteOnly()

    step = as_registration_step(algorithm)
    multiscale_demons(algorithm, fixed, fixed)

    assert isinstance(step, FilterRegistrationStep)
    assert algorithm.count == 1

    recording_step = RecordingStep()
    assert as_registration_step(recording_step) is recording_step

    with pytest.raises(TypeError):
        as_registration_step(object())


def test_resample_displacement_field_matches_reference_grid():
    coarse = create_random_image((8, 8, 8), spacing=(2.0, 2.0, 2.0))
    fine = create_random_image((16, 16, 16))

    field = resample_displacement_field(initial_displacement_field(coarse), fine)

    assert field.GetPixelID() == SimpleITK.sitkVectorFloat64
    assert same_grid(field, fine)


def test_demons_filter_reduces_intensity_difference(blob_pair):
    fixed, moving = blob_pair
    demons_filter = SimpleITK.DemonsRegistrationFilter()
    demons_filter.SetNumberOfIterations(50)
    demons_filter.SetSmoothDisplacementField(True)
    demons_filter.SetStandardDeviations(1.5)

    transform = multiscale_demons(demons_filter, fixed, moving, shrink_factors=[2], smoothing_sigmas=[1.0])

    registered = SimpleITK.Resample(moving, fixed, transform, SimpleITK.sitkLinear, 0.0)
    fixed_array = SimpleITK.GetArrayFromImage(fixed)
    mse_before = numpy.mean((fixed_array - SimpleITK.GetArrayFromImage(moving)) ** 2)
    mse_after = numpy.mean((fixed_array - SimpleITK.GetArrayFromImage(registered)) ** 2)

    assert same_grid(transform.GetDisplacementField(), fixed)
    assert mse_after < mse_before
