from typing import Any, Dict, Optional

import SimpleITK
from SimpleITK import Image, Transform

from lungreg.ImagingTools.Tools import same_grid, warp_image
from lungreg.registration.demons import multiscale_demons
from lungreg.registration.filters import RegistrationMonitor, create_demons_filter, load_demons_config
from lungreg.utils.logging_config import get_logger

logger = get_logger(__name__)

ConfigType = Dict[str, Any]


def demons_registration(fixed_image: Image,
                        moving_image: Image,
                        config: Optional[ConfigType] = None,
                        initial_transform: Optional[Transform] = None,
                        monitor: Optional[RegistrationMonitor] = None) -> SimpleITK.DisplacementFieldTransform:
    """Multiscale Demons registration with a configured SimpleITK Demons filter.

    Args:
        fixed_image (Image): Fixed image. The resulting transform maps its points to the moving image domain.
        moving_image (Image): Moving image.
        config (Optional[ConfigType], optional): Demons parameters, see data/demons_defaults.json. Defaults to None.
        initial_transform (Optional[Transform], optional): Used to seed the displacement field. Defaults to None.
        monitor (Optional[RegistrationMonitor], optional): Records the metric at each iteration. Defaults to None.

    Returns:
        SimpleITK.DisplacementFieldTransform: The registration result.
    """
    config = load_demons_config(config)
    demons_filter = create_demons_filter(config)

    if monitor is not None:
        monitor.attach_to_filter(demons_filter)

    # Demons filters need matching pixel types.
    return multiscale_demons(registration_algorithm=demons_filter,
                             fixed_image=SimpleITK.Cast(fixed_image, SimpleITK.sitkFloat32),
                             moving_image=SimpleITK.Cast(moving_image, SimpleITK.sitkFloat32),
                             initial_transform=initial_transform,
                             shrink_factors=config["ShrinkFactors"],
                             smoothing_sigmas=config["SmoothingSigmas"])


def image_registration_demons(fixed_image: Image,
                              moving_image: Image,
                              fixed_image_mask: Optional[Image] = None,
                              config: Optional[ConfigType] = None,
                              monitor: Optional[RegistrationMonitor] = None) -> SimpleITK.DisplacementFieldTransform:
    """Demons registration through the ImageRegistrationMethod framework: Demons metric, gradient descent
    and a smoothed displacement field transform. The multi-resolution schedule comes from the configuration,
    with the original resolution appended as the finest level.

    When fixed_image_mask is given, only fixed image voxels inside the mask contribute to the metric.
    """
    config = load_demons_config(config)

    if fixed_image_mask is not None and not same_grid(fixed_image_mask, fixed_image):
        raise ValueError("The fixed image mask should share the fixed image grid.")

    # The displacement field lives on the fixed image grid and is optimized in place.
    transform_to_displacement_field_filter = SimpleITK.TransformToDisplacementFieldFilter()
    transform_to_displacement_field_filter.SetReferenceImage(fixed_image)
    initial_transform = SimpleITK.DisplacementFieldTransform(
        transform_to_displacement_field_filter.Execute(SimpleITK.Transform(fixed_image.GetDimension(), SimpleITK.sitkIdentity)))

    # Regularization (update field - viscous, total field - elastic).
    initial_transform.SetSmoothingGaussianOnUpdate(varianceForUpdateField=config["VarianceForUpdateField"],
                                                   varianceForTotalField=config["VarianceForTotalField"])

    registration_method = SimpleITK.ImageRegistrationMethod()
    registration_method.SetInitialTransform(initial_transform, inPlace=True)

    registration_method.SetMetricAsDemons(config["DemonsMetricIntensityDifferenceThreshold"])
    if fixed_image_mask is not None:
        registration_method.SetMetricFixedMask(fixed_image_mask)

    # Multi-resolution framework.
    registration_method.SetShrinkFactorsPerLevel(shrinkFactors=list(config["ShrinkFactors"]) + [1])
    registration_method.SetSmoothingSigmasPerLevel(smoothingSigmas=list(config["SmoothingSigmas"]) + [0])
    registration_method.SmoothingSigmasAreSpecifiedInPhysicalUnitsOn()

    registration_method.SetInterpolator(SimpleITK.sitkLinear)
    registration_method.SetOptimizerAsGradientDescent(learningRate=config["LearningRate"],
                                                      numberOfIterations=int(config["NumberOfIterations"]),
                                                      convergenceMinimumValue=config["ConvergenceMinimumValue"],
                                                      convergenceWindowSize=int(config["ConvergenceWindowSize"]))
    registration_method.SetOptimizerScalesFromPhysicalShift()

    if monitor is not None:
        monitor.attach_to_method(registration_method, initial_transform)

    registration_method.Execute(SimpleITK.Cast(fixed_image, SimpleITK.sitkFloat32),
                                SimpleITK.Cast(moving_image, SimpleITK.sitkFloat32))

    logger.info(f"Optimizer stopped: {registration_method.GetOptimizerStopConditionDescription()}")

    return initial_transform


class ThoracicDemonsReg:
    """
    Deformable registration between two respiratory phases of a thoracic 4D CT.

    Parameters
    ----------
        fixed_image: Reference phase. Transforms map points from this image to the moving image.

        moving_image: Phase to be aligned onto the reference.

        config: Demons parameters. See data/demons_defaults.json for the available keys.

    Limitations:
        Both phases should come from the same acquisition (same FOV and orientation). Demons assumes
        corresponding structures have similar intensities.
    """

    def __init__(self,
                 fixed_image: Image,
                 moving_image: Image,
                 config: Optional[ConfigType] = None,
                 monitor: Optional[RegistrationMonitor] = None) -> None:

        if fixed_image.GetDimension() != moving_image.GetDimension():
            raise ValueError(f"Images should have the same dimension, got {fixed_image.GetDimension()} and {moving_image.GetDimension()}.")

        self.config = load_demons_config(config)
        self.monitor = monitor

        self.fixed_image = SimpleITK.Cast(fixed_image, SimpleITK.sitkFloat32)
        self.moving_image = SimpleITK.Cast(moving_image, SimpleITK.sitkFloat32)

        self.InitialTransform: Optional[Transform] = None
        self.ElasticTransform: Optional[SimpleITK.DisplacementFieldTransform] = None

    def initial_alignment(self) -> None:
        """Rigid initialization aligning the image centers ("Geometry") or centers of mass ("Moments")."""
        if self.config["InitialAlignment"] == "None":
            return None

        rigid_transform = SimpleITK.Euler3DTransform() if self.fixed_image.GetDimension() == 3 else SimpleITK.Euler2DTransform()
        operation_mode = (SimpleITK.CenteredTransformInitializerFilter.GEOMETRY
                          if self.config["InitialAlignment"] == "Geometry"
                          else SimpleITK.CenteredTransformInitializerFilter.MOMENTS)

        self.InitialTransform = SimpleITK.CenteredTransformInitializer(self.fixed_image,
                                                                       self.moving_image,
                                                                       rigid_transform,
                                                                       operation_mode)
        return None

    def elastic_alignment(self) -> None:
        self.ElasticTransform = demons_registration(fixed_image=self.fixed_image,
                                                    moving_image=self.moving_image,
                                                    config=self.config,
                                                    initial_transform=self.InitialTransform,
                                                    monitor=self.monitor)
        return None

    def transform(self, image: Optional[Image] = None, is_mask: bool = False) -> Image:
        """Warp image (the moving image by default) onto the fixed image grid with the elastic transform.
        Masks are warped with nearest neighbour interpolation to keep their labels."""
        if self.ElasticTransform is None:
            raise AssertionError("Transform was not calculated.")

        image = self.moving_image if image is None else image
        interpolator = SimpleITK.sitkNearestNeighbor if is_mask else SimpleITK.sitkLinear

        return warp_image(moving_image=image,
                          reference_image=self.fixed_image,
                          transform=self.ElasticTransform,
                          interpolator=interpolator)

    def register(self) -> Image:
        """Initial alignment (if configured) followed by multiscale Demons. Returns the warped moving image."""
        if self.ElasticTransform is None:
            self.initial_alignment()
            logger.info("Computing Elastic Registration, This might take several minutes ...")
            self.elastic_alignment()

        return self.transform()
