from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pandas
import SimpleITK
from SimpleITK import Image

from lungreg.evaluation.metrics import registration_errors
from lungreg.io.data import load_image, read_points
from lungreg.registration.filters import RegistrationMonitor
from lungreg.registration.thoracic import ThoracicDemonsReg, image_registration_demons
from lungreg.utils.logging_config import get_logger

logger = get_logger(__name__)

PointType = Tuple[float, ...]
ConfigType = Dict[str, Any]


class Thoracic4DStudy:
    """4D thoracic CT Data Class holding one 3D image per respiratory phase, alongside with
    optional anatomical landmarks and masks per phase."""

    def __init__(self,
                 images: Dict[int, Image],
                 points: Optional[Dict[int, List[PointType]]] = None,
                 masks: Optional[Dict[int, Image]] = None
                 ) -> None:
        """
        images: Dictionary of (phase ID, SimpleITK image).
        points: Dictionary of (phase ID, list of landmarks in physical coordinates). Landmarks with the same index
                are assumed to correspond across phases.
        masks: Dictionary of (phase ID, mask image), e.g. lung or body masks."""

        if len(images) == 0:
            raise ValueError("A 4D study needs at least one phase.")

        self.images = images
        self.points = points if points is not None else {}
        self.masks = masks if masks is not None else {}

        for phase_id in list(self.points) + list(self.masks):
            if phase_id not in self.images:
                raise ValueError(f"Phase {phase_id} has points or masks but no image. Available phases: {self.phases}")

        return None

    @property
    def phases(self) -> List[int]:
        return sorted(self.images.keys())

    def image_at(self, phase_id: int) -> Image:
        if phase_id not in self.images:
            raise ValueError(f"Phase {phase_id} is not part of the study. Available phases: {self.phases}")
        return self.images[phase_id]

    def points_at(self, phase_id: int) -> List[PointType]:
        if phase_id not in self.points:
            raise ValueError(f"No landmarks available for phase {phase_id}.")
        return self.points[phase_id]

    def check_points_consistency(self) -> None:
        """Check that we have the same number of landmarks in all phases"""
        counts = {phase_id: len(points) for phase_id, points in self.points.items()}

        if len(set(counts.values())) > 1:
            raise AssertionError(f"Inconsistent landmarks! -> {counts}")

        return None

    def register_phase(self,
                       fixed_id: int,
                       moving_id: int,
                       config: Optional[ConfigType] = None,
                       monitor: Optional[RegistrationMonitor] = None,
                       use_fixed_mask: bool = False) -> SimpleITK.DisplacementFieldTransform:
        """Register the moving phase onto the fixed phase. The returned transform maps
        points of the fixed phase to the moving phase.

        With use_fixed_mask, the registration method variant is used and only voxels inside the
        fixed phase mask drive the registration."""
        logger.info(f"Registering phase {moving_id} to phase {fixed_id} ...")

        if use_fixed_mask:
            if fixed_id not in self.masks:
                raise AssertionError(f"No mask available for phase {fixed_id}. Can't continue.")

            return image_registration_demons(fixed_image=self.image_at(fixed_id),
                                             moving_image=self.image_at(moving_id),
                                             fixed_image_mask=self.masks[fixed_id],
                                             config=config,
                                             monitor=monitor)

        reg_manager = ThoracicDemonsReg(fixed_image=self.image_at(fixed_id),
                                        moving_image=self.image_at(moving_id),
                                        config=config,
                                        monitor=monitor)
        reg_manager.initial_alignment()
        reg_manager.elastic_alignment()

        return reg_manager.ElasticTransform

    def registration_report(self,
                            reference_phase: int,
                            config: Optional[ConfigType] = None,
                            use_fixed_mask: bool = False) -> pandas.DataFrame:
        """Register every other phase with landmarks onto reference_phase and report the target
        registration error (TRE) before (identity) and after registration.

        Args:
            reference_phase (int): Phase used as fixed image.
            config (Optional[ConfigType], optional): Demons parameters. Defaults to None.
            use_fixed_mask (bool, optional): Restrict the registration to the reference phase mask. Defaults to False.

        Returns:
            pandas.DataFrame: One row per moving phase, with mean/std/max TRE before and after registration.
        """
        self.check_points_consistency()
        fixed_points = self.points_at(reference_phase)
        identity = SimpleITK.Transform(self.image_at(reference_phase).GetDimension(), SimpleITK.sitkIdentity)

        rows = {}
        for phase_id in self.phases:
            if phase_id == reference_phase or phase_id not in self.points:
                continue

            moving_points = self.points[phase_id]
            before_mean, before_std, _, before_max, _ = registration_errors(identity, fixed_points, moving_points)

            transform = self.register_phase(fixed_id=reference_phase, moving_id=phase_id, config=config,
                                           use_fixed_mask=use_fixed_mask)
            after_mean, after_std, _, after_max, _ = registration_errors(transform, fixed_points, moving_points)

            logger.info(f" >>> Phase {phase_id}: TRE {before_mean:.2f} ({before_std:.2f}) -> {after_mean:.2f} ({after_std:.2f})")

            rows[phase_id] = {"TRE_before_mean": before_mean, "TRE_before_std": before_std, "TRE_before_max": before_max,
                              "TRE_after_mean": after_mean, "TRE_after_std": after_std, "TRE_after_max": after_max}

        report = pandas.DataFrame.from_dict(rows, orient="index")
        report.index.name = "phase"

        return report


def create_4dct_study_from_files(image_files: Dict[int, Path],
                                 point_files: Optional[Dict[int, Path]] = None,
                                 mask_files: Optional[Dict[int, Path]] = None) -> Thoracic4DStudy:
    """Creates a Thoracic4DStudy from image, landmark and mask files indexed by phase ID.

    Args:
        image_files (Dict[int, Path]): Image file (any SimpleITK readable format) per phase.
        point_files (Optional[Dict[int, Path]], optional): Landmark file per phase (one x y z point per line). Defaults to None.
        mask_files (Optional[Dict[int, Path]], optional): Mask file per phase. Defaults to None.

    Returns:
        Thoracic4DStudy: The loaded study.
    """
    images = {phase_id: load_image(file_name) for phase_id, file_name in image_files.items()}
    points = {phase_id: read_points(file_name) for phase_id, file_name in (point_files or {}).items()}
    masks = {phase_id: load_image(file_name, SimpleITK.sitkUInt8) for phase_id, file_name in (mask_files or {}).items()}

    return Thoracic4DStudy(images=images, points=points, masks=masks)
