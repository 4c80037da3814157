from lungreg.registration.pyramid import (
    smooth_and_resample,
    build_image_pyramid,
    validate_schedule,
    ScheduleError,
    DegenerateGeometryError
)

from lungreg.registration.demons import (
    RegistrationStep,
    FilterRegistrationStep,
    multiscale_demons
)

from lungreg.registration.filters import (
    create_demons_filter,
    load_demons_config,
    RegistrationMonitor
)

from lungreg.registration.thoracic import (
    ThoracicDemonsReg,
    demons_registration,
    image_registration_demons
)

from lungreg.evaluation.metrics import (
    registration_errors,
    summarize_errors
)

from lungreg.io.data import (
    read_points,
    write_points,
    load_image
)

from lungreg.ImagingDS.Study4D import (
    Thoracic4DStudy,
    create_4dct_study_from_files
)

from lungreg.plots.plots import (
    plot_error_histogram,
    plot_errors_before_after,
    plot_registration_progress
)

from lungreg.utils.logging_config import (
    setup_logging,
    get_logger
)
