from lungreg.utils.logging_config import (
    setup_logging,
    get_logger,
    Timer
)
