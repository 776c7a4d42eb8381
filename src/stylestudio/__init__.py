"""StyleStudio - local history and template storage for photo restyling."""

__version__ = "0.1.0"

from stylestudio.core.config import StyleStudioConfig, config
from stylestudio.core.services import Services, build_services

__all__ = [
    "Services",
    "StyleStudioConfig",
    "build_services",
    "config",
]
