from .config import MaintenanceConfig
from .models import IndexFragmentationRecord, MaintenanceAction, MaintenanceReport
from .remediator import FragmentationRemediator
from .report import format_report

__all__ = [
    "FragmentationRemediator",
    "MaintenanceConfig",
    "MaintenanceAction",
    "IndexFragmentationRecord",
    "MaintenanceReport",
    "format_report",
]
