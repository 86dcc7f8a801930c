"""Framework-free state models behind the POSTTRR client widgets."""

from posttrr.ui.image_viewer import ImageViewerState
from posttrr.ui.install_prompt import InstallBanner, IOSInstallGuide

__all__ = ["ImageViewerState", "InstallBanner", "IOSInstallGuide"]
