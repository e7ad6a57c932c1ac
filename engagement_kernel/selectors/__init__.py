"""Read-only query selectors."""

from engagement_kernel.selectors.base import BaseSelector
from engagement_kernel.selectors.project_selector import ProjectSelector

__all__ = ["BaseSelector", "ProjectSelector"]
