"""Read-only selectors for the appraisal kernel."""

from appraisal_kernel.selectors.appraisal_selector import AppraisalSelector
from appraisal_kernel.selectors.base import BaseSelector

__all__ = ["BaseSelector", "AppraisalSelector"]
