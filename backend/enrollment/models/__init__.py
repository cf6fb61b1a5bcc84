from enrollment.models.mclass import MClass
from enrollment.models.application import Application

__all__ = ["MClass", "Application"]
