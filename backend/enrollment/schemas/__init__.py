from enrollment.schemas.common import Actor, Page
from enrollment.schemas.mclass import ClassCreate, ClassResponse, ClassBrief, Occupancy
from enrollment.schemas.application import ApplicationRecord, ApplicationSummary

__all__ = [
    "Actor", "Page",
    "ClassCreate", "ClassResponse", "ClassBrief", "Occupancy",
    "ApplicationRecord", "ApplicationSummary",
]
