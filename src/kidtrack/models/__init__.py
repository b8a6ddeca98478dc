"""kidtrack data models."""

from kidtrack.models.child import Child, ChildWithRelation
from kidtrack.models.log import DailyLog
from kidtrack.models.profile import Profile
from kidtrack.models.relation import AccessRelation

__all__ = ["AccessRelation", "Child", "ChildWithRelation", "DailyLog", "Profile"]
