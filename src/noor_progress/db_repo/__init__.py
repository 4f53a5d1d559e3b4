from .base import BaseDatabase
from .children import ChildMixin
from .ledger import LedgerMixin
from .goals import GoalMixin
from .achievements import AchievementMixin
from .rewards import RewardMixin
from .system import SystemMixin

__all__ = [
    "BaseDatabase",
    "ChildMixin",
    "LedgerMixin",
    "GoalMixin",
    "AchievementMixin",
    "RewardMixin",
    "SystemMixin",
]
