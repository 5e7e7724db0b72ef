"""
SQLAlchemy Models for たすきゃっちゃー
"""

from taskcatcher.models.base import (
    Base,
    PRIORITIES,
    SOURCES,
    TASK_STATUSES,
    USER_TYPES,
)
from taskcatcher.models.company import Company
from taskcatcher.models.room import Room
from taskcatcher.models.task import Task
from taskcatcher.models.settings import CompanySettings, SlackWorkspace
from taskcatcher.models.user import Role, RolePermission, User, UserRole

__all__ = [
    "Base",
    "PRIORITIES",
    "SOURCES",
    "TASK_STATUSES",
    "USER_TYPES",
    "Company",
    "Room",
    "Task",
    "CompanySettings",
    "SlackWorkspace",
    "User",
    "Role",
    "RolePermission",
    "UserRole",
]
