"""
Directory Models

Users, departments and fleet resources the workflow consumes.
These records are maintained outside the workflow core (directory sync, fleet admin).
"""

from typing import Optional

from pydantic import BaseModel

from svcreq_api.workflow.enums import UserRole


class ActorContext(BaseModel):
    """Already-authenticated identity of the caller, passed explicitly on every call."""

    user_id: int
    role: UserRole
    department_id: Optional[int] = None

    @property
    def is_administrator(self) -> bool:
        return self.role == UserRole.SUPER_ADMINISTRATOR


class User(BaseModel):
    """Directory user database model."""

    user_id: int
    username: str
    email: Optional[str] = None
    first_name: str = ""
    last_name: str = ""
    role: UserRole = UserRole.REQUESTOR
    department_id: Optional[int] = None
    is_active: bool = True

    class Config:
        from_attributes = True

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip() or self.username


class Department(BaseModel):
    """Department (hierarchical) database model."""

    department_id: int
    name: str
    parent_id: Optional[int] = None
    is_active: bool = True
    is_vehicle_steward: bool = False  # e.g. ODHC: manages service vehicles

    class Config:
        from_attributes = True


class Vehicle(BaseModel):
    """Fleet vehicle database model."""

    vehicle_id: int
    plate_number: str
    description: Optional[str] = None
    is_active: bool = True


class Driver(BaseModel):
    """Fleet driver database model."""

    driver_id: int
    name: str
    is_active: bool = True
