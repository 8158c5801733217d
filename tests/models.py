"""Record types shared by the test suite."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from sqld.domain.models import Model, column


class Status(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class Account(Model):
    id: int = column("id", "id")
    name: str = column("name", "name")

    @classmethod
    def table_name(cls) -> str:
        return "accounts"


class Employee(Model):
    id: int = column("id", "id")
    name: str = column("name", "full_name")
    age: int = column("age", "age")
    email: Optional[str] = column("email", "email", None)
    salary: Decimal = column("salary", "salary", Decimal("0"))
    status: Status = column("status", "status", Status.ACTIVE)
    is_active: bool = column("is_active", "is_active", True)
    created_at: Optional[datetime] = column("created_at", "created_at", None)
    reporting_to: List[int] = column("reporting_to", "reporting_to", default_factory=list)

    @classmethod
    def table_name(cls) -> str:
        return "employees"


class EmployeeSearchParams(Model):
    """Parameter descriptor for raw queries: column names match the placeholders."""

    min_age: int = column("minAge", "min_age")
    status: str = column("status", "status")
    manager: Optional[int] = column("manager", "manager", None)
