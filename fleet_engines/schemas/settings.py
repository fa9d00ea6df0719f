"""
Settings Row Schemas

Loosely-typed configuration rows as stored, and the issues raised
while validating them.
"""

from typing import Any

from pydantic import BaseModel


class IncentiveSetting(BaseModel):
    """A key/value configuration row (divisors, fuel tier JSON, ...)."""

    setting_key: str
    setting_value: Any = None
    description: str | None = None
    is_active: bool = True


class ConfigIssue(BaseModel):
    """A configuration item that was rejected, defaulted, or looks suspicious."""

    source: str
    item: str
    reason: str
