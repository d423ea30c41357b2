"""Core HR module — the Employee model the leave engine validates against."""

from hrms.core_hr.models import Employee

__all__ = ["Employee"]
