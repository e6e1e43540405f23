"""Scheduling module for periodic event queue maintenance."""

from .service import MaintenanceScheduler

__all__ = [
    "MaintenanceScheduler",
]
