"""Power state drivers"""
from .drivers import (
    CaffeinateDriver,
    NullDriver,
    SystemdInhibitDriver,
    WindowsDriver,
    create_driver,
)

__all__ = [
    "CaffeinateDriver",
    "NullDriver",
    "SystemdInhibitDriver",
    "WindowsDriver",
    "create_driver",
]
