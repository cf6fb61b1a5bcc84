"""
Service interfaces for dependency inversion.
Allows swapping implementations without changing business logic.
"""

from .class_lock import ClassLock
from .local_lock import LocalClassLock

__all__ = ['ClassLock', 'LocalClassLock']
