"""Persistence layer: MongoDB connection, repositories and unit of work."""

from .mongo import MongoDB
from .unit_of_work import InMemoryUnitOfWork, UnitOfWork, create_unit_of_work

__all__ = ["InMemoryUnitOfWork", "MongoDB", "UnitOfWork", "create_unit_of_work"]
