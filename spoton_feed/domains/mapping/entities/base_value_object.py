"""
Base value object implementation for the mapping domain.

Value objects are immutable objects that are defined by their attributes.
They have no conceptual identity and are compared by their values.
"""
from abc import ABC
from dataclasses import dataclass, fields
from typing import Any, Dict


@dataclass(frozen=True)
class BaseValueObject(ABC):
    """
    Base class for geometric value objects.

    Value objects must be:
    - Immutable (frozen=True)
    - Compared by value equality
    - Validated on construction
    """

    def __post_init__(self) -> None:
        self._validate()

    def _validate(self) -> None:
        """Override in subclasses to add validation logic."""
        pass

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}
