"""Programmer plugins registry.

This module provides a registry of available programmer plugins and
utilities for discovering and instantiating them.
"""

from .base import CommandResult, ProgrammerBase
from .silabs_commander import SimplicityCommander

# Registry of available programmer plugins
# Key is the programmer type ID used in settings
PROGRAMMER_REGISTRY = {
    'simplicity_commander': SimplicityCommander,
}


def get_available_programmers() -> dict:
    """Get dictionary of available programmer types.

    Returns:
        Dict mapping type_id -> display_name
    """
    return {
        type_id: cls.name
        for type_id, cls in PROGRAMMER_REGISTRY.items()
    }


def get_programmer_class(type_id: str) -> type:
    """Get programmer class by type ID.

    Raises:
        KeyError: If type_id is not registered
    """
    return PROGRAMMER_REGISTRY[type_id]


def create_programmer(type_id: str, **kwargs) -> ProgrammerBase:
    """Create a programmer instance.

    Args:
        type_id: Programmer type identifier
        **kwargs: Passed to the plugin constructor

    Returns:
        Programmer instance
    """
    cls = get_programmer_class(type_id)
    return cls(**kwargs)


__all__ = [
    'CommandResult',
    'ProgrammerBase',
    'SimplicityCommander',
    'PROGRAMMER_REGISTRY',
    'get_available_programmers',
    'get_programmer_class',
    'create_programmer',
]
