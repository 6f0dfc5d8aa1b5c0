"""
Narrative engine for interactive life simulations.

Tracks story arcs, secrets, relationships and character agendas as a
single immutable state value, and turns that state into directives and
prompt fragments for an external text-completion service.
"""

from .state import *  # noqa: F401,F403  (must load before rules/systems)
from .state import __all__ as _state_all
from .systems import *  # noqa: F401,F403
from .systems import __all__ as _systems_all

__version__ = "1.1.0"

__all__ = [*_state_all, *_systems_all]
