"""
Interface module - API operation graph checks.

Contains:
- validate_prerequisites: Checks declared prerequisites of one operation
- find_cycles: Transitive prerequisite cycle detection
"""

from libs.interface.prerequisite_validator import (
    associate,
    find_cycles,
    is_candidate,
    is_prerequisite,
    prerequisite_table,
    validate_prerequisites,
)

__all__ = [
    "associate",
    "find_cycles",
    "is_candidate",
    "is_prerequisite",
    "prerequisite_table",
    "validate_prerequisites",
]
