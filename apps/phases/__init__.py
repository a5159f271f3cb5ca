"""Pipeline phases for Backforge.

Usage:
    from apps.phases import InterfacePrerequisitePhase

    phase = InterfacePrerequisitePhase(state)
    prerequisites = await phase.execute()
"""

# Base class
from apps.phases.base_phase import BasePhase

# Phase implementations
from apps.phases.interface_prerequisite import (
    InterfacePrerequisitePhase,
    PrerequisiteComplete,
)

__all__ = [
    "BasePhase",
    "InterfacePrerequisitePhase",
    "PrerequisiteComplete",
]
