"""
Spatial Alignment Module

This module provides the ICP registration engine, its correspondence
rejectors and the rough translation applied before ICP.
"""

from .fine_registration import RegistrationEngine, RegistrationState, RegistrationOutcome
from .coarse_registration import CoarseRegistration
from .rejectors import (
    Correspondences,
    DistanceRejector,
    OverlapTrimmingRejector,
    OneToOneRejector,
    build_rejectors,
)

__all__ = [
    "RegistrationEngine",
    "RegistrationState",
    "RegistrationOutcome",
    "CoarseRegistration",
    "Correspondences",
    "DistanceRejector",
    "OverlapTrimmingRejector",
    "OneToOneRejector",
    "build_rejectors",
]
