"""
Pandera schemas for derivation inputs and outputs.
"""

from .pandera_models import ADAEModel, ADSLModel, CTSpecModel, DSDomainModel

__all__ = [
    'ADAEModel',
    'ADSLModel',
    'CTSpecModel',
    'DSDomainModel',
]
