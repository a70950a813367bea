"""
Derivation building blocks shared by the SDTM and ADaM scripts.
"""

from .extreme import Event, aggregate_extreme, derive_vars_extreme_event
from .lookup import LookupRule, apply_lookup, derive_vars_cat
from .selection import derive_vars_merged, select_extreme

__all__ = [
    'Event',
    'LookupRule',
    'aggregate_extreme',
    'apply_lookup',
    'derive_vars_cat',
    'derive_vars_extreme_event',
    'derive_vars_merged',
    'select_extreme',
]
