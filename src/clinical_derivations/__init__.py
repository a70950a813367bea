"""SDTM/ADaM derivations: DS domain, ADSL and adverse-event reporting."""

__version__ = "0.1.0"
