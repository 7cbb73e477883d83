"""
Rental Kernel - return-processing workflow for a car-rental back office.

- Strictly ordered return state machine with step gating
- Sticky exception classification for damaged or late returns
- Late-fee calculation, approval, and override
- Atomic per-step persistence with an append-only audit trail
"""

__version__ = "0.1.0"
