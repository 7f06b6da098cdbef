"""
Fleet Kernel

Trip scheduling and financial-ledger core for a fleet-logistics back office:
- Double-booking prevention for trucks and drivers
- Trip lifecycle state machine with atomic side effects
- Invoice / payment ledger with consistent client exposure
- Date-scoped sequential document numbers
"""

__version__ = "0.1.0"
