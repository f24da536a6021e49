"""Marketplace approval workflow engine.

Governs seller, product and return lifecycles: permission-gated state
transitions, escalation to super-admins, and an append-only audit trail.
"""

__version__ = "0.1.0"
