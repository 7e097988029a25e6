"""
Ledger projection package.

Projects content cards and permissions carried in finalized ledger blocks
into a relational store. The block contracts live under `ledger`, the
projector under `content_projector`.
"""

__all__: list[str] = []
