"""Kernel utilities shared across the sync subsystem.

Rules:
- Kernel code must not import from connectors, sync or api layers.
- Kernel utilities should stay small and stable; avoid business logic here.
"""
