"""Provider connector: resilience primitives, auth and the HTTP client.

Keep imports in this module lightweight; import submodules directly.
"""
