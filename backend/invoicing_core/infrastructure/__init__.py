"""Infrastructure Layer — external service clients and cross-cutting concerns.

Invariants:
    - Infrastructure never imports from services/
    - All external calls wrapped with retry/timeout/error mapping
    - Adapters satisfy the Protocols in core/repository_protocols.py
"""
