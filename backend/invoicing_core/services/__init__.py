"""Service Layer — stateful components that orchestrate IO around core/ logic.

Invariants:
    - Collaborators (auth, stores, event bus) are injected, never imported as globals
    - Remote failures are absorbed here and surfaced as negative results
"""
