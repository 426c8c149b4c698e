"""Core Layer — pure domain logic, no IO, no async, no DB.

Invariants:
    - No module in core/ imports from services/, infrastructure/, models/ or db/
    - All functions are pure and deterministic (time and randomness are passed in)

Design Decisions:
    - Functional core separated from imperative shell: services/ orchestrate
      the async calls around the pure transitions defined here
"""
