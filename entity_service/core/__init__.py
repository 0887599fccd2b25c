"""Core Layer — pure building blocks, no IO, no async, no DB.

Invariants:
    - No module in core/ imports from services/, infrastructure/, or db/
    - Collaborators are described by Protocols only

Design Decisions:
    - Functional core separated from imperative shell (ADR: services orchestrate IO around core types)
"""
