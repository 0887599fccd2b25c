"""Infrastructure Layer — concrete collaborators (storage, events, logging).

Invariants:
    - Implementations satisfy the Protocols in core/repository_protocols.py
    - Nothing here imports from services/
"""
