"""Services Layer — Service Core, capability layers, and their composition.

Invariants:
    - Every capability override delegates explicitly to super() (same-named operation)
    - Composed service types are built only by the capability registry

Design Decisions:
    - One file per concern (core, resolver, options, overlay, capability group, registry)
      for locality (ADR: no god objects)
"""
