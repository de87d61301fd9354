"""
Core domain models, mathematical primitives, and invariants of the Orbital engine.

This module contains the foundational building blocks that are independent
of the host (custody, persistence, transport).
"""
