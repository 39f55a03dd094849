"""
Tools for kvshed.

This module provides operational tools:
- cli: Inspect the schema catalogue and stored values of a store
"""
