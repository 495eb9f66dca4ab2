"""
Shared helpers for the POS apps.
"""
