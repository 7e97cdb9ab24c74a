"""
TreeCopy - one-way directory synchronization.

Scans a source tree, classifies every entry against a destination tree,
lets the caller adjust a selection and copies the selected entries.
"""

__version__ = "1.0.0"
