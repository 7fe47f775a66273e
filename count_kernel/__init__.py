"""
Count Kernel - inventory count reconciliation core.

Area-by-area physical counts consolidated into one count record with:
- Closed-enum session and area lifecycles
- Canonical tenthed quantities (full units + partial unit)
- Session-level expected quantities shared across areas
- Typed, recoverable errors
"""

__version__ = "0.1.0"
