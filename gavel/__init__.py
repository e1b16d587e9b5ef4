"""
Gavel

A single-auction settlement engine:
- One administrator seeds an item catalog with starting prices
- Participants bid until a fixed deadline
- Anyone reads the per-item winners once the deadline passes
"""

__version__ = "0.1.0"
