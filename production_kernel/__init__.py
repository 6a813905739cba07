"""
Production Kernel

Floor progression bookkeeping for knitted articles with:
- Additive per-floor quantity counters
- Forward propagation of completed work
- Quality grading (M1-M4) on inspection floors
- Repair loopback of repairable stock
- Hash-chained, append-only article logs
"""

__version__ = "0.1.0"
