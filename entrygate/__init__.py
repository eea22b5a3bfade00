"""
EntryGate

Indicator scoring, entry gating and candle confirmation for short-expiry
trading decisions.
"""

__version__ = "1.0.0"
