"""
QuickCart order placement and delivery fulfillment engine.
"""

__version__ = "1.0.0"
