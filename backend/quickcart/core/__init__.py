"""
Shared configuration, logging and security helpers for the QuickCart backend.
"""
