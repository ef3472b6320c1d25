"""
SynCare - appointment booking and slot matching for care practices.
"""

__version__ = "0.3.0"
