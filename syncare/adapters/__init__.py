"""
Adapters layer - Record storage behind the scheduling protocols.
"""

from .json_store import JsonRecordStore

__all__ = ["JsonRecordStore"]
