"""Remote source adapters."""

from .base_adapter import BaseAdapter
from .xbill_adapter import XBillAdapter

__all__ = ["BaseAdapter", "XBillAdapter"]
