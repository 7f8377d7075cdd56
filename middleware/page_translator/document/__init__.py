"""Document tree adapters."""

from .base import DocumentTree, TextHandle
from .soup import SoupDocument

__all__ = ["DocumentTree", "TextHandle", "SoupDocument"]
