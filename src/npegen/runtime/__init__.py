"""
Python runtime for generated dispatch tables.
"""

from .tags import element_type, type_of, type_tag
from .views import DenseView, SparseView, Moved, move, make_view
from .dispatch import Dispatcher

__all__ = [
    "element_type",
    "type_of",
    "type_tag",
    "DenseView",
    "SparseView",
    "Moved",
    "move",
    "make_view",
    "Dispatcher",
]
