"""Arena tree and node accessor layer.

This module provides the index-addressed document tree, its node records and
type flags, and the builder that fills a tree from YAML source text.
"""

from .arena import ROOT, Tree
from .builder import TreeBuilder, shorten_tag
from .node import NONE, NodeData, NodeScalar, Span
from .node_type import NodeType

__all__ = [
    "ROOT",
    "Tree",
    "TreeBuilder",
    "shorten_tag",
    "NONE",
    "NodeData",
    "NodeScalar",
    "Span",
    "NodeType",
]
