"""Output writers for assembled code locations."""

from depdetect.output.bdio import BdioWriter, graph_document

__all__ = ["BdioWriter", "graph_document"]
