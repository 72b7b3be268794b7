from .chunk import chunk_nodes

__all__ = [
    "chunk_nodes",
]
