"""Chunk readers (file I/O only, no DB)."""

from recordflow_batch.readers.chunk_reader import ChunkReader, FileChunkReader

__all__ = [
    "ChunkReader",
    "FileChunkReader",
]
