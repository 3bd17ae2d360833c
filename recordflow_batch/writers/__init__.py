"""
recordflow_batch.writers -- Write sinks for processed chunks.
"""

from recordflow_batch.writers.chunk_writer import ChunkWriter, SqlChunkWriter

__all__ = ["ChunkWriter", "SqlChunkWriter"]
