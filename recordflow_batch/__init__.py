"""
recordflow_batch -- Partitioned, fault-tolerant record processing.

Pipeline::

    RangePartitioner -> PartitionDescriptors
        -> PartitionedJobExecutor (one PartitionWorker thread per partition)
            -> FileChunkReader -> MetadataTransformer -> SqlChunkWriter
               wrapped by FaultTolerantExecutor
        -> JobResult

Entry point: ``recordflow_batch.orchestrator.BatchOrchestrator``.
"""
