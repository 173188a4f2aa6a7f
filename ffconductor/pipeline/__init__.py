"""
Scheduling layer of ffconductor.

Modules:
    conversion_queue.py: `ConversionQueue`, a pausable worker pool that runs
                         conversions and reports each outcome to observers.
    batch_pipeline.py: `BatchConversionPipeline`, the directory batch
                       conversion used by the command line.
"""
