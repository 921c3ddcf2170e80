"""Collector package for the node inventory agent.

Polls the Kubernetes node list on a schedule and turns every node into
inventory, runtime, capacity and accelerator records for downstream sinks.

Submodules
----------
scheduler      -- IntervalTimer and PeriodicScheduler: drift-free, cancellable ticks.
node_collector -- NodeInventoryCollector: pagination loop and failure boundaries.
transform      -- NodeTransformer: pure raw-node to record derivation.
quantity       -- Kubernetes resource quantity parsing.
sampler        -- TelemetrySampler: throttled operational telemetry.
emitter        -- BatchEmitter: tagged batches and destination fan-out.
errors         -- Error taxonomy shared by the pipeline.
"""
