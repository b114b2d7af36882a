"""Report job worker: queue, pipeline, scheduler, and retention sweep.

The worker claims one pending report job at a time from a SQLite-backed
queue, drives it through a fixed sequence of stages that call injected
collaborators (project data, AI services, rendering, artifact storage),
and records exactly one terminal status per run. A retention sweep on its
own timer deletes expired artifacts while keeping the job rows for history.
"""
