"""Platform probes consumed by checks and the orchestrator.

Each probe is a read-only query that returns a typed value or raises a
:class:`~tpudoc.errors.TpuDocError` subclass.
"""
