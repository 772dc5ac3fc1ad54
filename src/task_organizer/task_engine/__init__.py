"""Hierarchical task organization engine.

This package provides the snapshot index, hierarchical filter, manual
ordering, Kanban workflow, Gantt and calendar projections, and the engine
facade that turns drag gestures into mutation requests.  The file-backed
repository is the reference persistence collaborator.
"""
