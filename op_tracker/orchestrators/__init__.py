"""Operation orchestration.

Drives one remote operation from ``start`` to a terminal state:
1. PollScheduler → delay before each poll (sticky interval, slow-down)
2. OperationTracker → start once, poll until terminal, resolve the artifact
3. track_operation / resolve_artifact → wiring used by the application
"""
