"""Tracker activities.

Each activity performs a single unit of work for the tracker:
- poll_operation: One classified status query against a remote client
"""
