"""Async Remote Operation Tracker.

Drives long-running remote operations (OAuth2 device-authorization
logins, asynchronous generation jobs) to completion through repeated
status polls, honouring server-directed backoff, and resolves the
resulting artifacts into a local content-addressed cache.
"""

__version__ = "0.1.0"
