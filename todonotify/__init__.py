"""
todonotify - real-time task reminder notifications for the todo client.
"""

__version__ = "0.1.0"
