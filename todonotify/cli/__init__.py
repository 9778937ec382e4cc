"""Command-line interface for todonotify."""
