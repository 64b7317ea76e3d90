"""Adapters binding the core ports to HTTP, SQLite, SMTP and the Bot API."""
