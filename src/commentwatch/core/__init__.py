"""Core domain package for commentwatch.

Core contains pagination, fan-out, change detection and notification
sequencing without any HTTP, SQLite or SMTP specific code, keeping the
synchronization logic portable.
"""
