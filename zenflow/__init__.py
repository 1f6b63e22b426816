"""
Zenflow backend package.

This package provides a FastAPI application that stores accounts, daily
activity logs and per-user dashboard metadata behind a storage abstraction
with a database backend and a single-file fallback.
"""
