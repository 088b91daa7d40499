"""
Backend package for the Bambiland API.

This package provides a FastAPI application with storage and database
abstractions for the membership feed, the story reader and the admin
surface, plus a JSON-file fallback for development without Postgres.
"""
