"""Core gameplay primitives (board, dictionary, chain validation, scoring).

Kept free of FastAPI and transport concerns so sessions, both authorities,
and tests can share them.
"""
