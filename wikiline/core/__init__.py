"""Core gameplay rules (placement checks, scoring, feedback text).

Kept free of FastAPI and Redis concerns so it can be reused by the game store, the demo, and tests.
"""
