"""FastAPI application for the diary backend."""
