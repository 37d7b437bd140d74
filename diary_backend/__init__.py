"""Diary backend REST service."""
