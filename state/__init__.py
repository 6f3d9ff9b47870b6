"""Concurrency-safe cache of the latest reading."""
