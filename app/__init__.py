"""FastAPI application exposing the latest sensor reading."""
