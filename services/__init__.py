"""Sensor polling and process orchestration."""
