"""SHEGA home environmental-safety telemetry backend."""
