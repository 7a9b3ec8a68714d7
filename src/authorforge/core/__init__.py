"""Core data types for the orchestration core."""
