"""Core capture, session and upload logic for webclipper."""
