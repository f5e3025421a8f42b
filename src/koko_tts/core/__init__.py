"""
Core Infrastructure for koko-tts.

    - config.py: Configuration loading and validation
    - directory.py: On-disk layout (cache, outputs, temp)
    - errors.py: Coded exception hierarchy
    - logging/: Structured logging with numeric levels
"""
