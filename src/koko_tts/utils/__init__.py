"""
Utility Modules for koko-tts.

    - audio.py: AudioBuffer and canonical WAV encoding/decoding
    - text.py: Whitespace clean-up and size/duration formatting
    - timeit.py: Timing context manager
"""
