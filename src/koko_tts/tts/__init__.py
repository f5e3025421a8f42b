"""
Cache and Stitching Components.

    - keys.py: Cache key derivation
    - storage.py: Cache directory layout and atomic writes
    - cache.py: CacheStore (expiry, LRU eviction, degrade-to-disabled)
    - chunker.py: Text segmentation
    - stitcher.py: WAV concatenation
    - engine.py: Generation engine base class and factory
    - engines/: Engine implementations (Kokoro)
"""
