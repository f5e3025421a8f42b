"""
Generation Engine Implementations.

Each engine subclasses BaseTTSEngine and implements load() and generate().
Engines are imported lazily by the factory in engine.py so the ONNX
runtime is only loaded when an engine is actually used:

    from koko_tts.tts.engines.kokoro_engine import KokoroEngine

    engine = KokoroEngine(settings)
    engine.load()
    buffer = engine.generate("Hello", "af_heart")
"""
