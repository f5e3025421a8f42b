"""
Command-Line Interface for koko-tts.

Usage Examples:
    # Full pipeline: segment, cache, generate, stitch
    koko-tts speak "Hello world. This is a longer story." --out story.wav

    # Read text from a file, keep per-chunk files
    koko-tts speak --file chapter1.txt --out chapter1.wav --keep-chunks

    # Dry run: show chunks and cache keys without generating
    koko-tts segment --file chapter1.txt --max-length 200 --json

    # Concatenate existing WAV files
    koko-tts stitch part1.wav part2.wav --out joined.wav

    # Cache maintenance
    koko-tts cache stats
    koko-tts cache clear

Exit codes:
    0 success, 1 usage/config problem, 2 pipeline error (KokoError).

Environment Variables:
    KOKO_TTS_SETTINGS: settings file (default config/settings.yaml)
    KOKO_TTS_HOME: root of the .koko-tts directory tree
    KOKO_TTS_ENGINE: engine override (default "kokoro")
    KOKO_TTS_CACHE_DIR / KOKO_TTS_CACHE_ENABLED: cache overrides
"""

from __future__ import annotations

import argparse
import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from koko_tts import __version__
from koko_tts.core.config import ConfigValidationError, KokoConfig, load_settings_or_default
from koko_tts.core.directory import DirectoryService
from koko_tts.core.errors import KokoError
from koko_tts.core.logging import configure_logging, fail, get_logger, info
from koko_tts.tts.cache import CacheStore
from koko_tts.tts.chunker import segment_text
from koko_tts.tts.keys import GenerationParams, derive_key
from koko_tts.tts.stitcher import AudioStitcher
from koko_tts.utils.audio import read_wav
from koko_tts.utils.text import clean_text


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="koko-tts", description="koko-tts: cached TTS with chunk stitching")
    parser.add_argument("--version", action="version", version=f"koko-tts {__version__}")
    parser.add_argument("--settings", help="Settings YAML (default: $KOKO_TTS_SETTINGS or config/settings.yaml)")
    parser.add_argument("--home", help="Root directory for cache/outputs/temp")
    parser.add_argument("--log-level", help="Log level 1-4 or MINIMAL/NORMAL/VERBOSE/DEBUG")
    parser.add_argument("--json", action="store_true", help="Print a JSON payload")

    sub = parser.add_subparsers(dest="command", required=True)

    # segment
    p_seg = sub.add_parser("segment", help="Show how text would be chunked (no generation)")
    p_seg.add_argument("text_pos", nargs="?", help="Text to segment (positional)")
    p_seg.add_argument("--text", help="Text to segment")
    p_seg.add_argument("--file", help="Read text from a file")
    p_seg.add_argument("--max-length", type=int, help="Maximum characters per chunk")
    p_seg.add_argument("--voice", help="Voice used for the cache keys")
    _add_param_args(p_seg)

    # stitch
    p_st = sub.add_parser("stitch", help="Concatenate WAV files in order")
    p_st.add_argument("inputs", nargs="+", help="Input WAV files, in order")
    p_st.add_argument("--out", required=True, help="Output WAV path")
    p_st.add_argument("--keep-chunks", action="store_true", help="Also write chunk_NNN.wav copies")
    p_st.add_argument("--chunk-dir", help="Directory for per-chunk files")

    # speak
    p_sp = sub.add_parser("speak", help="Generate speech for text (cached, chunked, stitched)")
    p_sp.add_argument("text_pos", nargs="?", help="Text to speak (positional)")
    p_sp.add_argument("--text", help="Text to speak")
    p_sp.add_argument("--file", help="Read text from a file")
    p_sp.add_argument("--out", help="Output WAV path (default: timestamped file under outputs/)")
    p_sp.add_argument("--voice", help="Voice id (default: generation.voice)")
    p_sp.add_argument("--keep-chunks", action="store_true", default=None, help="Also write chunk_NNN.wav files")
    p_sp.add_argument("--chunk-dir", help="Directory for per-chunk files")
    p_sp.add_argument("--no-cache", action="store_true", help="Bypass the cache for this run")
    p_sp.add_argument("--stream", action="store_true", help="Use the engine's streaming path")
    _add_param_args(p_sp)

    # cache
    p_cache = sub.add_parser("cache", help="Cache maintenance")
    cache_sub = p_cache.add_subparsers(dest="cache_command", required=True)
    cache_sub.add_parser("stats", help="Show cache statistics")
    cache_sub.add_parser("clear", help="Delete every cache entry")

    return parser


def _add_param_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--speed", type=float, help="Speech speed (default: generation.speed)")
    p.add_argument("--temperature", type=float, help="Sampling temperature (default: generation.temperature)")


def _read_text(args: argparse.Namespace) -> str:
    """Text from --file, --text or the positional argument, in that order."""
    if getattr(args, "file", None):
        return Path(args.file).read_text(encoding="utf-8")
    text = getattr(args, "text", None) or getattr(args, "text_pos", None)
    if not text:
        raise SystemExit("Provide text (positional or --text) or --file")
    return text


def _params(args: argparse.Namespace, config: KokoConfig) -> GenerationParams:
    speed = args.speed if args.speed is not None else config.generation.speed
    temperature = args.temperature if args.temperature is not None else config.generation.temperature
    return GenerationParams(speed=speed, temperature=temperature, extra={"lang": config.generation.language})


def _emit(args: argparse.Namespace, payload: Dict[str, Any], marker: str) -> None:
    if args.json:
        print(json.dumps(payload, ensure_ascii=False))
    else:
        for k, v in payload.items():
            if k != "ok":
                print(f"{k}: {v}")
    print(marker)


# =============================================================================
# Commands
# =============================================================================

def _cmd_segment(args: argparse.Namespace, config: KokoConfig) -> int:
    text = clean_text(_read_text(args))
    max_len = args.max_length or config.chunking.max_chunk_length
    voice = args.voice or config.generation.voice
    params = _params(args, config)
    result = segment_text(text, max_len)

    items = [
        {
            "index": c.sequence_index,
            "chars": len(c.content),
            "text": c.content,
            "key": derive_key(c.content, voice, params),
        }
        for c in result.chunks
    ]
    if args.json:
        print(json.dumps({"ok": True, "max_length": max_len, "chunks": items}, ensure_ascii=False))
    else:
        for item in items:
            print(f"[{item['index']:03d}] ({item['chars']:>3} chars) {item['text']}")
        if result.oversized:
            print(f"{len(result.oversized)} chunk(s) exceed {max_len} chars (unsplittable words)")
    print("SEGMENT_OK")
    return 0


def _cmd_stitch(args: argparse.Namespace, directories: DirectoryService) -> int:
    buffers = [read_wav(p) for p in args.inputs]
    stitcher = AudioStitcher(directories)
    result = stitcher.stitch(
        buffers,
        args.out,
        keep_chunks=args.keep_chunks,
        chunk_dir=args.chunk_dir,
    )
    _emit(args, {
        "ok": True,
        "out": str(result.output_path),
        "chunks": len(buffers),
        "samples": result.total_samples,
        "duration_s": round(result.total_duration_seconds, 3),
        "chunk_paths": [str(p) for p in result.chunk_paths] if result.chunk_paths else None,
    }, "STITCH_OK")
    return 0


def _cmd_speak(args: argparse.Namespace, settings, config: KokoConfig, directories: DirectoryService) -> int:
    from koko_tts.services.orchestrator import GenerationOrchestrator
    from koko_tts.tts.engine import get_engine

    text = _read_text(args)
    cache = None if args.no_cache else CacheStore(config.cache, directories)
    orchestrator = GenerationOrchestrator(
        engine=get_engine(settings),
        cache=cache,
        directories=directories,
        config=config,
    )

    run = orchestrator.synthesize_stream if args.stream else orchestrator.synthesize
    try:
        result = run(
            text,
            output_path=args.out,
            voice=args.voice,
            params=_params(args, config),
            keep_chunks=args.keep_chunks,
            chunk_dir=args.chunk_dir,
        )
    finally:
        if cache is not None:
            cache.flush()
        directories.cleanup_session()

    stitch = result.stitch
    _emit(args, {
        "ok": True,
        "out": str(stitch.output_path),
        "chunks": len(result.chunks) if result.chunks else None,
        "cache_hits": result.cache_hits,
        "cache_misses": result.cache_misses,
        "duration_s": round(stitch.total_duration_seconds, 3),
        "chunk_paths": [str(p) for p in stitch.chunk_paths] if stitch.chunk_paths else None,
        "run_id": result.run_id,
    }, "SPEAK_OK")
    return 0


def _cmd_cache(args: argparse.Namespace, config: KokoConfig, directories: DirectoryService) -> int:
    cache = CacheStore(config.cache, directories)
    cache.initialize()

    if args.cache_command == "clear":
        before = len(cache)
        cache.clear()
        cache.flush()
        _emit(args, {"ok": True, "removed": before, "dir": str(cache.directory)}, "CACHE_CLEAR_OK")
        return 0

    stats = cache.get_stats()
    if args.json:
        payload = {"ok": True, "enabled": cache.enabled, "dir": str(cache.directory), **stats.to_dict()}
        print(json.dumps(payload, ensure_ascii=False))
    else:
        print(cache.format_stats())
    print("CACHE_STATS_OK")
    return 0


# =============================================================================
# Entry Point
# =============================================================================

def main(argv: Optional[List[str]] = None) -> int:
    """
    CLI entry point.

    Returns:
        Exit code (0 success, 1 config/usage error, 2 pipeline error).
    """
    args = _build_parser().parse_args(argv)

    if args.settings:
        os.environ["KOKO_TTS_SETTINGS"] = args.settings
    configure_logging(level=args.log_level, force=True)
    log = get_logger("koko-tts.cli")

    settings = load_settings_or_default(os.getenv("KOKO_TTS_SETTINGS", "config/settings.yaml"))
    try:
        config = settings.get_config()
    except ConfigValidationError as e:
        fail(log, "invalid_config", error=str(e))
        if args.json:
            print(json.dumps({"ok": False, "error": "INVALID_CONFIG", "message": str(e)}))
        return 1

    directories = DirectoryService(args.home or config.directories.home)
    info(log, "command", command=args.command, home=str(directories.root))

    try:
        if args.command == "segment":
            return _cmd_segment(args, config)
        if args.command == "stitch":
            return _cmd_stitch(args, directories)
        if args.command == "speak":
            return _cmd_speak(args, settings, config, directories)
        if args.command == "cache":
            return _cmd_cache(args, config, directories)
    except KokoError as e:
        fail(log, "command_failed", command=args.command, error=e.code, message=e.message)
        if args.json:
            print(json.dumps(e.to_dict(), ensure_ascii=False))
        else:
            print(f"Error [{e.code}]: {e.message}")
        return 2
    except FileNotFoundError as e:
        fail(log, "file_not_found", error=str(e))
        print(f"Error: {e}")
        return 1

    return 1


if __name__ == "__main__":
    raise SystemExit(main())
