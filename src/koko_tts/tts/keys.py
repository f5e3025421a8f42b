"""
Cache Key Derivation.

A cache key (fingerprint) is the SHA256 of a canonical JSON document
describing everything that changes the generated audio:

    {"norm_version": "v1", "params": {"speed": 1.0, "temperature": 0.7},
     "text": "Hello world.", "voice": "af_heart"}

Rules:
    - Omitted parameters are replaced by their defaults before hashing, so
      ``derive_key(t, v)`` and ``derive_key(t, v, GenerationParams(speed=1.0))``
      collide on purpose.
    - Keys are serialized with ``sort_keys=True``; field order in the
      caller's mapping never matters.
    - Numeric parameters are coerced to float so ``speed=1`` and
      ``speed=1.0`` agree.
    - Any new parameter that affects the engine's output MUST be added to
      GenerationParams, otherwise two different requests will share one
      cached payload.

Example:
    >>> key = derive_key("Hello world.", "af_heart", GenerationParams(speed=1.2))
    >>> len(key)
    64
"""
from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Union

from koko_tts.core.config import Defaults
from koko_tts.utils.text import NORMALIZE_VERSION


def hash_bytes(data: bytes) -> str:
    """SHA256 of ``data`` as 64 lowercase hex characters."""
    return hashlib.sha256(data).hexdigest()


def hash_dict(data: Mapping[str, object]) -> str:
    """SHA256 of a mapping serialized as sorted-key JSON."""
    payload = json.dumps(data, sort_keys=True, ensure_ascii=True, separators=(",", ":"))
    return hash_bytes(payload.encode("utf-8"))


@dataclass(frozen=True)
class GenerationParams:
    """
    Engine parameters that affect the generated audio.

    ``None`` means "use the default"; normalized() fills those in.
    ``extra`` carries engine-specific knobs (e.g. ``{"lang": "en-gb"}``)
    which are hashed too.
    """
    speed: Optional[float] = None
    temperature: Optional[float] = None
    extra: Mapping[str, Any] = field(default_factory=dict)

    def normalized(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "speed": float(Defaults.GENERATION_SPEED if self.speed is None else self.speed),
            "temperature": float(Defaults.GENERATION_TEMPERATURE if self.temperature is None else self.temperature),
        }
        for k, v in self.extra.items():
            if v is None:
                continue
            out[str(k)] = float(v) if isinstance(v, int) and not isinstance(v, bool) else v
        return out

    @classmethod
    def coerce(cls, params: Union["GenerationParams", Mapping[str, Any], None]) -> "GenerationParams":
        """Accept a GenerationParams, a plain mapping, or None."""
        if params is None:
            return cls()
        if isinstance(params, GenerationParams):
            return params
        data = dict(params)
        speed = data.pop("speed", None)
        temperature = data.pop("temperature", None)
        return cls(speed=speed, temperature=temperature, extra=data)


ParamsLike = Union[GenerationParams, Mapping[str, Any], None]


def derive_key(text: str, voice: str, params: ParamsLike = None) -> str:
    """
    Deterministic fingerprint for (text, voice, params).

    Args:
        text: Exact text sent to the engine (one segment).
        voice: Voice identifier (e.g. "af_heart").
        params: GenerationParams, a mapping, or None for all defaults.

    Returns:
        64-character lowercase hex string.
    """
    normalized = GenerationParams.coerce(params).normalized()
    return hash_dict({
        "norm_version": NORMALIZE_VERSION,
        "params": normalized,
        "text": text,
        "voice": voice,
    })
