"""
Tests for the error taxonomy.

Tests cover:
- ErrorCode constants
- to_dict() payloads with and without details
- Structured attributes on SampleRateMismatchError / GenerationError
- Inheritance (everything is a KokoError)
"""
import pytest

from koko_tts.core.errors import (
    CacheWriteError,
    EmptyInputError,
    ErrorCode,
    GenerationError,
    KokoError,
    SampleRateMismatchError,
    StitchError,
)


class TestErrorCode:
    def test_codes(self):
        assert ErrorCode.EMPTY_INPUT == "EMPTY_INPUT"
        assert ErrorCode.SAMPLE_RATE_MISMATCH == "SAMPLE_RATE_MISMATCH"
        assert ErrorCode.GENERATION_FAILED == "GENERATION_FAILED"
        assert ErrorCode.CACHE_WRITE_FAILED == "CACHE_WRITE_FAILED"
        assert ErrorCode.INTERNAL_ERROR == "INTERNAL_ERROR"


class TestKokoError:
    def test_defaults(self):
        err = KokoError("boom")
        assert err.code == ErrorCode.INTERNAL_ERROR
        assert err.details == {}
        assert str(err) == "boom"

    def test_to_dict_without_details(self):
        assert KokoError("boom").to_dict() == {"ok": False, "error": "INTERNAL_ERROR", "message": "boom"}

    def test_to_dict_with_details(self):
        data = KokoError("boom", ErrorCode.INVALID_INPUT, {"field": "text"}).to_dict()
        assert data["error"] == "INVALID_INPUT"
        assert data["details"] == {"field": "text"}


class TestStitchErrors:
    def test_empty_input(self):
        err = EmptyInputError()
        assert isinstance(err, StitchError)
        assert err.code == ErrorCode.EMPTY_INPUT
        assert "no audio chunks" in err.message

    def test_sample_rate_mismatch(self):
        err = SampleRateMismatchError(expected=24000, actual=22050, index=3)
        assert isinstance(err, StitchError)
        assert (err.expected, err.actual, err.index) == (24000, 22050, 3)
        assert err.to_dict()["details"] == {"expected": 24000, "actual": 22050, "index": 3}
        assert "chunk 3" in err.message


class TestGenerationError:
    def test_chunk_index_in_details(self):
        err = GenerationError("failed", chunk_index=2, details={"error_type": "RuntimeError"})
        assert err.chunk_index == 2
        assert err.details == {"error_type": "RuntimeError", "chunk_index": 2}
        assert err.code == ErrorCode.GENERATION_FAILED

    def test_without_index(self):
        assert GenerationError("failed").details == {}


class TestInheritance:
    @pytest.mark.parametrize("err", [
        EmptyInputError(),
        SampleRateMismatchError(1, 2, 0),
        GenerationError("x"),
        CacheWriteError("x"),
    ])
    def test_all_are_koko_errors(self, err):
        assert isinstance(err, KokoError)
        assert isinstance(err, Exception)
