"""Tests for AudioStitcher."""
from __future__ import annotations

import numpy as np
import pytest
import soundfile as sf

from koko_tts.core.errors import EmptyInputError, SampleRateMismatchError
from koko_tts.tts.stitcher import AudioStitcher
from koko_tts.utils.audio import WAV_HEADER_SIZE, AudioBuffer, read_wav


def _pcm_exact(values) -> np.ndarray:
    """Samples that survive the PCM16 round trip unchanged."""
    return np.asarray(values, dtype=np.float32) / 32767


@pytest.fixture
def abc():
    a = AudioBuffer(_pcm_exact(np.arange(0, 300)), 24000)
    b = AudioBuffer(_pcm_exact(np.arange(-500, -300)), 24000)
    c = AudioBuffer(_pcm_exact([1000] * 50), 24000)
    return a, b, c


class TestSingleChunk:
    def test_duration_matches_chunk(self, tmp_path):
        chunk = AudioBuffer(np.zeros(12000, dtype=np.float32), 24000)
        result = AudioStitcher().stitch([chunk], tmp_path / "one.wav")

        assert result.total_samples == 12000
        assert result.total_duration_seconds == pytest.approx(0.5)
        assert result.chunk_paths is None
        info = sf.info(str(result.output_path))
        assert info.frames / info.samplerate == pytest.approx(0.5)

    def test_single_chunk_written_as_is(self, tmp_path, abc):
        a, _, _ = abc
        out = AudioStitcher().stitch([a], tmp_path / "a.wav").output_path
        assert out.read_bytes() == a.to_wav_bytes()


class TestMultiChunk:
    def test_order_and_sample_count(self, tmp_path, abc):
        a, b, c = abc
        result = AudioStitcher().stitch([a, b, c], tmp_path / "out" / "abc.wav")

        assert result.total_samples == a.num_samples + b.num_samples + c.num_samples
        assert result.sample_rate == 24000
        decoded = read_wav(result.output_path)
        expected = np.concatenate([a.samples, b.samples, c.samples])
        np.testing.assert_array_equal(decoded.samples, expected)

    def test_file_size_matches_estimate(self, tmp_path, abc):
        result = AudioStitcher().stitch(list(abc), tmp_path / "abc.wav")
        assert result.output_path.stat().st_size == AudioStitcher.estimate_output_size(list(abc))

    def test_inputs_not_mutated(self, tmp_path, abc):
        before = [buf.samples.copy() for buf in abc]
        AudioStitcher().stitch(list(abc), tmp_path / "abc.wav")
        for buf, snapshot in zip(abc, before):
            np.testing.assert_array_equal(buf.samples, snapshot)

    def test_out_of_range_samples_are_clamped(self, tmp_path):
        loud = AudioBuffer(np.array([3.0, -3.0], dtype=np.float32), 8000)
        result = AudioStitcher().stitch([loud, loud], tmp_path / "loud.wav")
        data, _ = sf.read(str(result.output_path), dtype="int16")
        assert data.tolist() == [32767, -32767, 32767, -32767]


class TestErrors:
    def test_empty_input(self, tmp_path):
        out = tmp_path / "empty.wav"
        with pytest.raises(EmptyInputError) as exc:
            AudioStitcher().stitch([], out)
        assert exc.value.code == "EMPTY_INPUT"
        assert not out.exists()

    def test_sample_rate_mismatch(self, tmp_path, abc):
        a, b, _ = abc
        odd = AudioBuffer(np.zeros(10, dtype=np.float32), 22050)
        out = tmp_path / "mixed.wav"

        with pytest.raises(SampleRateMismatchError) as exc:
            AudioStitcher().stitch([a, b, odd], out, keep_chunks=True)

        assert exc.value.expected == 24000
        assert exc.value.actual == 22050
        assert exc.value.index == 2
        assert not out.exists()
        assert not (tmp_path / "mixed_chunks").exists()


class TestTempDirectory:
    def test_written_through_temp_dir(self, tmp_path, abc):
        scratch = tmp_path / "scratch"
        out = tmp_path / "final" / "abc.wav"
        result = AudioStitcher().stitch(list(abc), out, temp_dir=scratch)

        assert result.output_path == out
        assert out.read_bytes()[:4] == b"RIFF"
        assert scratch.is_dir()
        assert list(scratch.iterdir()) == []

    def test_directory_service_temp_dir_used_by_default(self, directories, tmp_path, abc):
        out = tmp_path / "abc.wav"
        AudioStitcher(directories).stitch(list(abc), out)
        assert out.exists()
        assert directories.temp_dir.is_dir()
        assert list(directories.temp_dir.iterdir()) == []


class TestKeepChunks:
    def test_chunk_files_numbered_in_order(self, tmp_path, abc):
        chunk_dir = tmp_path / "parts"
        result = AudioStitcher().stitch(list(abc), tmp_path / "abc.wav", keep_chunks=True, chunk_dir=chunk_dir)

        assert [p.name for p in result.chunk_paths] == ["chunk_001.wav", "chunk_002.wav", "chunk_003.wav"]
        for path, buf in zip(result.chunk_paths, abc):
            assert path.read_bytes() == buf.to_wav_bytes()

    def test_default_chunk_dir_next_to_output(self, tmp_path, abc):
        result = AudioStitcher().stitch(list(abc), tmp_path / "story.wav", keep_chunks=True)
        assert result.chunk_paths[0].parent == tmp_path / "story_chunks"

    def test_single_chunk_kept_too(self, tmp_path, abc):
        result = AudioStitcher().stitch([abc[0]], tmp_path / "a.wav", keep_chunks=True)
        assert len(result.chunk_paths) == 1


class TestHelpers:
    def test_estimate_output_size(self, abc):
        assert AudioStitcher.estimate_output_size(list(abc)) == WAV_HEADER_SIZE + 2 * 550

    def test_total_duration(self, abc):
        assert AudioStitcher.total_duration(list(abc)) == pytest.approx(550 / 24000)
        assert AudioStitcher.total_duration([]) == 0.0
