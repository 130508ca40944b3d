import asyncio
import io
import shutil
from pathlib import Path

import numpy as np
import pytest
import soundfile as sf

from voice_asr.audio import AudioClip, AudioNormalizer, extension_for_mime
from voice_asr.audio import normalizer as normalizer_module
from voice_asr.errors import ConversionError
from voice_asr.settings import TranscoderSettings


def _wav_bytes(samples: np.ndarray, sample_rate: int = 16000, subtype: str = "PCM_16") -> bytes:
    buffer = io.BytesIO()
    sf.write(buffer, samples, sample_rate, subtype=subtype, format="WAV")
    return buffer.getvalue()


class FakeProcess:
    def __init__(self, returncode: int = 0, stderr: bytes = b"", hang: bool = False) -> None:
        self._final_returncode = returncode
        self._stderr = stderr
        self._hang = hang
        self.returncode = None
        self.killed = False

    async def communicate(self):
        if self._hang:
            await asyncio.Event().wait()
        self.returncode = self._final_returncode
        return b"", self._stderr

    def kill(self) -> None:
        self.killed = True
        self.returncode = -9

    async def wait(self) -> int:
        return self.returncode


class FakeFfmpeg:
    """Stands in for ``asyncio.create_subprocess_exec``; writes ``output`` to the target path."""

    def __init__(self, output: bytes | None = None, **process_kwargs) -> None:
        self.output = output
        self.process = FakeProcess(**process_kwargs)
        self.calls = []

    async def __call__(self, *cmd, **kwargs):
        self.calls.append(cmd)
        if self.output is not None:
            Path(cmd[-1]).write_bytes(self.output)
        return self.process


@pytest.fixture
def fake_ffmpeg(monkeypatch):
    def install(output: bytes | None = None, **kwargs) -> FakeFfmpeg:
        fake = FakeFfmpeg(output, **kwargs)
        monkeypatch.setattr(normalizer_module.asyncio, "create_subprocess_exec", fake)
        return fake

    return install


@pytest.fixture
def normalizer(tmp_path) -> AudioNormalizer:
    return AudioNormalizer(ffmpeg_path="/opt/ffmpeg/bin/ffmpeg", temp_dir=tmp_path)


# -----------------------------
# extension mapping
# -----------------------------
@pytest.mark.parametrize(
    ("content_type", "extension"),
    [
        ("audio/webm", "webm"),
        ("audio/webm;codecs=opus", "webm"),
        ("audio/webm; codecs=opus", "webm"),
        ("AUDIO/MPEG", "mp3"),
        ("audio/ogg;codecs=opus", "ogg"),
        ("audio/x-wav", "wav"),
        ("audio/mp4", "m4a"),
        ("application/octet-stream", "bin"),
        ("", "bin"),
        (None, "bin"),
    ],
)
def test_extension_for_mime(content_type, extension):
    assert extension_for_mime(content_type) == extension


# -----------------------------
# executable resolution
# -----------------------------
def test_explicit_path_wins():
    assert AudioNormalizer(ffmpeg_path="/custom/ffmpeg").resolve_executable() == "/custom/ffmpeg"


def test_bundled_path_used_when_present(tmp_path, monkeypatch):
    bundled = tmp_path / "ffmpeg"
    bundled.write_bytes(b"")
    monkeypatch.setattr(normalizer_module.shutil, "which", lambda name: "/usr/bin/ffmpeg")

    assert AudioNormalizer(bundled_ffmpeg_path=str(bundled)).resolve_executable() == str(bundled)


def test_missing_bundled_path_falls_back_to_search_path(tmp_path, monkeypatch):
    monkeypatch.setattr(normalizer_module.shutil, "which", lambda name: "/usr/bin/ffmpeg")

    normalizer = AudioNormalizer(bundled_ffmpeg_path=str(tmp_path / "missing"))
    assert normalizer.resolve_executable() == "/usr/bin/ffmpeg"


@pytest.mark.asyncio
async def test_missing_executable_raises_conversion_error(monkeypatch):
    monkeypatch.setattr(normalizer_module.shutil, "which", lambda name: None)

    with pytest.raises(ConversionError):
        await AudioNormalizer().normalize(AudioClip(data=b"abc", content_type="audio/webm"))


def test_from_settings_copies_transcoder_config():
    cfg = TranscoderSettings(ffmpeg_path="/x/ffmpeg", bundled_ffmpeg_path=None, max_duration_seconds=12.0)
    normalizer = AudioNormalizer.from_settings(cfg)
    assert normalizer.resolve_executable() == "/x/ffmpeg"


# -----------------------------
# normalize
# -----------------------------
@pytest.mark.asyncio
async def test_normalize_returns_raw_pcm_without_header(normalizer, fake_ffmpeg, tmp_path):
    samples = (np.arange(1600) % 100).astype(np.int16)
    fake = fake_ffmpeg(_wav_bytes(samples))

    frame = await normalizer.normalize(AudioClip(data=b"webm-bytes", content_type="audio/webm;codecs=opus"))

    assert frame.pcm == samples.astype("<i2").tobytes()
    assert frame.metadata.sample_rate == 16000
    assert frame.metadata.channels == 1
    assert frame.metadata.sample_width == 2
    assert frame.metadata.duration_seconds == pytest.approx(0.1)
    assert frame.metadata.source_format == "audio/webm;codecs=opus"

    cmd = fake.calls[0]
    assert cmd[0] == "/opt/ffmpeg/bin/ffmpeg"
    assert cmd[cmd.index("-ar") + 1] == "16000"
    assert cmd[cmd.index("-ac") + 1] == "1"
    assert cmd[cmd.index("-acodec") + 1] == "pcm_s16le"
    assert cmd[cmd.index("-i") + 1].endswith("input.webm")
    assert list(tmp_path.iterdir()) == []


@pytest.mark.asyncio
async def test_declared_wav_is_still_transcoded(normalizer, fake_ffmpeg):
    fake = fake_ffmpeg(_wav_bytes(np.zeros(320, dtype=np.int16)))
    wav_input = _wav_bytes(np.zeros(882, dtype=np.int16), sample_rate=44100)

    await normalizer.normalize(AudioClip(data=wav_input, content_type="audio/wav"))

    assert len(fake.calls) == 1
    assert fake.calls[0][fake.calls[0].index("-i") + 1].endswith("input.wav")


@pytest.mark.asyncio
async def test_empty_clip_is_rejected(normalizer, fake_ffmpeg):
    fake = fake_ffmpeg()

    with pytest.raises(ConversionError):
        await normalizer.normalize(AudioClip(data=b""))

    assert fake.calls == []


@pytest.mark.asyncio
async def test_transcoder_failure_carries_stderr_and_cleans_up(normalizer, fake_ffmpeg, tmp_path):
    fake_ffmpeg(returncode=1, stderr=b"Invalid data found when processing input")

    with pytest.raises(ConversionError) as excinfo:
        await normalizer.normalize(AudioClip(data=b"garbage", content_type="audio/webm"))

    assert "Invalid data found" in excinfo.value.stderr
    assert list(tmp_path.iterdir()) == []


@pytest.mark.asyncio
async def test_missing_output_is_conversion_error(normalizer, fake_ffmpeg, tmp_path):
    fake_ffmpeg(output=None)

    with pytest.raises(ConversionError):
        await normalizer.normalize(AudioClip(data=b"abc", content_type="audio/ogg"))

    assert list(tmp_path.iterdir()) == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "output",
    [
        _wav_bytes(np.zeros(800, dtype=np.int16), sample_rate=8000),
        _wav_bytes(np.zeros((1600, 2), dtype=np.int16)),
        _wav_bytes(np.zeros(1600, dtype=np.float32), subtype="FLOAT"),
        b"RIFF-not-really",
    ],
    ids=["rate", "channels", "sample-width", "unreadable"],
)
async def test_unexpected_output_format_is_rejected(normalizer, fake_ffmpeg, output):
    fake_ffmpeg(output)

    with pytest.raises(ConversionError):
        await normalizer.normalize(AudioClip(data=b"abc", content_type="audio/webm"))


@pytest.mark.asyncio
async def test_duration_limit(tmp_path, fake_ffmpeg):
    fake_ffmpeg(_wav_bytes(np.zeros(32000, dtype=np.int16)))
    normalizer = AudioNormalizer(ffmpeg_path="ffmpeg", max_duration_seconds=1.5, temp_dir=tmp_path)

    with pytest.raises(ConversionError):
        await normalizer.normalize(AudioClip(data=b"abc", content_type="audio/webm"))


@pytest.mark.asyncio
async def test_spawn_failure_is_conversion_error(normalizer, monkeypatch, tmp_path):
    async def failing_exec(*cmd, **kwargs):
        raise FileNotFoundError(cmd[0])

    monkeypatch.setattr(normalizer_module.asyncio, "create_subprocess_exec", failing_exec)

    with pytest.raises(ConversionError):
        await normalizer.normalize(AudioClip(data=b"abc", content_type="audio/webm"))

    assert list(tmp_path.iterdir()) == []


@pytest.mark.asyncio
async def test_cancellation_kills_transcoder_and_cleans_up(normalizer, fake_ffmpeg, tmp_path):
    fake = fake_ffmpeg(hang=True)

    task = asyncio.create_task(normalizer.normalize(AudioClip(data=b"abc", content_type="audio/webm")))
    while not fake.calls:
        await asyncio.sleep(0.001)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task

    assert fake.process.killed
    assert list(tmp_path.iterdir()) == []


@pytest.mark.integration
@pytest.mark.asyncio
@pytest.mark.skipif(shutil.which("ffmpeg") is None, reason="ffmpeg not installed")
async def test_real_ffmpeg_resamples_and_downmixes(tmp_path):
    t = np.linspace(0.0, 0.5, 22050, endpoint=False)
    tone = (np.sin(2 * np.pi * 440.0 * t) * 8000).astype(np.int16)
    stereo = np.stack([tone, tone], axis=1)
    clip = AudioClip(data=_wav_bytes(stereo, sample_rate=44100), content_type="audio/wav")

    frame = await AudioNormalizer(temp_dir=tmp_path).normalize(clip)

    assert frame.metadata.sample_rate == 16000
    assert frame.metadata.channels == 1
    assert frame.metadata.duration_seconds == pytest.approx(0.5, abs=0.02)
    assert len(frame.pcm) % 2 == 0
    assert list(tmp_path.iterdir()) == []


@pytest.mark.asyncio
async def test_stalled_transcoder_times_out_and_cleans_up(fake_ffmpeg, tmp_path):
    fake = fake_ffmpeg(hang=True)
    normalizer = AudioNormalizer(ffmpeg_path="ffmpeg", timeout_seconds=0.05, temp_dir=tmp_path)

    with pytest.raises(ConversionError):
        await asyncio.wait_for(normalizer.normalize(AudioClip(data=b"abc", content_type="audio/webm")), 2.0)

    assert fake.process.killed
    assert list(tmp_path.iterdir()) == []


class LengthEchoFfmpeg:
    """Writes a clip whose every sample equals the byte length of the input file."""

    def __init__(self) -> None:
        self.paths: list[tuple[Path, Path]] = []

    async def __call__(self, *cmd, **kwargs):
        source = Path(cmd[cmd.index("-i") + 1])
        target = Path(cmd[-1])
        self.paths.append((source, target))
        size = len(source.read_bytes())
        await asyncio.sleep(0.01)
        target.write_bytes(_wav_bytes(np.full(160, size, dtype=np.int16)))
        return FakeProcess()


@pytest.mark.asyncio
async def test_concurrent_normalizations_use_separate_files(normalizer, monkeypatch, tmp_path):
    fake = LengthEchoFfmpeg()
    monkeypatch.setattr(normalizer_module.asyncio, "create_subprocess_exec", fake)
    clips = [AudioClip(data=b"x" * size, content_type="audio/webm") for size in (3, 5, 7)]

    frames = await asyncio.gather(*(normalizer.normalize(clip) for clip in clips))

    sources = {source for source, _ in fake.paths}
    targets = {target for _, target in fake.paths}
    assert len(sources) == 3
    assert len(targets) == 3
    for frame, size in zip(frames, (3, 5, 7)):
        assert frame.pcm == np.full(160, size, dtype="<i2").tobytes()
    assert list(tmp_path.iterdir()) == []
