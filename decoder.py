import logging
import os
import re
import tempfile
from dataclasses import dataclass

import numpy as np
import librosa

from errors import DecodeError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class DecodedAudio:
    sample_rate: int
    channels: np.ndarray  # (channel_count, sample_count), float32 in [-1, 1]

    @property
    def sample_count(self):
        return self.channels.shape[1]

    @property
    def duration(self):
        return self.sample_count / self.sample_rate if self.sample_rate else 0.0

    def first_channel(self):
        samples = np.ascontiguousarray(self.channels[0], dtype=np.float32)
        samples.flags.writeable = False
        return samples


def _suffix(filename):
    """Original extension, so the backend can pick a decoder by name"""
    if not filename:
        return ''
    suffix = os.path.splitext(os.path.basename(filename))[1]
    return suffix.lower() if re.fullmatch(r'\.[A-Za-z0-9]{1,8}', suffix) else ''


def decode_audio(data, filename=None):
    """Decode an encoded audio file (wav, flac, ogg, mp3, m4a...) held in memory.

    The bytes are spooled to a temporary file first: librosa only falls back to
    audioread (ffmpeg) for formats soundfile cannot read when given a path.
    """
    if not data:
        raise DecodeError("no audio data")

    with tempfile.TemporaryDirectory(prefix='terrain-') as tmp_dir:
        audio_path = os.path.join(tmp_dir, 'upload' + _suffix(filename))
        with open(audio_path, 'wb') as f:
            f.write(data)
        try:
            # native rate, keep channels apart
            y, sr = librosa.load(audio_path, sr=None, mono=False)
        except Exception as exc:
            raise DecodeError(f"failed to decode audio: {exc}") from exc

    channels = np.atleast_2d(np.asarray(y, dtype=np.float32))
    if channels.shape[1] == 0:
        logger.warning("decoded audio contains no samples")

    decoded = DecodedAudio(sample_rate=int(sr), channels=channels)
    logger.debug(
        f"decoded {decoded.sample_count} samples x {channels.shape[0]} channel(s) "
        f"at {decoded.sample_rate} Hz"
    )
    return decoded


def decode_samples(data, filename=None):
    """Mono sample buffer: first channel only"""
    return decode_audio(data, filename).first_channel()
