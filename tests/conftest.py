import io

import numpy as np
import pytest
from scipy.io import wavfile

from config import TerrainConfig
from converter import generate_base_surface


def make_wav(samples, sample_rate=8000):
    """Encode float samples (n,) or (n, channels) as 16 bit PCM wav bytes"""
    pcm = (np.clip(np.asarray(samples), -1.0, 1.0) * 32767).astype(np.int16)
    buffer = io.BytesIO()
    wavfile.write(buffer, sample_rate, pcm)
    return buffer.getvalue()


@pytest.fixture
def wav_bytes():
    return make_wav


@pytest.fixture
def small_config():
    return TerrainConfig(width_segments=8, height_segments=4, height_scale=2.0)


@pytest.fixture
def base():
    # same geometry as the default terrain
    return generate_base_surface(10, 10, 100, 50, 100)


@pytest.fixture
def tone_wav():
    t = np.arange(4000) / 8000.0
    left = 0.5 * np.sin(2 * np.pi * 220 * t)
    right = np.zeros_like(left)
    return make_wav(np.c_[left, right])
