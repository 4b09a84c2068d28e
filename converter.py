import logging
import sys
from dataclasses import dataclass
from pathlib import Path

import numpy as np
from scipy import ndimage

from config import DEFAULT_TERRAIN
from decoder import decode_samples
from errors import ContractViolation
from stl_export import export_binary_stl, stl_filename

# Audio → Envelope: mean absolute amplitude over W equal-count slices of the signal
# Base Surface: cylinder shell, W vertices per ring (periodic), H+1 rings along z
# Relief: every vertex of band i moves along its normal by magnitude[i] * scale
# STL Export: see stl_export.py

logger = logging.getLogger(__name__)


def _frozen(array):
    array.flags.writeable = False
    return array


def segment_bounds(sample_count, segment_count):
    """Slice boundaries: bounds[i] = floor(i / W * N), exact in integers"""
    if segment_count < 1:
        raise ValueError(f"segment_count must be >= 1, got {segment_count}")
    return np.arange(segment_count + 1, dtype=np.int64) * int(sample_count) // int(segment_count)


def reduce_signal(samples, segment_count):
    """Reduce a mono sample buffer to one mean absolute amplitude per segment.

    Empty slices (fewer samples than segments) give 0.0 instead of NaN.
    """
    audio_data = np.asarray(samples, dtype=np.float64).ravel()
    bounds = segment_bounds(len(audio_data), segment_count)

    magnitudes = np.zeros(segment_count, dtype=np.float64)
    for i in range(segment_count):
        chunk = audio_data[bounds[i]:bounds[i + 1]]
        if len(chunk) == 0:
            continue
        # cumsum accumulates left to right, unlike the pairwise np.sum
        magnitudes[i] = np.cumsum(np.abs(chunk))[-1] / len(chunk)

    return magnitudes


def smooth_magnitudes(magnitudes, sigma):
    """Gaussian smoothing around the circumference (bands wrap)"""
    magnitudes = np.asarray(magnitudes, dtype=np.float64)
    if sigma <= 0 or len(magnitudes) == 0:
        return magnitudes
    smoothed = ndimage.gaussian_filter1d(magnitudes, sigma=sigma, mode='wrap')
    # gaussian weights are positive, clip only float noise
    return np.maximum(smoothed, 0.0)


@dataclass(frozen=True, eq=False)
class BaseSurface:
    """Undeformed cylindrical shell.

    Side vertex (ring, segment) lives at ring * width_segments + segment; rings go
    bottom to top. With caps, the bottom then top centre vertices follow the side
    vertices and carry segment_index -1.
    """
    positions: np.ndarray
    normals: np.ndarray
    faces: np.ndarray
    segment_index: np.ndarray
    top_radius: float
    bottom_radius: float
    height: float
    width_segments: int
    height_segments: int
    capped: bool

    @property
    def side_vertex_count(self):
        return self.width_segments * (self.height_segments + 1)

    def vertex_index(self, ring, segment):
        if not 0 <= ring <= self.height_segments:
            raise IndexError(f"ring {ring} out of range")
        if not 0 <= segment < self.width_segments:
            raise IndexError(f"segment {segment} out of range")
        return ring * self.width_segments + segment


@dataclass(frozen=True, eq=False)
class DeformedMesh:
    """Relief mesh: base topology and normals, displaced positions"""
    positions: np.ndarray
    normals: np.ndarray
    faces: np.ndarray
    segment_index: np.ndarray
    magnitudes: np.ndarray
    height_scale: float

    @property
    def triangle_count(self):
        return len(self.faces)


def generate_base_surface(top_radius, bottom_radius, height, width_segments, height_segments,
                          capped=True):
    """Build the cylinder (or frustum) shell with outward side normals"""
    if width_segments < 3:
        raise ValueError(f"width_segments must be >= 3, got {width_segments}")
    if height_segments < 1:
        raise ValueError(f"height_segments must be >= 1, got {height_segments}")
    if height <= 0:
        raise ValueError(f"height must be positive, got {height}")
    if top_radius < 0 or bottom_radius < 0 or max(top_radius, bottom_radius) <= 0:
        raise ValueError("radii must be non-negative and not both zero")

    W, H = width_segments, height_segments

    # ring radius and height, bottom to top
    t = np.arange(H + 1, dtype=np.float64) / H
    ring_radius = bottom_radius + (top_radius - bottom_radius) * t
    ring_z = -height / 2 + height * t

    # segment angle
    theta = 2 * np.pi * np.arange(W, dtype=np.float64) / W
    cos_t, sin_t = np.cos(theta), np.sin(theta)

    X = np.outer(ring_radius, cos_t)
    Y = np.outer(ring_radius, sin_t)
    Z = np.outer(ring_z, np.ones(W))
    positions = np.c_[X.ravel(), Y.ravel(), Z.ravel()]

    # side normals lean with the slant of a frustum, radial for a cylinder
    slope = (bottom_radius - top_radius) / height
    ring_normal = np.c_[cos_t, sin_t, np.full(W, slope)]
    ring_normal /= np.linalg.norm(ring_normal, axis=1)[:, None]
    normals = np.tile(ring_normal, (H + 1, 1))

    segment_index = np.tile(np.arange(W, dtype=np.int64), H + 1)

    # each quad becomes 2 triangles, wound outward
    k, j = np.meshgrid(np.arange(H), np.arange(W), indexing='ij')
    k, j = k.ravel(), j.ravel()
    j_next = (j + 1) % W
    a = k * W + j
    b = k * W + j_next
    c = (k + 1) * W + j_next
    d = (k + 1) * W + j
    quads = np.stack([np.c_[a, b, c], np.c_[a, c, d]], axis=1)
    faces = quads.reshape(-1, 3)

    if capped:
        bottom_center = len(positions)
        top_center = bottom_center + 1
        positions = np.vstack([positions, [[0.0, 0.0, ring_z[0]], [0.0, 0.0, ring_z[-1]]]])
        normals = np.vstack([normals, [[0.0, 0.0, -1.0], [0.0, 0.0, 1.0]]])
        segment_index = np.concatenate([segment_index, [-1, -1]])

        seg = np.arange(W)
        seg_next = (seg + 1) % W
        top_ring = H * W
        bottom_fan = np.c_[np.full(W, bottom_center), seg_next, seg]
        top_fan = np.c_[np.full(W, top_center), top_ring + seg, top_ring + seg_next]
        faces = np.vstack([faces, bottom_fan, top_fan])

    return BaseSurface(
        positions=_frozen(positions.astype(np.float64)),
        normals=_frozen(normals.astype(np.float64)),
        faces=_frozen(faces.astype(np.int64)),
        segment_index=_frozen(segment_index.astype(np.int64)),
        top_radius=float(top_radius),
        bottom_radius=float(bottom_radius),
        height=float(height),
        width_segments=int(width_segments),
        height_segments=int(height_segments),
        capped=bool(capped),
    )


def deform_surface(base, magnitudes, height_scale):
    """Displace every side vertex along its base normal by magnitude * height_scale.

    Always starts from the base positions; normals are carried over unchanged.
    """
    magnitudes = np.asarray(magnitudes, dtype=np.float64)
    if magnitudes.ndim != 1 or len(magnitudes) != base.width_segments:
        raise ContractViolation(
            f"expected {base.width_segments} magnitudes, got shape {magnitudes.shape}"
        )

    on_side = base.segment_index >= 0
    displacement = np.zeros(len(base.positions), dtype=np.float64)
    displacement[on_side] = magnitudes[base.segment_index[on_side]] * height_scale

    positions = base.positions + base.normals * displacement[:, None]

    return DeformedMesh(
        positions=_frozen(positions),
        normals=base.normals,
        faces=base.faces,
        segment_index=base.segment_index,
        magnitudes=_frozen(magnitudes.copy()),
        height_scale=float(height_scale),
    )


class TerrainConverter:
    def __init__(self, config=DEFAULT_TERRAIN):
        self.config = config
        self.base = generate_base_surface(
            config.top_radius,
            config.bottom_radius,
            config.height,
            config.width_segments,
            config.height_segments,
            capped=config.capped,
        )

    def compute_magnitudes(self, samples):
        """Sample buffer -> magnitude sequence, smoothed if configured"""
        magnitudes = reduce_signal(samples, self.config.width_segments)
        return smooth_magnitudes(magnitudes, self.config.smoothing_sigma)

    def generate_terrain(self, samples):
        """Full rebuild: audio samples -> relief mesh"""
        magnitudes = self.compute_magnitudes(samples)
        return deform_surface(self.base, magnitudes, self.config.height_scale)

    def convert_file(self, audio_path, output_dir=None):
        """Audio file on disk -> <stem>.stl next to it (or in output_dir)"""
        audio_path = Path(audio_path)
        logger.info(f"Processing {audio_path}...")

        samples = decode_samples(audio_path.read_bytes(), audio_path.name)
        mesh = self.generate_terrain(samples)

        output_dir = Path(output_dir) if output_dir is not None else audio_path.parent
        output_dir.mkdir(parents=True, exist_ok=True)
        output_path = output_dir / stl_filename(audio_path.name)
        output_path.write_bytes(export_binary_stl(mesh, name=audio_path.stem))
        logger.info(f"STL saved as {output_path} ({mesh.triangle_count} triangles)")

        return output_path


# usage: python converter.py your_song.wav [output_dir]
if __name__ == "__main__":
    from logging_config import setup_logging

    if len(sys.argv) < 2:
        print("usage: python converter.py <audio file> [output dir]")
        sys.exit(2)

    setup_logging()
    converter = TerrainConverter()
    stl_file = converter.convert_file(sys.argv[1], sys.argv[2] if len(sys.argv) > 2 else None)
    print(f"3D model ready: {stl_file}")
