import numpy as np
import pytest

from converter import TerrainConverter, deform_surface, reduce_signal
from config import TerrainConfig
from errors import ContractViolation
from stl_to_web import mesh_to_trimesh


def test_silence_leaves_the_surface_unchanged(base):
    magnitudes = reduce_signal(np.zeros(100), 50)

    mesh = deform_surface(base, magnitudes, 100)

    assert np.array_equal(mesh.positions, base.positions)


def test_full_scale_signal_displaces_every_side_vertex_by_scale_times_normal(base):
    magnitudes = reduce_signal(np.ones(100), 50)
    assert np.array_equal(magnitudes, np.ones(50))

    mesh = deform_surface(base, magnitudes, 100)

    side = slice(0, base.side_vertex_count)
    expected = base.positions[side] + base.normals[side] * 100.0
    assert np.array_equal(mesh.positions[side], expected)
    moved = np.linalg.norm(mesh.positions[side] - base.positions[side], axis=1)
    assert np.allclose(moved, 100.0)
    # cap centres stay on the axis
    assert np.array_equal(mesh.positions[-2:], base.positions[-2:])


def test_displacement_is_constant_along_each_band(base):
    magnitudes = np.linspace(0.0, 0.49, 50)

    mesh = deform_surface(base, magnitudes, 10)

    side = mesh.positions[:base.side_vertex_count].reshape(101, 50, 3)
    radius = np.hypot(side[..., 0], side[..., 1])
    assert np.allclose(radius, 10 + magnitudes * 10)


def test_deformation_is_pure_and_repeatable(base):
    magnitudes = np.random.default_rng(7).uniform(0, 1, 50)
    before = base.positions.copy()

    first = deform_surface(base, magnitudes, 100)
    second = deform_surface(base, magnitudes, 100)

    assert np.array_equal(first.positions, second.positions)
    assert np.array_equal(base.positions, before)


def test_topology_and_normals_come_from_the_base(base):
    mesh = deform_surface(base, np.full(50, 0.3), 100)

    assert mesh.faces is base.faces
    assert mesh.normals is base.normals
    assert mesh.triangle_count == len(base.faces)


def test_relief_mesh_stays_closed(base):
    mesh = deform_surface(base, np.random.default_rng(3).uniform(0, 0.2, 50), 100)
    assert mesh_to_trimesh(mesh).is_watertight


@pytest.mark.parametrize("count", [0, 49, 51])
def test_magnitude_count_must_match_width_segments(base, count):
    with pytest.raises(ContractViolation):
        deform_surface(base, np.zeros(count), 100)


@pytest.mark.parametrize("shape", [(2, 25), (50, 1), ()])
def test_magnitudes_must_be_one_dimensional(base, shape):
    with pytest.raises(ContractViolation):
        deform_surface(base, np.zeros(shape), 100)


def test_contract_violation_is_a_value_error(base):
    with pytest.raises(ValueError):
        deform_surface(base, np.zeros(3), 1)


def test_mesh_is_read_only(base):
    mesh = deform_surface(base, np.zeros(50), 1)
    with pytest.raises(ValueError):
        mesh.positions[0, 0] = 5.0


def test_converter_rebuilds_from_the_base_every_time(small_config):
    converter = TerrainConverter(small_config)
    loud = np.ones(64)

    first = converter.generate_terrain(loud)
    converter.generate_terrain(np.zeros(64))
    again = converter.generate_terrain(loud)

    assert np.array_equal(first.positions, again.positions)
    assert np.array_equal(first.magnitudes, np.ones(8))


def test_converter_applies_configured_smoothing():
    converter = TerrainConverter(TerrainConfig(width_segments=8, height_segments=2, smoothing_sigma=1.0))
    samples = np.zeros(80)
    samples[:10] = 1.0

    magnitudes = converter.compute_magnitudes(samples)

    assert magnitudes[0] < 1.0
    assert magnitudes[1] > 0.0
    assert magnitudes[-1] == pytest.approx(magnitudes[1])
