import numpy as np
import pytest

from converter import reduce_signal, segment_bounds, smooth_magnitudes


@pytest.mark.parametrize("n, w", [(0, 1), (0, 50), (3, 50), (100, 50), (101, 7), (44100, 50)])
def test_reduce_returns_one_non_negative_value_per_segment(n, w):
    rng = np.random.default_rng(n + w)
    samples = rng.uniform(-1, 1, n)

    magnitudes = reduce_signal(samples, w)

    assert magnitudes.shape == (w,)
    assert np.all(magnitudes >= 0)
    assert not np.any(np.isnan(magnitudes))


@pytest.mark.parametrize("n, w", [(0, 5), (3, 50), (100, 50), (101, 7), (1000, 3)])
def test_segment_bounds_partition_the_buffer(n, w):
    bounds = segment_bounds(n, w)

    assert len(bounds) == w + 1
    assert bounds[0] == 0
    assert bounds[-1] == n
    # slice i ends where slice i + 1 starts
    assert np.all(np.diff(bounds) >= 0)
    covered = np.concatenate([np.arange(bounds[i], bounds[i + 1]) for i in range(w)])
    assert np.array_equal(covered, np.arange(n))


def test_segment_bounds_use_floor_of_proportional_index():
    bounds = segment_bounds(10, 3)
    assert bounds.tolist() == [0, 3, 6, 10]


def test_zeros_give_zero_magnitudes():
    magnitudes = reduce_signal(np.zeros(100), 50)
    assert np.array_equal(magnitudes, np.zeros(50))


def test_ones_give_unit_magnitudes():
    magnitudes = reduce_signal(np.ones(100), 50)
    assert np.array_equal(magnitudes, np.ones(50))


def test_mean_of_absolute_values_per_slice():
    samples = np.array([1.0, -1.0, 0.5, -0.25, -0.75, 0.75])
    magnitudes = reduce_signal(samples, 3)
    assert magnitudes.tolist() == [1.0, 0.375, 0.75]


def test_fewer_samples_than_segments_leaves_empty_segments_at_zero():
    samples = np.array([0.5, -0.25, 1.0])

    magnitudes = reduce_signal(samples, 50)

    assert not np.any(np.isnan(magnitudes))
    assert np.count_nonzero(magnitudes) == 3
    # 3 * (i + 1) // 50 steps up at i = 16, 33 and 49
    assert magnitudes[16] == 0.5
    assert magnitudes[33] == 0.25
    assert magnitudes[49] == 1.0


def test_empty_buffer_gives_all_zero():
    assert np.array_equal(reduce_signal(np.array([]), 4), np.zeros(4))


def test_reduce_is_deterministic():
    samples = np.random.default_rng(1).uniform(-1, 1, 12345)
    assert np.array_equal(reduce_signal(samples, 50), reduce_signal(samples, 50))


def test_segment_count_must_be_positive():
    with pytest.raises(ValueError):
        reduce_signal(np.ones(10), 0)


def test_smoothing_off_returns_input():
    magnitudes = np.array([0.0, 1.0, 0.0, 0.0])
    assert np.array_equal(smooth_magnitudes(magnitudes, 0.0), magnitudes)


def test_smoothing_wraps_around_the_circumference():
    magnitudes = np.zeros(10)
    magnitudes[0] = 1.0

    smoothed = smooth_magnitudes(magnitudes, 1.0)

    assert smoothed[1] == pytest.approx(smoothed[-1])
    assert smoothed.sum() == pytest.approx(1.0)
    assert np.all(smoothed >= 0)


def test_segment_mean_accumulates_left_to_right():
    rng = np.random.default_rng(7)
    samples = rng.uniform(-1, 1, 1000)

    total = 0.0
    for value in samples:
        total += abs(value)

    # exact, not approx: pairwise summation rounds differently
    assert reduce_signal(samples, 1)[0] == total / len(samples)
