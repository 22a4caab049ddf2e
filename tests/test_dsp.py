"""Unit tests for window, FFT engine and spectrum conversion."""

from __future__ import annotations

import math
import unittest

import numpy as np
from scipy.signal import windows

from mic_spectrum.audio.config import FRAME_SIZES
from mic_spectrum.dsp import (
    ExponentialSmoother,
    FFTEngine,
    bin_frequencies,
    fft_inplace,
    hann_window,
    magnitude_spectrum_db,
    rms_dbfs,
)
from mic_spectrum.exceptions import InvalidSizeError


def _analyze(samples: np.ndarray) -> np.ndarray:
    """Window -> FFT -> dBFS for a normalized float frame."""
    n = samples.shape[0]
    window = hann_window(n)
    engine = FFTEngine(n)
    window.apply(samples, out=engine.real)
    engine.imag.fill(0.0)
    engine.execute()
    return magnitude_spectrum_db(engine.real, engine.imag, window.coherent_gain, n)


class TestHannWindow(unittest.TestCase):
    def test_matches_symmetric_hann(self) -> None:
        """Coefficients equal the symmetric Hann definition."""
        for n in (2, 16, 1024):
            w = hann_window(n)
            np.testing.assert_allclose(w.coefficients, windows.hann(n, sym=True), atol=1e-12)
            self.assertEqual(w.size, n)

    def test_coherent_gain_is_mean(self) -> None:
        w = hann_window(2048)
        self.assertAlmostEqual(w.coherent_gain, float(np.mean(w.coefficients)), places=12)
        self.assertAlmostEqual(w.coherent_gain, 0.5 * (1.0 - 1.0 / 2048), places=9)

    def test_too_small(self) -> None:
        with self.assertRaises(InvalidSizeError):
            hann_window(1)
        with self.assertRaises(InvalidSizeError):
            hann_window(0)

    def test_immutable_and_rebuilt(self) -> None:
        """Each call builds a fresh read-only window."""
        a = hann_window(512)
        b = hann_window(1024)
        self.assertFalse(a.coefficients.flags.writeable)
        with self.assertRaises(ValueError):
            a.coefficients[0] = 1.0
        self.assertIsNot(a.coefficients, hann_window(512).coefficients)
        self.assertEqual(b.size, 1024)
        self.assertEqual(a.coefficients[0], 0.0)
        self.assertAlmostEqual(a.coefficients[-1], 0.0, places=12)


class TestFFT(unittest.TestCase):
    def test_matches_numpy(self) -> None:
        """Engine output equals the DFT for every power-of-two size up to 8192."""
        rng = np.random.default_rng(7)
        n = 1
        while n <= 8192:
            x = rng.standard_normal(n) + 1j * rng.standard_normal(n)
            engine = FFTEngine(n)
            engine.real[:] = x.real
            engine.imag[:] = x.imag
            engine.execute()
            expected = np.fft.fft(x)
            np.testing.assert_allclose(engine.real, expected.real, rtol=1e-9, atol=1e-8)
            np.testing.assert_allclose(engine.imag, expected.imag, rtol=1e-9, atol=1e-8)
            n *= 2

    def test_fft_inplace_caller_arrays(self) -> None:
        rng = np.random.default_rng(3)
        re = rng.standard_normal(256)
        im = np.zeros(256)
        expected = np.fft.fft(re)
        fft_inplace(re, im)
        np.testing.assert_allclose(re + 1j * im, expected, rtol=1e-9, atol=1e-9)

    def test_engine_reusable(self) -> None:
        """Repeated executes on the same engine stay correct (scratch reuse)."""
        engine = FFTEngine(64)
        for seed in range(3):
            x = np.random.default_rng(seed).standard_normal(64)
            engine.real[:] = x
            engine.imag.fill(0.0)
            engine.execute()
            np.testing.assert_allclose(engine.real + 1j * engine.imag, np.fft.fft(x), atol=1e-9)

    def test_impulse_is_flat(self) -> None:
        engine = FFTEngine(32)
        engine.real[0] = 1.0
        engine.execute()
        np.testing.assert_allclose(engine.real, np.ones(32), atol=1e-12)
        np.testing.assert_allclose(engine.imag, np.zeros(32), atol=1e-12)

    def test_rejects_non_power_of_two(self) -> None:
        for n in (0, 3, 513, 1000, 6000):
            with self.assertRaises(InvalidSizeError):
                FFTEngine(n)
            with self.assertRaises(InvalidSizeError):
                fft_inplace(np.zeros(n), np.zeros(n))

    def test_invalid_size_is_value_error(self) -> None:
        with self.assertRaises(ValueError):
            FFTEngine(513)

    def test_supported_sizes(self) -> None:
        for n in FRAME_SIZES:
            engine = FFTEngine(n)
            engine.execute()
            self.assertEqual(engine.real.shape, (n,))

    def test_mismatched_lengths(self) -> None:
        with self.assertRaises(InvalidSizeError):
            fft_inplace(np.zeros(64), np.zeros(32))


class TestSpectrumConverter(unittest.TestCase):
    def test_zero_frame_is_floor(self) -> None:
        """Silence: every bin sits at the floor."""
        db = _analyze(np.zeros(1024))
        self.assertEqual(db.shape, (512,))
        np.testing.assert_array_equal(db, np.full(512, -150.0))

    def test_bin_aligned_full_scale_tone_is_0_dbfs(self) -> None:
        n, k0 = 1024, 64
        x = np.cos(2.0 * np.pi * k0 * np.arange(n) / n)
        db = _analyze(x)
        self.assertEqual(int(np.argmax(db)), k0)
        self.assertAlmostEqual(float(db[k0]), 0.0, delta=0.1)
        others = np.delete(db, [k0 - 1, k0, k0 + 1])
        self.assertLess(float(others.max()), -40.0)

    def test_1khz_half_scale_tone(self) -> None:
        """N=2048 @ 44.1 kHz, 1 kHz at 0.5: peak near bin 46 at about -6 dBFS."""
        n, rate = 2048, 44_100
        x = 0.5 * np.sin(2.0 * np.pi * 1000.0 * np.arange(n) / rate)
        db = _analyze(x)
        self.assertEqual(int(np.argmax(db)), round(1000 / (rate / n)))
        # 1 kHz falls 0.44 bin off center: Hann scalloping costs about 1.1 dB
        self.assertAlmostEqual(float(db.max()), 20.0 * math.log10(0.5), delta=1.5)

    def test_dc_not_doubled(self) -> None:
        db = _analyze(np.full(512, 0.25))
        self.assertAlmostEqual(float(db[0]), 20.0 * math.log10(0.25), delta=1e-6)

    def test_degenerate_gain(self) -> None:
        """A zero gain is floored, not raised."""
        re = np.zeros(16)
        re[1] = 1.0
        db = magnitude_spectrum_db(re, np.zeros(16), 0.0, 16)
        self.assertTrue(np.all(np.isfinite(db)))

    def test_out_buffer(self) -> None:
        out = np.empty(8)
        result = magnitude_spectrum_db(np.zeros(16), np.zeros(16), 0.5, 16, out=out)
        self.assertIs(result, out)

    def test_custom_floor(self) -> None:
        db = magnitude_spectrum_db(np.zeros(16), np.zeros(16), 0.5, 16, floor_db=-90.0)
        np.testing.assert_array_equal(db, np.full(8, -90.0))

    def test_bin_frequencies(self) -> None:
        f = bin_frequencies(1024, 44_100)
        self.assertEqual(f.shape, (512,))
        self.assertEqual(f[0], 0.0)
        self.assertAlmostEqual(f[1], 44_100 / 1024)


class TestRmsDbfs(unittest.TestCase):
    def test_silence_floored(self) -> None:
        self.assertEqual(rms_dbfs(np.zeros(1024)), -150.0)
        self.assertEqual(rms_dbfs(np.zeros(0)), -150.0)

    def test_constant(self) -> None:
        self.assertAlmostEqual(rms_dbfs(np.full(100, 0.5)), 20.0 * math.log10(0.5), places=9)

    def test_full_scale_sine(self) -> None:
        x = np.sin(2.0 * np.pi * 8 * np.arange(1024) / 1024)
        self.assertAlmostEqual(rms_dbfs(x), -3.0103, places=3)


class TestExponentialSmoother(unittest.TestCase):
    def test_first_update_seeds(self) -> None:
        s = ExponentialSmoother(0.3)
        self.assertFalse(s.seeded)
        np.testing.assert_array_equal(s.update(np.array([-20.0, -40.0])), [-20.0, -40.0])
        self.assertTrue(s.seeded)

    def test_blend(self) -> None:
        s = ExponentialSmoother(0.2)
        self.assertEqual(s.update(-100.0), -100.0)
        self.assertAlmostEqual(s.update(0.0), -80.0)

    def test_converges_without_overshoot(self) -> None:
        """Constant input: monotonic approach to the target, never past it."""
        s = ExponentialSmoother(0.3)
        target = np.array([-10.0, -60.0, -150.0])
        prev = s.update(np.array([-150.0, 0.0, -150.0]))
        for _ in range(200):
            cur = s.update(target)
            self.assertTrue(np.all(cur[:1] >= prev[:1] - 1e-12))
            self.assertTrue(np.all(cur[:1] <= target[:1] + 1e-9))
            self.assertTrue(np.all(cur[1:2] <= prev[1:2] + 1e-12))
            self.assertTrue(np.all(cur[1:2] >= target[1:2] - 1e-9))
            prev = cur
        np.testing.assert_allclose(prev, target, atol=1e-6)

    def test_returned_array_is_independent(self) -> None:
        s = ExponentialSmoother(0.5)
        a = s.update(np.zeros(4))
        a[:] = 99.0
        np.testing.assert_array_equal(s.update(np.zeros(4)), np.zeros(4))

    def test_shape_change_reseeds(self) -> None:
        s = ExponentialSmoother(0.5)
        s.update(np.zeros(4))
        np.testing.assert_array_equal(s.update(np.ones(8)), np.ones(8))

    def test_alpha_validation(self) -> None:
        with self.assertRaises(ValueError):
            ExponentialSmoother(0.0)
        with self.assertRaises(ValueError):
            ExponentialSmoother(1.5)


if __name__ == "__main__":
    unittest.main(verbosity=2)
