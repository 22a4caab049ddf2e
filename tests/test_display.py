"""Unit tests for the terminal display adapter and configuration."""

from __future__ import annotations

import unittest

import numpy as np

from mic_spectrum.audio.config import AnalyzerConfig
from mic_spectrum.display import format_status, level_fraction, log_bands, render_bars
from mic_spectrum.exceptions import ConfigError, UnsupportedFrameSizeError
from mic_spectrum.pipeline.snapshot import make_snapshot


class TestLogBands(unittest.TestCase):
    def test_tone_lands_in_its_band(self) -> None:
        spectrum = np.full(1024, -150.0)
        spectrum[46] = -7.0  # ~990 Hz at N=2048, 44.1 kHz
        bands = log_bands(spectrum, 44_100, n_bands=64)
        self.assertGreater(len(bands), 0)
        self.assertLessEqual(len(bands), 64)
        loud = [b for b in bands if b.level_db == -7.0]
        self.assertEqual(len(loud), 1)
        self.assertLess(loud[0].f_low, 1000.0)
        self.assertGreater(loud[0].f_high, 950.0)

    def test_bands_are_ordered(self) -> None:
        bands = log_bands(np.zeros(4096), 48_000, n_bands=32)
        lows = [b.f_low for b in bands]
        self.assertEqual(lows, sorted(lows))
        self.assertTrue(all(b.f_high > b.f_low for b in bands))

    def test_narrow_bands_dropped_for_small_frames(self) -> None:
        coarse = log_bands(np.zeros(256), 44_100, n_bands=64)
        fine = log_bands(np.zeros(4096), 44_100, n_bands=64)
        self.assertLess(len(coarse), len(fine))

    def test_degenerate_input(self) -> None:
        self.assertEqual(log_bands(np.zeros(1), 44_100), [])
        self.assertEqual(log_bands(np.zeros(512), 44_100, n_bands=0), [])


class TestRenderBars(unittest.TestCase):
    def test_shape(self) -> None:
        bands = log_bands(np.full(1024, -60.0), 44_100, n_bands=16)
        rows = render_bars(bands, height=4)
        self.assertEqual(len(rows), 4)
        self.assertTrue(all(len(r) == len(bands) for r in rows))
        # -60 dB on a -120..0 scale fills the lower half
        self.assertEqual(set(rows[-1]), {"█"})
        self.assertEqual(set(rows[0]), {" "})

    def test_level_fraction_clamps(self) -> None:
        self.assertEqual(level_fraction(-150.0), 0.0)
        self.assertEqual(level_fraction(10.0), 1.0)
        self.assertAlmostEqual(level_fraction(-60.0), 0.5)

    def test_empty(self) -> None:
        self.assertEqual(render_bars([]), [])

    def test_format_status(self) -> None:
        self.assertIn("waiting", format_status(None, -120.0))
        snap = make_snapshot(np.full(512, -150.0), -12.5, 1024, 44_100, 1)
        line = format_status(snap, snap.loudness_db)
        self.assertIn("-12.5 dBFS", line)
        self.assertIn("N=1024", line)


class TestAnalyzerConfig(unittest.TestCase):
    def test_defaults(self) -> None:
        cfg = AnalyzerConfig()
        self.assertEqual(cfg.frame_size, 2048)
        self.assertEqual(cfg.bins, 1024)
        self.assertEqual(cfg.sample_rates[0], 44_100)
        self.assertAlmostEqual(cfg.bin_hz(44_100), 44_100 / 2048)

    def test_with_frame_size(self) -> None:
        cfg = AnalyzerConfig().with_frame_size(8192)
        self.assertEqual(cfg.frame_size, 8192)
        with self.assertRaises(UnsupportedFrameSizeError):
            cfg.with_frame_size(1000)

    def test_validation(self) -> None:
        with self.assertRaises(UnsupportedFrameSizeError):
            AnalyzerConfig(frame_size=256)
        with self.assertRaises(ConfigError):
            AnalyzerConfig(frame_sizes=(512, 1000), frame_size=512)
        with self.assertRaises(ConfigError):
            AnalyzerConfig(spectrum_alpha=0.0)
        with self.assertRaises(ConfigError):
            AnalyzerConfig(channels=2)
        with self.assertRaises(ConfigError):
            AnalyzerConfig(sample_rates=())


if __name__ == "__main__":
    unittest.main(verbosity=2)
