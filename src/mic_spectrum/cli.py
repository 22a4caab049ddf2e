"""CLI for the live spectrum analyzer."""

import argparse
import sys
import time

from mic_spectrum.audio import AnalyzerConfig, SoundDeviceInput, ToneInput, list_input_devices
from mic_spectrum.audio.config import FRAME_SIZES
from mic_spectrum.display import format_status, log_bands, render_bars
from mic_spectrum.exceptions import MicSpectrumError
from mic_spectrum.logging import configure_logging
from mic_spectrum.pipeline import PipelineController


def main() -> None:
    parser = argparse.ArgumentParser(description="Live microphone spectrum (dBFS)")
    parser.add_argument(
        "--frame-size",
        type=int,
        choices=FRAME_SIZES,
        default=2048,
        help="FFT frame size (default: 2048)",
    )
    parser.add_argument(
        "--duration",
        type=float,
        default=None,
        help="Stop after this many seconds (default: run until Ctrl-C)",
    )
    parser.add_argument(
        "--device",
        type=int,
        default=None,
        help="Input device index (list with --list-devices)",
    )
    parser.add_argument(
        "--list-devices",
        action="store_true",
        help="List available audio input devices and exit",
    )
    parser.add_argument(
        "--tone",
        type=float,
        default=None,
        metavar="HZ",
        help="Analyze a synthetic sine at HZ instead of the microphone",
    )
    parser.add_argument(
        "--amplitude",
        type=float,
        default=0.5,
        help="Synthetic tone amplitude relative to full scale (default: 0.5)",
    )
    parser.add_argument(
        "--bands",
        type=int,
        default=64,
        help="Number of log-spaced display bands (default: 64)",
    )
    parser.add_argument(
        "--height",
        type=int,
        default=8,
        help="Bar height in text rows (default: 8)",
    )
    parser.add_argument("--log-format", choices=("console", "json"), default=None)
    parser.add_argument("--log-level", default=None)
    args = parser.parse_args()

    configure_logging(args.log_format, args.log_level, force=True)

    if args.list_devices:
        try:
            devices = list_input_devices()
        except ImportError as exc:
            print(exc, file=sys.stderr)
            sys.exit(1)
        for d in devices:
            print(f"{d['index']:3d}  {d['name']}  ({d['channels']} ch, {d['default_samplerate']:.0f} Hz)")
        return

    config = AnalyzerConfig(frame_size=args.frame_size)
    if args.tone is not None:
        audio_input = ToneInput(frequency=args.tone, amplitude=args.amplitude)
    else:
        audio_input = SoundDeviceInput(device=args.device, read_timeout_sec=config.read_timeout_sec)

    # A desktop terminal has no runtime permission prompt: access is granted.
    controller = PipelineController(audio_input, config=config, permission_granted=True)
    try:
        controller.start()
    except (MicSpectrumError, ImportError) as exc:
        print(f"Cannot start capture: {exc}", file=sys.stderr)
        sys.exit(1)

    deadline = None if args.duration is None else time.monotonic() + args.duration
    snapshot = None
    try:
        while deadline is None or time.monotonic() < deadline:
            snapshot = controller.wait_for_snapshot(snapshot, timeout=0.5)
            if not controller.is_running:
                print(f"Capture stopped: {controller.fault}", file=sys.stderr)
                sys.exit(1)
            if snapshot is None:
                continue
            bands = log_bands(
                snapshot.spectrum_db,
                snapshot.sample_rate,
                n_bands=args.bands,
                floor_db=config.floor_db,
            )
            lines = render_bars(bands, height=args.height)
            lines.append(format_status(snapshot, controller.loudness_db))
            # Redraw in place
            sys.stdout.write("\x1b[H\x1b[J" + "\n".join(lines) + "\n")
            sys.stdout.flush()
    except KeyboardInterrupt:
        pass
    finally:
        controller.stop()


if __name__ == "__main__":
    main()
