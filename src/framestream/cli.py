#!/usr/bin/env python3
"""
FrameStream CLI - encode interpolated frames into video while they are produced.
"""

import argparse
import signal
import sys
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.table import Table

from . import __version__
from .config import AutoEncodeConfig, RunOptions, frame_order_filename
from .errors import StreamEncodeError
from .orchestrator import AutoEncoder, AutoEncodeResult, CancellationToken
from .encoder import Chunk
from .producer import DirectoryProgressProbe, ProcessProducer
from .sizing import ChunkSizeConfig
from .utils.config_file import load_config
from .utils.ffmpeg import FFmpegChunkBackend, FFmpegError, check_ffmpeg_installed
from .utils.logging import LogConfig, configure_logging, set_level

console = Console(stderr=True)


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="framestream",
        description="Encode interpolated frames into chunks while the interpolator is still running.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    parser.add_argument("--log-format", default="text", choices=["text", "json"])
    parser.add_argument("--log-file", type=str, default=None)

    subparsers = parser.add_subparsers(dest="command")

    run = subparsers.add_parser("run", help="Run the auto-encode loop")
    run.add_argument("--work-dir", type=Path, required=True, help="Job directory (chunks go under vchunks/)")
    run.add_argument("--frames-dir", type=Path, default=None, help="Interpolated frames (default: <work-dir>/interp)")
    run.add_argument("--manifest", type=Path, default=None, help="Frame order manifest (default: <work-dir>/frames-<factor>x.ini)")
    run.add_argument("-o", "--output", type=Path, required=True, help="Output video path")
    run.add_argument("--input-frames", type=int, required=True, help="Number of source frames")
    run.add_argument("--factor", type=float, default=2.0, help="Interpolation factor")
    run.add_argument("--backend", default="rife-ncnn", help="Interpolation backend name")
    run.add_argument("--frames-ext", default=".png")

    producer = run.add_mutually_exclusive_group(required=True)
    producer.add_argument("--pid", type=int, help="PID of an already running interpolator")
    producer.add_argument("--exec", dest="exec_cmd", nargs=argparse.REMAINDER,
                          help="Start the interpolator with this command (must come last)")

    run.add_argument("--config", type=Path, default=None, help="Extra YAML config file")
    run.add_argument("--mode", type=int, choices=[0, 1, 2], default=None, help="autoEncMode")
    run.add_argument("--wait-for-encoder", action="store_true", default=None,
                     help="Suspend the interpolator when encoding falls behind")
    run.add_argument("--backup", type=int, default=None, help="autoEncBackupMode (>0 enables backups)")
    run.add_argument("--blank-frames", action="store_true", default=None,
                     help="Truncate encoded frames instead of deleting them")
    run.add_argument("--output-mode", default=None, choices=["mp4", "mkv", "webm", "mov", "avi"])
    run.add_argument("--fps", type=float, default=None)
    run.add_argument("--crf", type=int, default=None)
    run.add_argument("--preset", default=None)
    run.add_argument("--debug", action="store_true", default=None, help="Verbose tick logging")

    sizes = subparsers.add_parser("chunk-size", help="Show chunk size and safety buffer for a job")
    sizes.add_argument("--input-frames", type=int, required=True)
    sizes.add_argument("--factor", type=float, default=2.0)
    sizes.add_argument("--backend", default="rife-ncnn")
    sizes.add_argument("--config", type=Path, default=None)

    return parser


def _config_from_args(args: argparse.Namespace) -> AutoEncodeConfig:
    overrides = {
        "auto_enc_mode": getattr(args, "mode", None),
        "always_wait_for_auto_enc": getattr(args, "wait_for_encoder", None),
        "auto_enc_backup_mode": getattr(args, "backup", None),
        "blank_reclaimed_frames": getattr(args, "blank_frames", None),
        "output_mode": getattr(args, "output_mode", None),
        "fps": getattr(args, "fps", None),
        "crf": getattr(args, "crf", None),
        "preset": getattr(args, "preset", None),
        "debug": getattr(args, "debug", None),
    }
    return load_config(args.config, overrides)


def _print_result(result: AutoEncodeResult) -> None:
    table = Table(title="Auto-encode")
    table.add_column("Chunk", justify="right")
    table.add_column("Lines")
    table.add_column("Frames", justify="right")
    table.add_column("File")
    for chunk in result.chunks:
        table.add_row(
            str(chunk.index),
            f"{chunk.first}-{chunk.last}",
            str(chunk.frame_count),
            chunk.output_path.name,
        )
    console.print(table)

    if result.completed:
        console.print(f"[green]Done:[/green] {result.frames_encoded} frames -> {result.output_path}")
    else:
        console.print(f"[red]Canceled:[/red] {result.cancel_reason}")


def cmd_run(args: argparse.Namespace) -> int:
    """Run the auto-encode loop against a producer."""
    config = _config_from_args(args)
    if config.debug:
        set_level("DEBUG")

    frames_dir = args.frames_dir or args.work_dir / "interp"
    options = RunOptions(
        frames_dir=frames_dir,
        manifest_path=args.manifest or args.work_dir / frame_order_filename(args.factor),
        work_dir=args.work_dir,
        output_path=args.output,
        input_frame_count=args.input_frames,
        interp_factor=args.factor,
        backend=args.backend,
        frames_ext=args.frames_ext,
    )

    check_ffmpeg_installed()

    probe = DirectoryProgressProbe(options.frames_dir, options.frames_ext)
    if args.exec_cmd:
        producer = ProcessProducer.spawn(args.exec_cmd, probe, cwd=options.work_dir)
    else:
        producer = ProcessProducer(args.pid, probe)

    token = CancellationToken()
    backend = FFmpegChunkBackend(options.frames_dir, options.manifest_path, config)

    def on_chunk(chunk: Chunk) -> None:
        console.print(f"Chunk #{chunk.index}: lines {chunk.first}-{chunk.last}")

    encoder = AutoEncoder(
        options,
        config,
        producer,
        backend,
        control=producer,
        token=token,
        on_chunk=on_chunk,
    )

    def handle_sigint(signum, frame):
        console.print("[yellow]Canceling...[/yellow]")
        token.cancel("Interrupted")

    previous = signal.signal(signal.SIGINT, handle_sigint)
    try:
        with console.status("Encoding chunks..."):
            result = encoder.run()
    finally:
        signal.signal(signal.SIGINT, previous)

    if not result.completed and not producer.has_exited():
        producer.terminate()

    _print_result(result)
    return 0 if result.completed else 1


def cmd_chunk_size(args: argparse.Namespace) -> int:
    """Print the sizing a job would use."""
    config = load_config(args.config)
    sizes = ChunkSizeConfig.for_run(args.input_frames, args.factor, args.backend, config)
    console.print(f"Chunk size: {sizes.chunk_size} frames")
    console.print(f"Safety buffer: {sizes.safety_buffer_frames} frames")
    console.print(f"Backpressure threshold: {sizes.backpressure_threshold} frames")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    configure_logging(LogConfig(
        log_level=args.log_level,
        log_format=args.log_format,
        log_file=args.log_file,
    ))

    try:
        if args.command == "run":
            return cmd_run(args)
        return cmd_chunk_size(args)
    except (StreamEncodeError, FFmpegError, ValueError) as e:
        console.print(f"[red]Error:[/red] {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
