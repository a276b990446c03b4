"""Tests for the command line interface."""
from unittest.mock import MagicMock, patch

import pytest

from framestream import cli
from framestream.orchestrator import AutoEncodeResult, OrchestratorState


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep user and project config files out of CLI tests."""
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.chdir(tmp_path)


class TestParser:
    """Tests for argument parsing."""

    def test_run_with_pid(self, tmp_path):
        args = cli.create_parser().parse_args([
            "run", "--work-dir", str(tmp_path), "-o", "out.mp4",
            "--input-frames", "100", "--pid", "1234", "--mode", "1",
        ])
        assert args.command == "run"
        assert args.pid == 1234
        assert args.mode == 1
        assert args.exec_cmd is None

    def test_run_with_exec(self, tmp_path):
        args = cli.create_parser().parse_args([
            "run", "--work-dir", str(tmp_path), "-o", "out.mp4",
            "--input-frames", "100", "--exec", "rife-ncnn-vulkan", "-i", "in", "-o", "interp",
        ])
        assert args.exec_cmd == ["rife-ncnn-vulkan", "-i", "in", "-o", "interp"]

    def test_run_requires_producer(self, tmp_path):
        with pytest.raises(SystemExit):
            cli.create_parser().parse_args([
                "run", "--work-dir", str(tmp_path), "-o", "out.mp4", "--input-frames", "100",
            ])

    def test_config_from_args(self, tmp_path):
        args = cli.create_parser().parse_args([
            "run", "--work-dir", str(tmp_path), "-o", "out.mp4", "--input-frames", "100",
            "--pid", "1", "--mode", "1", "--wait-for-encoder", "--crf", "24",
        ])
        config = cli._config_from_args(args)

        assert config.reclaim_frames is False
        assert config.always_wait_for_auto_enc is True
        assert config.crf == 24
        assert config.blank_reclaimed_frames is False


class TestMain:
    """Tests for main()."""

    def test_no_command(self):
        assert cli.main([]) == 1

    def test_chunk_size(self, capsys):
        result = cli.main(["chunk-size", "--input-frames", "3000", "--factor", "2", "--backend", "rife-ncnn"])

        assert result == 0
        err = capsys.readouterr().err
        assert "Chunk size: 600 frames" in err
        assert "Safety buffer: 150 frames" in err
        assert "Backpressure threshold: 1050 frames" in err

    def test_errors_are_reported(self, capsys, tmp_path):
        with patch.object(cli, "check_ffmpeg_installed", side_effect=cli.FFmpegError("FFmpeg not found")):
            result = cli.main([
                "run", "--work-dir", str(tmp_path), "-o", "out.mp4",
                "--input-frames", "100", "--pid", "1",
            ])

        assert result == 1
        assert "FFmpeg not found" in capsys.readouterr().err

    def test_run(self, tmp_path):
        producer = MagicMock()
        producer.has_exited.return_value = True
        result = AutoEncodeResult(state=OrchestratorState.COMPLETED, chunks=[], output_path=tmp_path / "out.mp4")

        with patch.object(cli, "check_ffmpeg_installed", return_value=True), \
                patch.object(cli.ProcessProducer, "spawn", return_value=producer) as spawn, \
                patch.object(cli.AutoEncoder, "run", return_value=result):
            code = cli.main([
                "run", "--work-dir", str(tmp_path), "-o", str(tmp_path / "out.mp4"),
                "--input-frames", "100", "--exec", "interp", "--flag",
            ])

        assert code == 0
        assert spawn.call_args[0][0] == ["interp", "--flag"]
        producer.terminate.assert_not_called()

    def test_canceled_run_stops_producer(self, tmp_path):
        producer = MagicMock()
        producer.has_exited.return_value = False
        result = AutoEncodeResult(state=OrchestratorState.CANCELED, chunks=[], cancel_reason="Interrupted")

        with patch.object(cli, "check_ffmpeg_installed", return_value=True), \
                patch.object(cli.ProcessProducer, "spawn", return_value=producer), \
                patch.object(cli.AutoEncoder, "run", return_value=result):
            code = cli.main([
                "run", "--work-dir", str(tmp_path), "-o", str(tmp_path / "out.mp4"),
                "--input-frames", "100", "--exec", "interp",
            ])

        assert code == 1
        producer.terminate.assert_called_once()
