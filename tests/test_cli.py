"""Tests for cli.py -- Click CLI interface."""

import base64
import json
from unittest.mock import patch

import pytest
from click.testing import CliRunner
from loguru import logger

from shelfscan.cli import EXIT_NO_PROVIDERS, main
from shelfscan.errors import NoProvidersAvailable
from shelfscan.models import BookCandidate, ProviderDiagnostics, ScanResult


@pytest.fixture(autouse=True)
def _no_env_file(monkeypatch):
    """Prevent CLI from loading the project .env file."""
    monkeypatch.setattr("shelfscan.cli._find_config_file", lambda: None)


@pytest.fixture(autouse=True)
def _reset_logger():
    yield
    logger.remove()


@pytest.fixture
def photo(tmp_path):
    path = tmp_path / "shelf.jpg"
    path.write_bytes(b"\xff\xd8\xff\xe0fake")
    return path


def _result(**kwargs):
    return ScanResult(
        books=[BookCandidate(title="Dune", author="Frank Herbert", spine_index=0)],
        providers={"openai": ProviderDiagnostics(attempted=True, succeeded=True, count=1)},
        **kwargs,
    )


class TestHelpOutput:
    def test_help_flag(self):
        result = CliRunner().invoke(main, ["--help"])
        assert result.exit_code == 0
        assert "Scan a bookshelf photo" in result.output
        assert "--no-lookup" in result.output
        assert "--job-id" in result.output


class TestScan:
    @patch("shelfscan.cli.ScanPipeline")
    def test_prints_json(self, mock_pipeline_cls, photo):
        mock_pipeline_cls.from_config.return_value.run.return_value = _result(job_id="job_1")
        result = CliRunner().invoke(main, [str(photo)])
        assert result.exit_code == 0, result.output + str(result.exception or "")
        data = json.loads(result.output)
        assert data["job_id"] == "job_1"
        assert data["books"][0]["title"] == "Dune"
        assert data["providers"]["openai"]["count"] == 1

    @patch("shelfscan.cli.ScanPipeline")
    def test_passes_ids_and_image(self, mock_pipeline_cls, photo):
        mock_run = mock_pipeline_cls.from_config.return_value.run
        mock_run.return_value = _result()
        result = CliRunner().invoke(main, [str(photo), "--job-id", "j9", "--user-id", "u9"])
        assert result.exit_code == 0, result.output + str(result.exception or "")
        payload = mock_run.call_args.args[0]
        assert payload.data == b"\xff\xd8\xff\xe0fake"
        assert payload.mime_type == "image/jpeg"
        assert mock_run.call_args.kwargs == {"user_id": "u9", "job_id": "j9"}

    @patch("shelfscan.cli.ScanPipeline")
    def test_reads_data_url_from_stdin(self, mock_pipeline_cls):
        mock_run = mock_pipeline_cls.from_config.return_value.run
        mock_run.return_value = _result()
        data_url = "data:image/png;base64," + base64.b64encode(b"png").decode()
        result = CliRunner().invoke(main, ["-"], input=data_url)
        assert result.exit_code == 0, result.output + str(result.exception or "")
        payload = mock_run.call_args.args[0]
        assert payload.data == b"png"
        assert payload.mime_type == "image/png"

    def test_bad_stdin_is_usage_error(self):
        result = CliRunner().invoke(main, ["-"], input="")
        assert result.exit_code == 2
        assert "empty" in result.output

    def test_missing_image(self, tmp_path):
        result = CliRunner().invoke(main, [str(tmp_path / "nope.jpg")])
        assert result.exit_code == 2
        assert "Image not found" in result.output

    @patch("shelfscan.cli.ScanPipeline")
    def test_no_providers_exit_code(self, mock_pipeline_cls, photo):
        mock_pipeline_cls.from_config.return_value.run.side_effect = NoProvidersAvailable(
            "no vision provider configured"
        )
        result = CliRunner().invoke(main, [str(photo)])
        assert result.exit_code == EXIT_NO_PROVIDERS
        assert "no vision provider configured" in result.output


class TestFlags:
    @patch("shelfscan.cli.ScanPipeline")
    def test_stage_toggles_set_config(self, mock_pipeline_cls, photo):
        mock_pipeline_cls.from_config.return_value.run.return_value = _result()
        result = CliRunner().invoke(main, [str(photo), "--no-lookup", "--no-validate"])
        assert result.exit_code == 0, result.output + str(result.exception or "")
        config = mock_pipeline_cls.from_config.call_args.args[0]
        assert config.lookup_enabled is False
        assert config.validation_enabled is False

    @patch("shelfscan.cli.ScanPipeline")
    def test_verbose_sets_debug(self, mock_pipeline_cls, photo):
        mock_pipeline_cls.from_config.return_value.run.return_value = _result()
        result = CliRunner().invoke(main, [str(photo), "-v"])
        assert result.exit_code == 0, result.output + str(result.exception or "")
        config = mock_pipeline_cls.from_config.call_args.args[0]
        assert config.verbose is True
        assert config.log_level == "DEBUG"

    @patch("shelfscan.cli.ScanPipeline")
    def test_config_file(self, mock_pipeline_cls, photo, tmp_path):
        mock_pipeline_cls.from_config.return_value.run.return_value = _result()
        env_file = tmp_path / "custom.env"
        env_file.write_text("OPENAI_API_KEY=sk-from-file\nBATCH_SIZE=4\n")
        result = CliRunner().invoke(main, [str(photo), "-c", str(env_file)])
        assert result.exit_code == 0, result.output + str(result.exception or "")
        config = mock_pipeline_cls.from_config.call_args.args[0]
        assert config.openai_api_key == "sk-from-file"
        assert config.batch_size == 4

    @patch("shelfscan.cli.ScanPipeline")
    def test_pretty(self, mock_pipeline_cls, photo):
        mock_pipeline_cls.from_config.return_value.run.return_value = _result()
        result = CliRunner().invoke(main, [str(photo), "--pretty"])
        assert result.exit_code == 0, result.output + str(result.exception or "")
        assert result.output.startswith("{\n  ")
