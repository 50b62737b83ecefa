"""Unit tests for artifacts module."""

from unittest.mock import Mock, patch

import pytest
import requests

from beranode.artifacts import (
    ETH_GENESIS_TEMPLATE_URL,
    TRUSTED_SETUP_URL,
    ArtifactError,
    fetch_eth_genesis_template,
    fetch_trusted_setup,
)


def _response(content: bytes, status_error: Exception | None = None) -> Mock:
    response = Mock()
    response.content = content
    response.raise_for_status.side_effect = status_error
    return response


class TestFetchTrustedSetup:
    """Tests for fetch_trusted_setup()."""

    @patch("beranode.artifacts.requests.get")
    def test_downloads_to_dest(self, mock_get, tmp_path):
        mock_get.return_value = _response(b'{"g1_lagrange": []}')
        dest = tmp_path / "tmp" / "kzg-trusted-setup.json"

        assert fetch_trusted_setup(dest) == dest

        assert dest.read_bytes() == b'{"g1_lagrange": []}'
        assert mock_get.call_args.args[0] == TRUSTED_SETUP_URL
        assert "timeout" in mock_get.call_args.kwargs
        assert not dest.with_suffix(".tmp").exists()

    @patch("beranode.artifacts.requests.get")
    def test_existing_file_kept(self, mock_get, tmp_path):
        dest = tmp_path / "kzg-trusted-setup.json"
        dest.write_text("{}")
        fetch_trusted_setup(dest)
        mock_get.assert_not_called()

    @patch("beranode.artifacts.requests.get")
    def test_force_redownloads(self, mock_get, tmp_path):
        mock_get.return_value = _response(b'{"new": true}')
        dest = tmp_path / "kzg-trusted-setup.json"
        dest.write_text("{}")
        fetch_trusted_setup(dest, force=True)
        assert dest.read_bytes() == b'{"new": true}'

    @patch("beranode.artifacts.requests.get")
    def test_http_error(self, mock_get, tmp_path):
        mock_get.return_value = _response(b"", requests.HTTPError("404 Not Found"))
        dest = tmp_path / "kzg-trusted-setup.json"
        with pytest.raises(ArtifactError, match="404"):
            fetch_trusted_setup(dest)
        assert not dest.exists()

    @patch("beranode.artifacts.requests.get", side_effect=requests.ConnectionError("offline"))
    def test_connection_error(self, mock_get, tmp_path):
        with pytest.raises(ArtifactError, match="offline"):
            fetch_trusted_setup(tmp_path / "kzg-trusted-setup.json")

    @patch("beranode.artifacts.requests.get")
    def test_invalid_json(self, mock_get, tmp_path):
        mock_get.return_value = _response(b"<html>rate limited</html>")
        dest = tmp_path / "kzg-trusted-setup.json"
        with pytest.raises(ArtifactError, match="not valid JSON"):
            fetch_trusted_setup(dest)
        assert not dest.exists()

    @patch("beranode.artifacts.requests.get")
    def test_unwritable_dest(self, mock_get, tmp_path):
        mock_get.return_value = _response(b"{}")
        with patch("beranode.artifacts.Path.write_bytes", side_effect=PermissionError("read-only")):
            with pytest.raises(ArtifactError, match="Failed to save"):
                fetch_trusted_setup(tmp_path / "kzg-trusted-setup.json")


class TestFetchEthGenesisTemplate:
    """Tests for fetch_eth_genesis_template()."""

    @patch("beranode.artifacts.requests.get")
    def test_downloads_template(self, mock_get, tmp_path):
        mock_get.return_value = _response(b'{"alloc": {}}')
        dest = tmp_path / "eth-genesis-template.json"

        fetch_eth_genesis_template(dest)

        assert dest.read_bytes() == b'{"alloc": {}}'
        assert mock_get.call_args.args[0] == ETH_GENESIS_TEMPLATE_URL

    @patch("beranode.artifacts.requests.get", side_effect=requests.Timeout("timed out"))
    def test_error_names_template(self, mock_get, tmp_path):
        with pytest.raises(ArtifactError, match="execution genesis template"):
            fetch_eth_genesis_template(tmp_path / "eth-genesis-template.json")
