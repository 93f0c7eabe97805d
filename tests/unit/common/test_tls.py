import ssl
from unittest.mock import patch

import pytest

from queue_relay.common.tls import create_ssl_context


class TestCreateSSLContext:

    def test_system_defaults(self):
        """Test that the context verifies peers against the system store."""
        context = create_ssl_context()
        assert isinstance(context, ssl.SSLContext)
        assert context.verify_mode == ssl.CERT_REQUIRED
        assert context.check_hostname is True

    def test_additional_ca_file(self, tmp_path):
        """Test that an extra CA file is loaded into the context."""
        ca_file = tmp_path / "ca.pem"
        ca_file.write_text("placeholder")
        with patch("ssl.SSLContext.load_verify_locations") as mock_load:
            create_ssl_context(str(ca_file))
            mock_load.assert_called_once_with(cafile=str(ca_file))

    def test_missing_ca_file(self, tmp_path):
        """Test that a missing CA file is a startup error."""
        with pytest.raises(FileNotFoundError, match="CA file not found"):
            create_ssl_context(str(tmp_path / "missing.pem"))

    def test_invalid_pem(self, tmp_path):
        """Test that a file without certificates is rejected."""
        ca_file = tmp_path / "ca.pem"
        ca_file.write_text("this is not a certificate\n")
        with pytest.raises(ValueError, match="Invalid PEM certificate"):
            create_ssl_context(str(ca_file))
