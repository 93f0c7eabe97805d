import ssl
from pathlib import Path
from typing import Optional

from loguru import logger


def create_ssl_context(ca_file: Optional[str] = None) -> ssl.SSLContext:
    """Build the trust configuration used for outbound webhook calls.

    Starts from the system certificate store and appends the PEM
    certificates in ``ca_file`` when one is given.
    """
    context = ssl.create_default_context()

    if ca_file:
        if not Path(ca_file).is_file():
            raise FileNotFoundError(f"CA file not found: {ca_file}")
        try:
            context.load_verify_locations(cafile=ca_file)
        except ssl.SSLError as e:
            raise ValueError(f"Invalid PEM certificate: {ca_file}") from e
        logger.info(f"Loaded additional CA certificates from {ca_file}")

    return context
