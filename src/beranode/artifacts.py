"""Shared artifact downloads.

Fetches the files every fleet shares from the beacon-kit repository:

- the KZG trusted setup every beacond node loads
- the execution genesis template carrying the predeployed contract code

Existing files are kept; downloads go to a temp file and are renamed into place.
"""

import json
import logging
from pathlib import Path

import requests

logger = logging.getLogger(__name__)

BEACON_KIT_FILES_URL = "https://raw.githubusercontent.com/berachain/beacon-kit/main/testing/files"
TRUSTED_SETUP_URL = f"{BEACON_KIT_FILES_URL}/kzg-trusted-setup.json"
ETH_GENESIS_TEMPLATE_URL = f"{BEACON_KIT_FILES_URL}/eth-genesis.json"
DOWNLOAD_TIMEOUT = 60


class ArtifactError(Exception):
    """Raised when a shared artifact cannot be fetched."""

    pass


def _fetch_json(dest: Path, url: str, label: str, force: bool) -> Path:
    if dest.exists() and not force:
        logger.debug(f"{label} already present at {dest}")
        return dest

    logger.info(f"Downloading {label} from {url}")
    try:
        response = requests.get(url, timeout=DOWNLOAD_TIMEOUT)
        response.raise_for_status()
    except requests.RequestException as e:
        raise ArtifactError(f"Failed to download {label}: {e}") from e

    try:
        json.loads(response.content)
    except ValueError as e:
        raise ArtifactError(f"{label} from {url} is not valid JSON") from e

    temp_path = dest.with_suffix(".tmp")
    try:
        dest.parent.mkdir(parents=True, exist_ok=True)
        temp_path.write_bytes(response.content)
        temp_path.replace(dest)
    except OSError as e:
        raise ArtifactError(f"Failed to save {label} to {dest}: {e}") from e
    return dest


def fetch_trusted_setup(dest: Path, url: str = TRUSTED_SETUP_URL, force: bool = False) -> Path:
    """Download the KZG trusted setup to `dest`.

    Args:
        dest: Target file
        url: Source URL
        force: Re-download even if `dest` exists

    Returns:
        Path to the trusted setup file

    Raises:
        ArtifactError: If the download fails or is not valid JSON
    """
    return _fetch_json(dest, url, "KZG trusted setup", force)


def fetch_eth_genesis_template(dest: Path, url: str = ETH_GENESIS_TEMPLATE_URL, force: bool = False) -> Path:
    """Download the execution genesis template the predeployed contracts are taken from."""
    return _fetch_json(dest, url, "execution genesis template", force)
