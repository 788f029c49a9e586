"""Cloud instance metadata probes.

Queries the GCE metadata server at ``169.254.169.254`` over plain HTTP
with the ``Metadata-Flavor: Google`` header.
"""

from __future__ import annotations

import logging
import socket

import httpx

from tpudoc.errors import ProbeIOError

logger = logging.getLogger(__name__)

METADATA_IP = "169.254.169.254"
METADATA_PORT = 80
METADATA_BASE_URL = f"http://{METADATA_IP}/computeMetadata/v1"
METADATA_HEADERS = {"Metadata-Flavor": "Google"}

DEFAULT_TIMEOUT_S = 5.0
REACHABLE_TIMEOUT_S = 1.0


def reachable(timeout_s: float = REACHABLE_TIMEOUT_S) -> bool:
    """Return True if the metadata server accepts TCP connections."""
    try:
        with socket.create_connection((METADATA_IP, METADATA_PORT), timeout=timeout_s):
            return True
    except OSError:
        return False


def get(path: str, *, timeout_s: float = DEFAULT_TIMEOUT_S) -> str:
    """Fetch a metadata value.

    Parameters
    ----------
    path:
        Path below ``/computeMetadata/v1``, e.g. ``/project/project-id``.
    timeout_s:
        Connect and read timeout in seconds.

    Returns
    -------
    str
        The response body with surrounding whitespace removed.

    Raises
    ------
    ProbeIOError
        On connection failure, timeout or a non-200 response.  For HTTP
        errors ``status_code`` holds the response status.
    """
    url = f"{METADATA_BASE_URL}/{path.lstrip('/')}"
    try:
        response = httpx.get(url, headers=METADATA_HEADERS, timeout=timeout_s)
    except httpx.TimeoutException as exc:
        raise ProbeIOError("metadata", f"timed out fetching {path}") from exc
    except httpx.HTTPError as exc:
        raise ProbeIOError("metadata", f"request for {path} failed: {exc}") from exc

    if response.status_code != 200:
        raise ProbeIOError(
            "metadata",
            f"HTTP {response.status_code} for {path}",
            status_code=response.status_code,
        )
    return response.text.strip()


def _last_segment(value: str) -> str:
    # zone and machine-type come back as full resource paths
    return value.rsplit("/", 1)[-1]


def project_id() -> str:
    return get("/project/project-id")


def zone() -> str:
    """Return the instance zone, e.g. ``us-central2-b``."""
    return _last_segment(get("/instance/zone"))


def instance_name() -> str:
    return get("/instance/name")


def machine_type() -> str:
    """Return the machine type, e.g. ``ct5lp-hightpu-4t``."""
    return _last_segment(get("/instance/machine-type"))


def service_account() -> str:
    """Return the email of the default service account."""
    return get("/instance/service-accounts/default/email")


def access_scopes() -> list[str]:
    """Return the OAuth scopes granted to the default service account."""
    raw = get("/instance/service-accounts/default/scopes")
    return [line.strip() for line in raw.splitlines() if line.strip()]


def instance_attribute(name: str) -> str | None:
    """Return a custom instance attribute, or None if it is not set."""
    try:
        return get(f"/instance/attributes/{name}")
    except ProbeIOError as exc:
        if exc.status_code == 404:
            return None
        raise


def project_attribute(name: str) -> str | None:
    """Return a project-wide attribute, or None if it is not set."""
    try:
        return get(f"/project/attributes/{name}")
    except ProbeIOError as exc:
        if exc.status_code == 404:
            return None
        raise
