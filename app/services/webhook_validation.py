"""
Webhook URL validation to prevent Server-Side Request Forgery (SSRF).

Blocks non-HTTPS schemes, loopback, cloud metadata endpoints, private and
link-local ranges. Checks run in order and the first failure wins.
"""
import ipaddress
import re
import socket
from urllib.parse import urlsplit

from app.models.integrations import WebhookValidationResult

LOCALHOST_NAMES = {"localhost", "127.0.0.1", "::1", "0.0.0.0"}
METADATA_HOST = "169.254.169.254"

PRIVATE_IP_PATTERN = re.compile(r"^(10\.|172\.(1[6-9]|2[0-9]|3[01])\.|192\.168\.)")
HOSTNAME_PATTERN = re.compile(r"^[a-z0-9]([a-z0-9-]*[a-z0-9])?(\.[a-z0-9]([a-z0-9-]*[a-z0-9])?)*$")
# A host whose last label is numeric is parsed as IPv4, as browsers do
NUMERIC_LABEL_PATTERN = re.compile(r"^(0x[0-9a-f]*|[0-9]+)$")
NUMERIC_HOST_PATTERN = re.compile(r"^[0-9a-fx.]+$")


def _invalid(error: str) -> WebhookValidationResult:
    return WebhookValidationResult(is_valid=False, error=error)


def _parse_hostname(url: str) -> tuple:
    """Split a URL into (scheme, hostname); raises ValueError when unparsable"""
    if not isinstance(url, str) or not url.strip():
        raise ValueError("empty url")

    parsed = urlsplit(url.strip())
    if not parsed.scheme:
        raise ValueError("missing scheme")

    # Accessing port validates it ("https://host:abc" is malformed)
    parsed.port
    return parsed.scheme.lower(), parsed.hostname

def _normalize_ipv4(hostname: str) -> str:
    """
    Rewrite numeric IPv4 shorthand (2130706433, 127.1, 0x7f000001) as a
    dotted quad. Other hostnames are returned unchanged.

    Raises:
        ValueError: when the host ends in a number but is not a valid address
    """
    host = hostname[:-1] if hostname.endswith(".") else hostname
    if not NUMERIC_LABEL_PATTERN.match(host.rsplit(".", 1)[-1]):
        return hostname

    if not NUMERIC_HOST_PATTERN.match(host):
        raise ValueError(f"invalid IPv4 host {hostname}")
    try:
        return str(ipaddress.IPv4Address(socket.inet_aton(host)))
    except OSError as e:
        raise ValueError(f"invalid IPv4 host {hostname}") from e


def validate_webhook_url(url: str) -> WebhookValidationResult:
    """
    Validate a webhook destination URL.

    Never raises: malformed input produces an invalid result.

    Args:
        url: Destination URL as entered by the form owner

    Returns:
        WebhookValidationResult with is_valid and, when invalid, the reason
    """
    try:
        scheme, hostname = _parse_hostname(url)
    except (ValueError, TypeError):
        return _invalid("Invalid URL format")

    if scheme != "https":
        return _invalid("Only HTTPS URLs are allowed for security reasons")

    if not hostname:
        return _invalid("Invalid URL format")

    # Address rules apply to the raw name when IDNA encoding fails
    hostname = hostname.lower()
    try:
        ascii_hostname = hostname.encode("idna").decode("ascii").lower()
    except UnicodeError:
        ascii_hostname = None

    try:
        hostname = _normalize_ipv4(ascii_hostname or hostname)
    except ValueError:
        return _invalid("Invalid URL format")

    if hostname in LOCALHOST_NAMES:
        return _invalid("Localhost URLs are not allowed")

    if hostname == METADATA_HOST or "metadata" in hostname:
        return _invalid("Metadata endpoints are not allowed")

    if PRIVATE_IP_PATTERN.match(hostname):
        return _invalid("Private IP addresses are not allowed")

    if hostname.startswith("169.254."):
        return _invalid("Link-local addresses are not allowed")

    if ascii_hostname is None or not HOSTNAME_PATTERN.match(hostname):
        return _invalid("Invalid hostname format")

    return WebhookValidationResult(is_valid=True)
