"""
Address and public key normalization.

Nodes report their peers in a variety of (ip, port) shapes; everything is
folded into 'host:port' strings so the crawl can compare addresses with plain
string equality. Public keys arrive either already base58 encoded or as raw
base64 and are brought to the base58check node public form.
"""

import base64
from typing import Optional, Union

import base58

DEFAULT_PORT = 51235

# Version byte for node public keys in the ripple base58check encoding
NODE_PUBLIC_VERSION = 28


def normalize_address(raw_host: Optional[str],
                      port: Union[str, int, None] = None,
                      default_port: Union[str, int] = DEFAULT_PORT) -> Optional[str]:
    """Normalize a reported (ip, port) pair to 'ip:port'.

    Args:
        raw_host: Host or 'host:port' as reported by a node
        port: Explicit port, wins over one embedded in raw_host
        default_port: Used when no port is given or embedded

    Returns:
        Canonical address, or None when raw_host is empty
    """
    if not raw_host:
        return None

    split = str(raw_host).split(':')
    host = split[0]
    embedded_port = split[1] if len(split) > 1 else None

    out_port = port or embedded_port or default_port
    return f"{host}:{out_port}"


def is_node_public(raw: str) -> bool:
    """Whether raw is already a base58check node public key of any length."""
    try:
        decoded = base58.b58decode_check(raw, alphabet=base58.RIPPLE_ALPHABET)
    except ValueError:
        return False
    return len(decoded) > 0 and decoded[0] == NODE_PUBLIC_VERSION


def normalize_public_key(raw: str) -> str:
    """Return the base58check node public form of a key.

    Raises:
        binascii.Error: raw is neither canonical nor valid base64
    """
    if len(raw) > 50 and raw[0] == 'n':
        return raw
    if is_node_public(raw):
        return raw

    key_bytes = base64.b64decode(raw, validate=True)
    encoded = base58.b58encode_check(bytes([NODE_PUBLIC_VERSION]) + key_bytes,
                                     alphabet=base58.RIPPLE_ALPHABET)
    return encoded.decode('ascii')


def crawl_url(address: str) -> str:
    """URL of the /crawl document served by a node."""
    return f"https://{address}/crawl"
