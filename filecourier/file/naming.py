"""
Output Filename Resolution

Received files never overwrite an existing file. On a collision the peer
address and a Unix timestamp are spliced in before the extension:

    report.pdf  ->  report_192.168.1.7_50312_1718000000.pdf
"""

import time
from pathlib import Path
from typing import Optional, Tuple, Union

DEFAULT_FILENAME = "received.bin"


def format_peer(address: Union[str, Tuple]) -> str:
    """Format a socket address as host:port ([host]:port for IPv6)."""
    if isinstance(address, str):
        return address
    if not address:
        return "unknown"

    host, port = address[0], address[1]
    if ':' in str(host):
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def sanitize_filename(name: str) -> str:
    """Strip any directory components a peer may have sent."""
    name = name.replace('\\', '/').split('/')[-1].strip()
    if name in ('', '.', '..'):
        return DEFAULT_FILENAME
    return name


def resolve_unique_name(output_dir: Union[str, Path], base_name: str,
                        peer_address: str, now: Optional[float] = None) -> str:
    """
    Pick an output filename that does not clobber an existing file.

    Args:
        output_dir: Directory the file will be written to
        base_name: Filename the sender asked for
        peer_address: Sender address ("host:port")
        now: Override for the current Unix time (seconds)

    Returns:
        base_name if free, otherwise base_name with peer and timestamp added
    """
    if not (Path(output_dir) / base_name).exists():
        return base_name

    ts = int(now if now is not None else time.time())
    peer = peer_address.replace(':', '_')

    pos = base_name.rfind('.')
    if pos != -1:
        stem, ext = base_name[:pos], base_name[pos:]
    else:
        stem, ext = base_name, ''

    candidate = f"{stem}_{peer}_{ts}{ext}"
    # Same peer, same name, same second
    counter = 1
    while (Path(output_dir) / candidate).exists():
        candidate = f"{stem}_{peer}_{ts}-{counter}{ext}"
        counter += 1

    return candidate
