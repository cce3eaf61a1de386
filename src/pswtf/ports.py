"""
Listening socket discovery via lsof.

lsof prints one socket per line in whitespace separated columns::

    COMMAND   PID USER   FD   TYPE DEVICE SIZE/OFF NODE NAME
    nginx     812 root    6u  IPv4  12345      0t0  TCP *:80 (LISTEN)
    dnsmasq   907 nobody  4u  IPv6  23456      0t0  UDP [::1]:53

The NODE column carries the protocol and everything after it is the NAME
field: ``addr:port``, ``addr:port->peer:port`` and an optional
``(STATE)`` suffix.
"""

import logging
import subprocess
from collections.abc import Iterable

from pswtf.errors import ExternalToolError
from pswtf.models import PortInfo
from pswtf.system import SystemCapabilities

logger = logging.getLogger(__name__)

LSOF_PORT_ARGS = ("-nP", "-iTCP", "-sTCP:LISTEN", "-iUDP")
MIN_COLUMNS = 9
MAX_PORT = 65535
PROTOCOLS = frozenset({"TCP", "UDP"})
# Column holding the protocol in lsof's default layout
DEFAULT_PROTOCOL_COLUMN = 7


def parse_endpoint(endpoint: str) -> tuple[str, int] | None:
    """
    Split the local side of an lsof endpoint into (address, port).

    The last colon separates the port so IPv6 literals survive, brackets are
    stripped, and an empty address becomes ``*``.
    """
    local = endpoint.split("->", 1)[0].strip()
    address, sep, port_text = local.rpartition(":")
    port = _parse_number(port_text) if sep else None
    if port is None or port > MAX_PORT:
        return None
    address = address.strip("[]")
    return (address or "*", port)


def _protocol_column(columns: list[str]) -> int:
    # Tolerate listings that drop a column (e.g. USER) ahead of NODE
    for index in range(2, len(columns) - 1):
        if columns[index].upper() in PROTOCOLS:
            return index
    return DEFAULT_PROTOCOL_COLUMN


def _parse_number(text: str) -> int | None:
    # ASCII digits only; int() rejects some characters isdigit() accepts
    if not (text.isascii() and text.isdecimal()):
        return None
    return int(text)


def _parse_pid(text: str) -> int | None:
    pid = _parse_number(text)
    return pid if pid else None


def parse_lsof_line(line: str) -> PortInfo | None:
    """Parse one line of lsof output, or None for headers and junk."""
    if not line.strip() or line.startswith("COMMAND"):
        return None

    columns = line.split()
    if len(columns) < MIN_COLUMNS:
        return None

    proto_index = _protocol_column(columns)
    name_field = " ".join(columns[proto_index + 1 :])

    endpoint, state = name_field, None
    paren = name_field.find(" (")
    if paren != -1:
        endpoint = name_field[:paren]
        state = name_field[paren:].strip().lstrip("(").rstrip(")") or None

    parsed = parse_endpoint(endpoint)
    if parsed is None:
        logger.debug("Dropping unparsable lsof line: %r", line)
        return None
    local_address, port = parsed

    return PortInfo(
        protocol=columns[proto_index].upper(),
        local_address=local_address,
        port=port,
        state=state,
        pid=_parse_pid(columns[1]),
        process_name=columns[0],
    )


def dedupe_ports(ports: Iterable[PortInfo]) -> list[PortInfo]:
    """Drop repeated sockets, keeping the first occurrence."""
    seen: set[tuple] = set()
    unique: list[PortInfo] = []
    for port in ports:
        if port.dedupe_key in seen:
            continue
        seen.add(port.dedupe_key)
        unique.append(port)
    return unique


def sort_ports(ports: Iterable[PortInfo]) -> list[PortInfo]:
    return sorted(ports, key=lambda p: p.sort_key)


def parse_lsof_output(text: str) -> list[PortInfo]:
    """Turn a full lsof listing into a deduplicated, sorted port table."""
    parsed = (parse_lsof_line(line) for line in text.splitlines())
    return sort_ports(dedupe_ports(port for port in parsed if port is not None))


def collect_ports(
    system: SystemCapabilities,
    lsof: str = "lsof",
    timeout: float | None = None,
) -> list[PortInfo]:
    """
    List TCP listeners and UDP sockets on the host.

    Raises:
        ExternalToolError: lsof could not be run, timed out or exited nonzero.
            An empty list means lsof ran and reported no sockets.
    """
    try:
        result = system.run_command([lsof, *LSOF_PORT_ARGS], timeout=timeout)
    except OSError as exc:
        raise ExternalToolError(f"Failed to run {lsof}: {exc}") from exc
    except subprocess.TimeoutExpired as exc:
        raise ExternalToolError(f"{lsof} timed out after {exc.timeout}s") from exc

    if not result.ok:
        raise ExternalToolError(f"{lsof} exited with status {result.returncode}")

    ports = parse_lsof_output(result.stdout)
    logger.debug("Found %d open ports", len(ports))
    return ports


def count_open_file_handles(
    system: SystemCapabilities,
    pid: int,
    lsof: str = "lsof",
    timeout: float | None = None,
) -> int | None:
    """Number of open files of `pid` per lsof, None if lsof cannot tell."""
    try:
        result = system.run_command([lsof, "-nP", "-p", str(pid)], timeout=timeout)
    except (OSError, subprocess.TimeoutExpired) as exc:
        logger.debug("File handle count for %d failed: %s", pid, exc)
        return None
    if not result.ok:
        return None
    # First line is the header
    return max(len(result.stdout.splitlines()) - 1, 0)
