"""Signal delivery to a set of target PIDs."""

import logging
import signal
from collections.abc import Iterable

from pswtf.models import KillFailure, KillReport
from pswtf.system import SystemCapabilities

logger = logging.getLogger(__name__)


def resolve_signal(force: bool | None) -> signal.Signals:
    """SIGKILL when forced, otherwise a SIGTERM the target may handle."""
    return signal.SIGKILL if force else signal.SIGTERM


def perform_kill(
    targets: Iterable[int],
    matched: int,
    sig: signal.Signals,
    system: SystemCapabilities,
) -> KillReport:
    """
    Signal each target once and report the outcome per PID.

    Non-positive PIDs and the host's own PID are skipped without being
    counted as attempts. Failed deliveries are recorded, never retried, since
    the PID may already belong to a different process.
    """
    self_pid = system.self_pid()
    attempted = 0
    killed: list[int] = []
    failed: list[KillFailure] = []

    for pid in targets:
        if pid <= 0 or pid == self_pid:
            continue

        attempted += 1
        try:
            system.send_signal(pid, sig)
        except OSError as exc:
            error = exc.strerror or str(exc)
            logger.warning("Failed to send %s to %d: %s", sig.name, pid, error)
            failed.append(KillFailure(pid=pid, error=error))
        else:
            killed.append(pid)

    report = KillReport(
        matched=matched,
        attempted=attempted,
        killed=tuple(killed),
        failed=tuple(failed),
    )
    logger.info("Sent %s: %s", sig.name, report.summary)
    return report
