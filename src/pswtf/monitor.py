"""Background refresh loop for the pswtf front end."""

import logging
import threading
from dataclasses import dataclass
from queue import Queue

from pswtf.config import MIN_POLL_RATE
from pswtf.errors import ExternalToolError
from pswtf.models import PortInfo, ProcessSnapshot
from pswtf.service import ProcessService

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class MonitorUpdate:
    """One refresh worth of data for the UI."""

    snapshot: ProcessSnapshot
    ports: list[PortInfo]
    ports_error: str | None = None  # set when lsof was unavailable


class SnapshotMonitor:
    """
    Polls a `ProcessService` and pushes `MonitorUpdate`s to a Queue.

    Runs in a daemon thread. A failed port listing is reported in the update
    rather than turned into an empty port table.
    """

    def __init__(
        self,
        update_queue: Queue[MonitorUpdate],
        service: ProcessService,
        poll_rate: float = 3.0,
    ) -> None:
        """
        Initialize the SnapshotMonitor.

        Args:
            update_queue: Thread-safe queue to push updates to.
            service: Service used to take snapshots and list ports.
            poll_rate: Seconds between refreshes. Default 3.0s.
        """
        self._queue = update_queue
        self._service = service
        self._poll_rate = max(MIN_POLL_RATE, poll_rate)
        self._stop_event = threading.Event()
        self._wake_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._paused = False
        self._refresh_requested = False

    @property
    def poll_rate(self) -> float:
        """Get the current poll rate."""
        return self._poll_rate

    @poll_rate.setter
    def poll_rate(self, value: float) -> None:
        """Set the poll rate, clamped to the minimum."""
        self._poll_rate = max(MIN_POLL_RATE, value)

    @property
    def paused(self) -> bool:
        """True while periodic refreshes are suspended."""
        return self._paused

    @property
    def is_running(self) -> bool:
        """Check if the polling thread is running."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the polling thread."""
        if self.is_running:
            return

        self._stop_event.clear()
        self._refresh_requested = True
        self._thread = threading.Thread(
            target=self._poll_loop,
            daemon=True,
            name="SnapshotMonitor",
        )
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        """Stop the polling thread, waiting up to `timeout` seconds."""
        self._stop_event.set()
        self._wake_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def request_refresh(self) -> None:
        """Cut the current wait short and refresh immediately, even when paused."""
        self._refresh_requested = True
        self._wake_event.set()

    def pause(self) -> None:
        """Suspend periodic refreshes; explicit requests still go through."""
        self._paused = True

    def resume(self) -> None:
        """Resume periodic refreshes, starting with an immediate one."""
        self._paused = False
        self._wake_event.set()

    def _poll_loop(self) -> None:
        """Main polling loop running in the background thread."""
        while not self._stop_event.is_set():
            requested = self._refresh_requested
            self._refresh_requested = False
            if requested or not self._paused:
                try:
                    self._queue.put(self.collect_update())
                except Exception:
                    # Keep the loop alive; the next poll may succeed
                    logger.exception("Refresh failed")

            self._wake_event.wait(timeout=self._poll_rate)
            self._wake_event.clear()

    def collect_update(self) -> MonitorUpdate:
        """Take one snapshot and port listing."""
        snapshot = self._service.get_process_snapshot()
        try:
            ports = self._service.list_open_ports()
        except ExternalToolError as exc:
            logger.warning("Port listing unavailable: %s", exc)
            return MonitorUpdate(snapshot=snapshot, ports=[], ports_error=str(exc))
        return MonitorUpdate(snapshot=snapshot, ports=ports)
