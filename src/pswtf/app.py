"""pswtf - Textual front end."""

import logging
from collections.abc import Callable
from datetime import datetime
from enum import Enum
from queue import Empty, Queue

from rich.text import Text
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container, Horizontal, Vertical
from textual.logging import TextualHandler
from textual.screen import ModalScreen
from textual.widgets import (
    Button,
    DataTable,
    Footer,
    Input,
    Label,
    Static,
    TabbedContent,
    TabPane,
)

from pswtf.config import Settings
from pswtf.errors import PswtfError
from pswtf.models import KillReport, PortInfo, ProcessDetails, ProcessInfo
from pswtf.monitor import MonitorUpdate, SnapshotMonitor
from pswtf.service import ProcessService, matching_processes
from pswtf.snapshot import process_sort_key
from pswtf.tree import flatten_tree

logger = logging.getLogger(__name__)


class SortKey(Enum):
    """Sort keys for the process table."""

    CPU = "cpu"
    MEM = "memory"
    PID = "pid"
    NAME = "name"


SORT_FUNCS: dict[SortKey, Callable[[ProcessInfo], tuple]] = {
    SortKey.CPU: process_sort_key,
    SortKey.MEM: lambda p: (-p.memory_bytes, p.pid),
    SortKey.PID: lambda p: (p.pid,),
    SortKey.NAME: lambda p: (p.name.lower(), p.pid),
}

# Processes listed by name in the bulk kill prompt
BULK_PROMPT_LIMIT = 10


def format_bytes(size: int) -> str:
    """Format bytes as a short human-readable string."""
    if not size:
        return "0 B"
    value = float(size)
    units = ["B", "KB", "MB", "GB", "TB"]
    for unit in units:
        if value < 1024 or unit == units[-1]:
            break
        value /= 1024
    if value >= 10 or unit == "B":
        return f"{value:.0f} {unit}"
    return f"{value:.1f} {unit}"


def format_cpu(value: float) -> str:
    """Format a CPU percentage with one decimal."""
    return f"{value:.1f}"


def format_epoch_ms(epoch_ms: int | None) -> str:
    """Format an epoch timestamp in milliseconds as local wall-clock time."""
    if not epoch_ms:
        return "-"
    return datetime.fromtimestamp(epoch_ms / 1000).strftime("%H:%M:%S")


def process_matches_query(proc: ProcessInfo, query: str) -> bool:
    """Case-insensitive match on name, command line, PID or status."""
    if not query:
        return True
    q = query.lower()
    return (
        q in proc.name.lower()
        or q in proc.cmd.lower()
        or q in str(proc.pid)
        or q in proc.status.lower()
    )


def bulk_kill_prompt(query: str, matches: list[ProcessInfo]) -> str:
    """Confirmation text naming the processes a bulk kill will target."""
    lines = [
        f'Kill {len(matches)} process(es) whose name or command line contains "{query}", '
        "and their child processes?"
    ]
    for proc in matches[:BULK_PROMPT_LIMIT]:
        lines.append(f"  {proc.pid:>7}  {proc.name}  {proc.cmd[:40]}")
    if len(matches) > BULK_PROMPT_LIMIT:
        lines.append(f"  ... and {len(matches) - BULK_PROMPT_LIMIT} more")
    return "\n".join(lines)


def port_matches_query(port: PortInfo, query: str) -> bool:
    """Case-insensitive match on port, protocol, address, PID or owner."""
    q = query.strip().lower()
    if not q:
        return True
    return (
        q in str(port.port)
        or q in port.protocol.lower()
        or q in port.local_address.lower()
        or q in str(port.pid or "")
        or q in (port.process_name or "").lower()
    )


class ConfirmScreen(ModalScreen[bool]):
    """Yes/no prompt shown before any kill."""

    DEFAULT_CSS = """
    ConfirmScreen {
        align: center middle;
    }

    #confirm-dialog {
        width: 80;
        height: auto;
        padding: 1 2;
        border: thick $error;
        background: $surface;
    }

    #confirm-buttons {
        height: auto;
        margin-top: 1;
    }
    """

    BINDINGS = [
        ("y", "confirm", "Yes"),
        ("n", "cancel", "No"),
        ("escape", "cancel", "Cancel"),
    ]

    def __init__(self, prompt: str) -> None:
        """
        Initialize the prompt.

        Args:
            prompt: Question shown above the Yes/No buttons.
        """
        super().__init__()
        self._prompt = prompt

    @property
    def prompt(self) -> str:
        """The question being asked."""
        return self._prompt

    def compose(self) -> ComposeResult:
        """Create the dialog with its buttons."""
        with Vertical(id="confirm-dialog"):
            yield Label(Text(self._prompt))
            with Horizontal(id="confirm-buttons"):
                yield Button("Yes", variant="error", id="yes")
                yield Button("No", id="no")

    def on_button_pressed(self, event: Button.Pressed) -> None:
        """Dismiss with True for Yes and False for No."""
        self.dismiss(event.button.id == "yes")

    def action_confirm(self) -> None:
        """Answer yes."""
        self.dismiss(True)

    def action_cancel(self) -> None:
        """Answer no."""
        self.dismiss(False)


class HeaderStats(Static):
    """Header line with process/port counts and the last refresh time."""

    DEFAULT_CSS = """
    HeaderStats {
        height: auto;
        padding: 0 1;
        background: $surface;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize with empty counters."""
        super().__init__(*args, **kwargs)
        self._process_count = 0
        self._port_count = 0
        self._collected_at_epoch_ms: int | None = None
        self._ports_error: str | None = None

    def on_mount(self) -> None:
        """Render the initial, empty stats line."""
        self.update(self._stats_text())

    def update_stats(self, update: MonitorUpdate) -> None:
        """Update the counters from a monitor update."""
        self._process_count = update.snapshot.process_count
        self._port_count = len(update.ports)
        self._collected_at_epoch_ms = update.snapshot.collected_at_epoch_ms
        self._ports_error = update.ports_error
        self.update(self._stats_text())

    def _stats_text(self) -> Text:
        """Build the stats line, flagging a port scan failure in yellow."""
        text = Text.assemble(
            ("Processes: ", "bold"),
            str(self._process_count),
            ("  Ports: ", "bold"),
            "-" if self._ports_error else str(self._port_count),
            ("  Last refresh: ", "bold"),
            format_epoch_ms(self._collected_at_epoch_ms),
        )
        if self._ports_error:
            text.append(f"  Ports unavailable: {self._ports_error}", style="yellow")
        return text


class ProcessTable(Container):
    """Container for the process data table."""

    DEFAULT_CSS = """
    ProcessTable {
        width: 3fr;
        border: solid $primary;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize with no rows, CPU sort and tree mode on."""
        super().__init__(*args, **kwargs)
        self._processes: list[ProcessInfo] = []
        self._current_pids: list[int] = []
        self._sort_key: SortKey = SortKey.CPU
        self._tree_mode: bool = True
        self._query: str = ""

    @property
    def processes(self) -> list[ProcessInfo]:
        """Every process in the latest snapshot, ignoring the filter."""
        return list(self._processes)

    @property
    def sort_key(self) -> SortKey:
        """Current sort key."""
        return self._sort_key

    @property
    def tree_mode(self) -> bool:
        """Whether rows are indented under their parents."""
        return self._tree_mode

    @property
    def selected_pid(self) -> int | None:
        """PID under the cursor, if any."""
        table = self.query_one("#process-table", DataTable)
        if not self._current_pids or table.cursor_row < 0:
            return None
        if table.cursor_row >= len(self._current_pids):
            return None
        return self._current_pids[table.cursor_row]

    def cycle_sort(self) -> SortKey:
        """Cycle to the next sort key and return it."""
        keys = list(SortKey)
        self._sort_key = keys[(keys.index(self._sort_key) + 1) % len(keys)]
        self._rebuild_rows()
        return self._sort_key

    def toggle_tree(self) -> bool:
        """Switch between tree and flat rows. Returns the new mode."""
        self._tree_mode = not self._tree_mode
        self._rebuild_rows()
        return self._tree_mode

    def set_query(self, query: str) -> None:
        """Filter rows by `query`."""
        self._query = query.strip()
        self._rebuild_rows()

    def compose(self) -> ComposeResult:
        """Create the data table."""
        yield DataTable(id="process-table")

    def on_mount(self) -> None:
        """Set up table columns."""
        table = self.query_one("#process-table", DataTable)
        table.cursor_type = "row"

        table.add_column("Name", key="name")
        table.add_column("PID", key="pid", width=8)
        table.add_column("CPU%", key="cpu", width=6)
        table.add_column("Memory", key="mem", width=9)
        table.add_column("Read", key="read", width=9)
        table.add_column("Written", key="written", width=9)
        table.add_column("Status", key="status", width=10)

    def update_processes(self, processes: list[ProcessInfo]) -> None:
        """Replace the table contents, keeping the cursor on the same PID."""
        self._processes = list(processes)
        self._rebuild_rows()

    def visible_rows(self) -> list[tuple[ProcessInfo, int]]:
        """Filtered, sorted (process, depth) rows as currently displayed."""
        visible = [p for p in self._processes if process_matches_query(p, self._query)]
        visible.sort(key=SORT_FUNCS[self._sort_key])
        if not self._tree_mode:
            return [(proc, 0) for proc in visible]
        return flatten_tree(visible)

    def select_pid(self, pid: int) -> bool:
        """Move the cursor to `pid`. Returns False if it is not displayed."""
        if pid not in self._current_pids:
            return False
        table = self.query_one("#process-table", DataTable)
        table.move_cursor(row=self._current_pids.index(pid))
        return True

    def _rebuild_rows(self) -> None:
        """Redraw the visible rows and restore the cursor."""
        table = self.query_one("#process-table", DataTable)
        previous = self.selected_pid

        table.clear()
        self._current_pids = []
        for proc, depth in self.visible_rows():
            branch = "  " * depth + ("↳ " if self._tree_mode and depth else "")
            table.add_row(
                Text(branch + proc.name),
                str(proc.pid),
                format_cpu(proc.cpu_percent),
                format_bytes(proc.memory_bytes),
                format_bytes(proc.read_bytes),
                format_bytes(proc.written_bytes),
                Text(proc.status),
                key=str(proc.pid),
            )
            self._current_pids.append(proc.pid)

        if previous is not None:
            self.select_pid(previous)


class PortTable(Container):
    """Container for the open ports table."""

    def __init__(self, *args, **kwargs) -> None:
        """Initialize with no ports."""
        super().__init__(*args, **kwargs)
        self._ports: list[PortInfo] = []
        self._visible: list[PortInfo] = []
        self._query: str = ""

    def compose(self) -> ComposeResult:
        """Create the data table."""
        yield DataTable(id="port-table")

    def on_mount(self) -> None:
        """Set up table columns."""
        table = self.query_one("#port-table", DataTable)
        table.cursor_type = "row"

        table.add_column("Port", key="port", width=6)
        table.add_column("Proto", key="protocol", width=5)
        table.add_column("Address", key="address")
        table.add_column("State", key="state", width=8)
        table.add_column("PID", key="pid", width=8)
        table.add_column("Process", key="process")

    @property
    def visible_ports(self) -> list[PortInfo]:
        """Ports passing the current filter, in display order."""
        return list(self._visible)

    def port_at(self, row: int) -> PortInfo | None:
        """Port displayed at `row`, or None when out of range."""
        if 0 <= row < len(self._visible):
            return self._visible[row]
        return None

    def update_ports(self, ports: list[PortInfo]) -> None:
        """Replace the table contents."""
        self._ports = list(ports)
        self._rebuild_rows()

    def set_query(self, query: str) -> None:
        """Filter rows by `query`."""
        self._query = query
        self._rebuild_rows()

    def _rebuild_rows(self) -> None:
        table = self.query_one("#port-table", DataTable)
        table.clear()
        self._visible = [p for p in self._ports if port_matches_query(p, self._query)]
        for port in self._visible:
            table.add_row(
                str(port.port),
                port.protocol,
                Text(port.local_address),
                Text(port.state or "-"),
                str(port.pid) if port.pid is not None else "-",
                Text(port.process_name or "-"),
            )


class DetailsPanel(Static):
    """Details of the selected process."""

    EMPTY_MESSAGE = "Select a process and press Enter to inspect details."

    def on_mount(self) -> None:
        """Show the placeholder until a process is selected."""
        self.show_message(self.EMPTY_MESSAGE)

    def show_message(self, message: str) -> None:
        """Replace the panel with a dimmed message."""
        self.update(Text(message, style="dim"))

    def show_details(self, details: ProcessDetails) -> None:
        """Render one labelled line per detail field."""
        proc = details.process
        fields = [
            ("Name", proc.name),
            ("PID", str(proc.pid)),
            ("Parent PID", str(proc.parent_pid) if proc.parent_pid is not None else "-"),
            ("Status", proc.status),
            ("CPU %", format_cpu(proc.cpu_percent)),
            ("Memory", format_bytes(proc.memory_bytes)),
            ("Virtual Memory", format_bytes(proc.virtual_memory_bytes)),
            (
                "Open File Handles",
                str(details.open_file_handles)
                if details.open_file_handles is not None
                else "Unavailable",
            ),
            ("I/O Read", format_bytes(proc.read_bytes)),
            ("I/O Written", format_bytes(proc.written_bytes)),
            ("Runtime", f"{proc.run_time_seconds}s"),
            ("Executable", proc.exe or "-"),
            ("Working Directory", details.cwd or "-"),
            ("Root", details.root or "-"),
            ("Command", proc.cmd or "-"),
        ]
        text = Text()
        for label, value in fields:
            text.append(f"{label}: ", style="bold")
            text.append(f"{value}\n")
        self.update(text)


class PswtfApp(App):
    """Main pswtf application."""

    TITLE = "pswtf"
    SUB_TITLE = "Process Tree Killer"

    CSS = """
    Screen {
        layout: vertical;
    }

    #header-stats {
        dock: top;
    }

    #main {
        height: 1fr;
    }

    #side {
        width: 2fr;
    }

    #search {
        dock: bottom;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("slash", "search", "Search"),
        ("s", "sort", "Sort"),
        ("t", "toggle_tree", "Tree"),
        ("r", "refresh", "Refresh"),
        ("p", "toggle_auto_refresh", "Auto refresh"),
        ("k", "kill", "Kill"),
        ("c", "kill_tree", "Kill tree"),
        ("x", "force_kill_tree", "Force kill tree"),
        ("b", "bulk_kill", "Kill matching"),
        Binding("escape", "focus_processes", "Processes", show=False),
    ]

    def __init__(
        self,
        service: ProcessService | None = None,
        settings: Settings | None = None,
    ) -> None:
        """
        Initialize the application.

        Args:
            service: Process service to use. Built from `settings` when omitted.
            settings: Runtime settings. Defaults apply when omitted.
        """
        super().__init__()
        self.settings = settings if settings is not None else Settings()
        self.service = service if service is not None else ProcessService(settings=self.settings)
        self._update_queue: Queue[MonitorUpdate] = Queue()
        self._monitor = SnapshotMonitor(
            self._update_queue,
            self.service,
            poll_rate=self.settings.poll_rate,
        )
        self._details_pid: int | None = None

    def compose(self) -> ComposeResult:
        """Create child widgets."""
        yield HeaderStats(id="header-stats")
        with Horizontal(id="main"):
            yield ProcessTable()
            with TabbedContent(id="side"):
                with TabPane("Details", id="details-tab"):
                    yield DetailsPanel(id="details")
                with TabPane("Ports", id="ports-tab"):
                    yield PortTable()
        yield Input(placeholder="Filter processes and ports (Enter to return)", id="search")
        yield Footer()

    def on_mount(self) -> None:
        """Start the monitor and poll its queue."""
        self._monitor.start()
        self.set_interval(0.5, self._check_for_updates)
        self.query_one("#process-table", DataTable).focus()

    def _check_for_updates(self) -> None:
        """Drain the queue and render only the most recent update."""
        update = None
        while True:
            try:
                update = self._update_queue.get_nowait()
            except Empty:
                break

        if update is not None:
            self.apply_update(update)

    def apply_update(self, update: MonitorUpdate) -> None:
        """Render a monitor update in every widget."""
        self.query_one("#header-stats", HeaderStats).update_stats(update)
        self.query_one(ProcessTable).update_processes(list(update.snapshot.processes))
        self.query_one(PortTable).update_ports(update.ports)

        if self._details_pid is not None and not any(
            proc.pid == self._details_pid for proc in update.snapshot.processes
        ):
            self._details_pid = None
            self.query_one(DetailsPanel).show_message("Selected process is no longer running.")

    def show_details(self, pid: int) -> None:
        """Load details for `pid` and switch to the Details tab."""
        panel = self.query_one(DetailsPanel)
        try:
            details = self.service.get_process_details(pid)
        except PswtfError as exc:
            panel.show_message(f"Failed to load details: {exc}")
            return
        self._details_pid = pid
        panel.show_details(details)
        self.query_one(TabbedContent).active = "details-tab"

    def on_data_table_row_selected(self, event: DataTable.RowSelected) -> None:
        """Show details for the selected process or the owner of the selected port."""
        if event.data_table.id == "process-table":
            self.show_details(int(event.row_key.value))
        elif event.data_table.id == "port-table":
            port = self.query_one(PortTable).port_at(event.cursor_row)
            if port is not None and port.pid is not None:
                self.query_one(ProcessTable).select_pid(port.pid)
                self.show_details(port.pid)

    def on_input_changed(self, event: Input.Changed) -> None:
        """Apply the search text to both tables."""
        self.query_one(ProcessTable).set_query(event.value)
        self.query_one(PortTable).set_query(event.value)

    def on_input_submitted(self, event: Input.Submitted) -> None:
        self.action_focus_processes()

    def action_search(self) -> None:
        """Focus the search box."""
        self.query_one("#search", Input).focus()

    def action_focus_processes(self) -> None:
        """Focus the process table."""
        self.query_one("#process-table", DataTable).focus()

    def action_sort(self) -> None:
        """Cycle the process sort key."""
        new_sort_key = self.query_one(ProcessTable).cycle_sort()
        self.notify(f"Sort: {new_sort_key.value.upper()}")

    def action_toggle_tree(self) -> None:
        """Toggle tree mode."""
        enabled = self.query_one(ProcessTable).toggle_tree()
        self.notify(f"Tree mode: {'on' if enabled else 'off'}")

    def action_refresh(self) -> None:
        """Collect a fresh snapshot now, even with auto refresh off."""
        self._monitor.request_refresh()

    def action_toggle_auto_refresh(self) -> None:
        """Pause or resume periodic collection."""
        if self._monitor.paused:
            self._monitor.resume()
        else:
            self._monitor.pause()
        self.notify(f"Auto refresh: {'off' if self._monitor.paused else 'on'}")

    def action_kill(self) -> None:
        """Kill the selected process."""
        self._confirm_kill_selected(include_children=False, force=False)

    def action_kill_tree(self) -> None:
        """Kill the selected process and its descendants."""
        self._confirm_kill_selected(include_children=True, force=False)

    def action_force_kill_tree(self) -> None:
        """Force kill the selected process and its descendants."""
        self._confirm_kill_selected(include_children=True, force=True)

    def _confirm_kill_selected(self, include_children: bool, force: bool) -> None:
        """Ask for confirmation, then kill the process under the cursor."""
        pid = self.query_one(ProcessTable).selected_pid
        if pid is None:
            self.notify("Select a process first.", severity="warning")
            return

        label = "this process and its child tree" if include_children else "this process"
        verb = "Force kill" if force else "Kill"

        def on_answer(confirmed: bool | None) -> None:
            if confirmed:
                self._run_kill(
                    "Kill",
                    lambda: self.service.kill_process(
                        pid, include_children=include_children, force=force
                    ),
                )

        self.push_screen(ConfirmScreen(f"{verb} {label}? PID {pid}"), on_answer)

    def action_bulk_kill(self) -> None:
        """
        Kill every process whose name or command line contains the search text.

        The search filter also matches PIDs and status, so the prompt lists
        the processes the kill query itself matches in the latest snapshot.
        """
        query = self.query_one("#search", Input).value.strip()
        if not query:
            self.notify("Enter a search query first (example: node).", severity="warning")
            return

        matches = matching_processes(self.query_one(ProcessTable).processes, query)
        if not matches:
            self.notify(
                f'No process name or command line contains "{query}".',
                severity="warning",
            )
            return

        def on_answer(confirmed: bool | None) -> None:
            if confirmed:
                self._run_kill(
                    "Bulk kill",
                    lambda: self.service.kill_matching_processes(query, include_children=True),
                )

        self.push_screen(ConfirmScreen(bulk_kill_prompt(query, matches)), on_answer)

    def _run_kill(self, label: str, request: Callable[[], KillReport]) -> KillReport | None:
        """Run a kill request and report its outcome as a notification."""
        try:
            report = request()
        except PswtfError as exc:
            self.notify(f"{label} failed: {exc}", severity="error")
            return None

        self.notify(
            f"{label} completed. {report.summary}",
            severity="warning" if report.failed else "information",
        )
        self._monitor.request_refresh()
        return report

    def action_quit(self) -> None:
        """Stop the monitor and exit."""
        self._monitor.stop()
        self.exit()


def main() -> None:
    """Entry point for the pswtf application."""
    try:
        settings = Settings.from_env()
    except PswtfError as exc:
        raise SystemExit(f"pswtf: {exc}") from exc
    logging.basicConfig(level=settings.log_level, handlers=[TextualHandler()])
    app = PswtfApp(settings=settings)
    app.run()


if __name__ == "__main__":
    main()
