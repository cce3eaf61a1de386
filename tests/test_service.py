"""Tests for ProcessService, the five front end operations."""

import errno
import signal

import pytest

from conftest import HOST_PID, FakeSystem, raw
from pswtf.config import Settings
from pswtf.errors import ExternalToolError, NotFoundError, ValidationError
from pswtf.models import KillReport
from pswtf.ports import LSOF_PORT_ARGS
from pswtf.service import ProcessService, matching_processes
from pswtf.system import CommandResult


@pytest.fixture
def service(tree_system) -> ProcessService:
    return ProcessService(tree_system)


def assert_consistent(report: KillReport) -> None:
    assert report.attempted == len(report.killed) + len(report.failed)
    signalled = set(report.killed) | {failure.pid for failure in report.failed}
    assert HOST_PID not in signalled
    assert all(pid > 0 for pid in signalled)


class TestGetProcessSnapshot:
    """Tests for get_process_snapshot."""

    def test_snapshot(self, service, tree_system):
        snapshot = service.get_process_snapshot()
        assert snapshot.process_count == len(tree_system.processes)
        assert snapshot.collected_at_epoch_ms > 0
        assert snapshot.processes[0].pid == 11  # busiest first


class TestGetProcessDetails:
    """Tests for get_process_details."""

    @pytest.mark.parametrize("pid", [0, -3])
    def test_rejects_non_positive_pid(self, service, tree_system, pid):
        with pytest.raises(ValidationError, match="positive integer"):
            service.get_process_details(pid)
        assert tree_system.command_calls == []

    def test_not_found(self, service):
        with pytest.raises(NotFoundError, match="Process 999 was not found"):
            service.get_process_details(999)

    def test_details_with_extra_lookups(self, tree_system):
        tree_system.commands[("lsof", "-nP", "-p", "13")] = CommandResult(
            0, "COMMAND PID\nvim 13 cwd\nvim 13 txt\nvim 13 0u\n"
        )
        tree_system.paths[13] = ("/home/dev", "/")

        details = ProcessService(tree_system).get_process_details(13)

        assert details.process.name == "vim"
        assert details.open_file_handles == 3
        assert details.cwd == "/home/dev"
        assert details.root == "/"

    def test_failed_handle_count_is_absent(self, service):
        details = service.get_process_details(13)
        assert details.process.pid == 13
        assert details.open_file_handles is None
        assert details.cwd is None
        assert details.root is None

    def test_empty_paths_are_absent(self, tree_system):
        tree_system.paths[13] = ("", "")
        details = ProcessService(tree_system).get_process_details(13)
        assert details.cwd is None
        assert details.root is None


class TestListOpenPorts:
    """Tests for list_open_ports."""

    def test_uses_configured_lsof(self, tree_system):
        tree_system.commands[("/usr/sbin/lsof", *LSOF_PORT_ARGS)] = CommandResult(
            0, "nginx 20 root 6u IPv4 0x1 0t0 TCP *:80 (LISTEN)\n"
        )
        service = ProcessService(tree_system, Settings(lsof="/usr/sbin/lsof", command_timeout=5.0))

        ports = service.list_open_ports()

        assert [(p.port, p.pid) for p in ports] == [(80, 20)]
        assert tree_system.command_calls[-1][1] == 5.0

    def test_tool_failure_surfaces(self, service):
        with pytest.raises(ExternalToolError):
            service.list_open_ports()


class TestKillProcess:
    """Tests for kill_process."""

    def test_kills_tree_leaves_first(self, service, tree_system):
        report = service.kill_process(10)

        assert report.matched == 1
        assert report.killed == (12, 11, 13, 10)
        assert all(sig is signal.SIGTERM for _, sig in tree_system.signals)
        assert_consistent(report)

    def test_without_children(self, service, tree_system):
        report = service.kill_process(10, include_children=False)
        assert report.killed == (10,)
        assert tree_system.signalled_pids == [10]

    def test_none_means_default_children(self, service):
        report = service.kill_process(20, include_children=None, force=None)
        assert report.killed == (21, 22, 20)

    def test_force_uses_sigkill(self, service, tree_system):
        service.kill_process(13, force=True)
        assert tree_system.signals == [(13, signal.SIGKILL)]

    @pytest.mark.parametrize("pid", [0, -1])
    def test_rejects_non_positive_pid(self, service, tree_system, pid):
        with pytest.raises(ValidationError):
            service.kill_process(pid)
        assert tree_system.signals == []

    def test_not_found_sends_nothing(self, service, tree_system):
        with pytest.raises(NotFoundError):
            service.kill_process(31337)
        assert tree_system.signals == []

    def test_own_process_is_never_signalled(self, service, tree_system):
        report = service.kill_process(HOST_PID)
        assert report.matched == 1
        assert report.attempted == 0
        assert tree_system.signals == []

    def test_killing_ancestor_spares_host(self, service, tree_system):
        report = service.kill_process(1)
        assert HOST_PID not in tree_system.signalled_pids
        assert report.killed[-1] == 1
        assert_consistent(report)

    def test_partial_failure(self, service, tree_system):
        tree_system.signal_errors[12] = ProcessLookupError(errno.ESRCH, "No such process")

        report = service.kill_process(10)

        assert report.killed == (11, 13, 10)
        assert [f.pid for f in report.failed] == [12]
        assert_consistent(report)


class TestKillMatchingProcesses:
    """Tests for kill_matching_processes."""

    @pytest.mark.parametrize("query", ["", "   ", "\t\n"])
    def test_rejects_empty_query(self, service, query):
        with pytest.raises(ValidationError, match="Query cannot be empty"):
            service.kill_matching_processes(query)

    def test_no_matches_is_empty_report(self, service, tree_system):
        report = service.kill_matching_processes("postgres")
        assert report == KillReport.empty()
        assert tree_system.signals == []

    def test_case_insensitive_name_match(self, service):
        report = service.kill_matching_processes("  NGINX ")
        assert report.matched == 3
        assert report.killed == (21, 22, 20)
        assert_consistent(report)

    def test_matches_command_line(self, service):
        report = service.kill_matching_processes("worker.js")
        assert report.matched == 1
        assert report.killed == (12,)

    def test_overlapping_roots_signalled_once(self, service, tree_system):
        """node 11 and its child node 12 both match; 12 is signalled once."""
        report = service.kill_matching_processes("node")

        assert report.matched == 2
        assert tree_system.signalled_pids == [12, 11]
        assert report.attempted == 2

    def test_without_children(self, service, tree_system):
        report = service.kill_matching_processes("bash", include_children=False)
        assert report.killed == (10,)

    def test_self_match_is_skipped(self, service, tree_system):
        """The host's own command line matches but it is never signalled."""
        report = service.kill_matching_processes("pswtf")

        assert report.matched == 1
        assert report.attempted == 0
        assert report.killed == ()
        assert report.failed == ()

    def test_matched_counts_roots_not_targets(self, service):
        report = service.kill_matching_processes("bash")
        assert report.matched == 1
        assert report.attempted == 4

    def test_attempted_bounded_by_roots_and_descendants(self, tree_system):
        tree_system.processes.append(raw(50, 1, "nodejs-helper", ["helper"]))
        report = ProcessService(tree_system).kill_matching_processes("node", force=True)

        assert report.matched == 3
        assert report.attempted <= 3 + 1
        assert all(sig is signal.SIGKILL for _, sig in tree_system.signals)


class TestMatchingProcesses:
    """Tests for matching_processes, the selection behind bulk kill."""

    def test_matches_name_and_command_line_only(self, service):
        processes = service.get_process_snapshot().processes

        assert [p.pid for p in matching_processes(processes, "NODE")] == [11, 12]
        assert [p.pid for p in matching_processes(processes, "notes.txt")] == [13]
        # PIDs are not part of the match
        assert matching_processes(processes, "12") == []

    def test_agrees_with_kill_matching_processes(self, service, tree_system):
        processes = service.get_process_snapshot().processes
        expected = [p.pid for p in matching_processes(processes, "nginx")]

        report = service.kill_matching_processes("nginx", include_children=False)

        assert report.matched == len(expected)
        assert sorted(tree_system.signalled_pids) == sorted(expected)

    def test_rejects_empty_query(self):
        with pytest.raises(ValidationError, match="Query cannot be empty"):
            matching_processes([], " ")
