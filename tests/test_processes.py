from __future__ import annotations

from types import SimpleNamespace

import pytest

from pulsewatch.data import processes as processes_mod
from pulsewatch.data.processes import ProcessTable, sort_processes
from pulsewatch.models import ProcessSample, ProcessSortKey


def _proc(pid, name, cpu=0.0, rss=0, read=0, write=0, status="sleeping", user="alice"):
    return SimpleNamespace(
        pid=pid,
        info={
            "pid": pid,
            "name": name,
            "username": user,
            "status": status,
            "cpu_percent": cpu,
            "memory_info": SimpleNamespace(rss=rss, vms=rss * 2),
            "io_counters": SimpleNamespace(read_bytes=read, write_bytes=write),
        },
    )


def _sample(pid, name="p", cpu=0.0, mem=0, read=0, write=0):
    return ProcessSample(
        pid=pid,
        name=name,
        user="u",
        cpu_percent=cpu,
        memory_bytes=mem,
        disk_read_rate=read,
        disk_write_rate=write,
        status="running",
    )


class _Clock:
    def __init__(self, start=100.0):
        self.now = start

    def __call__(self):
        return self.now


@pytest.fixture
def fake_table(monkeypatch):
    rows: list = []
    monkeypatch.setattr(processes_mod.psutil, "process_iter", lambda attrs=None, ad_value=None: iter(rows))
    monkeypatch.setattr(processes_mod.psutil, "cpu_count", lambda logical=True: 8)
    return rows


def test_cpu_normalized_and_clamped(fake_table):
    fake_table[:] = [_proc(10, "busy", cpu=850.0), _proc(11, "half", cpu=400.0)]
    samples = ProcessTable().list_processes(include_system=True)
    by_pid = {s.pid: s for s in samples}
    assert by_pid[10].cpu_percent == 100.0
    assert by_pid[11].cpu_percent == 50.0
    assert by_pid[11].cpu_display == "50.00%"


def test_system_processes_hidden_unless_requested(fake_table):
    fake_table[:] = [_proc(2, "kworker/0:1"), _proc(300, "python3")]
    table = ProcessTable()
    assert [s.name for s in table.list_processes(include_system=False)] == ["python3"]
    assert {s.name for s in table.list_processes(include_system=True)} == {"kworker/0:1", "python3"}


def test_system_predicate_is_overridable(fake_table):
    fake_table[:] = [_proc(2, "kworker/0:1"), _proc(300, "python3")]
    table = ProcessTable(system_predicate=lambda name: name.startswith("py"))
    assert [s.name for s in table.list_processes()] == ["kworker/0:1"]


def test_filter_matches_name_or_pid(fake_table):
    fake_table[:] = [_proc(1234, "Firefox"), _proc(99, "bash")]
    table = ProcessTable()
    assert [s.pid for s in table.list_processes(filter_text="fire")] == [1234]
    assert [s.pid for s in table.list_processes(filter_text="99")] == [99]


def test_disk_rates_use_previous_cycle(fake_table):
    clock = _Clock()
    table = ProcessTable(clock=clock)

    fake_table[:] = [_proc(5, "db", read=1_000, write=500)]
    clock.now += 1.0
    first = table.list_processes()
    assert (first[0].disk_read_rate, first[0].disk_write_rate) == (0, 0)

    fake_table[:] = [_proc(5, "db", read=3_000, write=400)]
    clock.now += 2.0
    second = table.list_processes()
    assert second[0].disk_read_rate == 1_000
    assert second[0].disk_write_rate == 0
    assert second[0].disk_read_display == "1.0 KB/s"


def test_vanished_pid_loses_baseline(fake_table):
    clock = _Clock()
    table = ProcessTable(clock=clock)
    fake_table[:] = [_proc(5, "db", read=1_000)]
    table.list_processes()
    fake_table[:] = []
    clock.now += 1.0
    table.list_processes()
    fake_table[:] = [_proc(5, "db", read=9_000)]
    clock.now += 1.0
    assert table.list_processes()[0].disk_read_rate == 0


def test_filtered_out_process_keeps_baseline(fake_table):
    clock = _Clock()
    table = ProcessTable(clock=clock)
    fake_table[:] = [_proc(5, "db", read=1_000), _proc(6, "kworker/1:0", read=0)]
    clock.now += 1.0
    table.list_processes()

    fake_table[:] = [_proc(5, "db", read=2_000), _proc(6, "kworker/1:0", read=500)]
    clock.now += 1.0
    assert table.list_processes(filter_text="zzz") == []

    fake_table[:] = [_proc(5, "db", read=4_000), _proc(6, "kworker/1:0", read=1_500)]
    clock.now += 1.0
    by_pid = {s.pid: s for s in table.list_processes(include_system=True)}
    assert by_pid[5].disk_read_rate == 2_000
    assert by_pid[6].disk_read_rate == 1_000


def test_kernel_status_is_kept(fake_table):
    fake_table[:] = [_proc(7, "worker", cpu=80.0, status="sleeping")]
    assert ProcessTable().list_processes()[0].status == "sleeping"


def test_sort_stability_on_ties():
    items = [
        _sample(1, "a", cpu=5.0, mem=100),
        _sample(2, "b", cpu=9.0, mem=100),
        _sample(3, "c", cpu=5.0, mem=300),
        _sample(4, "d", cpu=5.0, mem=100),
    ]
    by_cpu = sort_processes(items, ProcessSortKey.CPU, ascending=False)
    assert [p.pid for p in by_cpu] == [2, 1, 3, 4]

    by_mem = sort_processes(by_cpu, ProcessSortKey.MEMORY, ascending=False)
    assert [p.pid for p in by_mem] == [3, 2, 1, 4]

    ascending = sort_processes(items, ProcessSortKey.CPU, ascending=True)
    assert [p.pid for p in ascending] == [1, 3, 4, 2]


@pytest.mark.parametrize(
    ("key", "expected"),
    [
        (ProcessSortKey.NAME, [3, 1, 2]),
        (ProcessSortKey.PID, [1, 2, 3]),
        (ProcessSortKey.DISK_READ, [2, 3, 1]),
        (ProcessSortKey.DISK_WRITE, [3, 1, 2]),
    ],
)
def test_sort_keys_ascending(key, expected):
    items = [
        _sample(1, "beta", read=30, write=20),
        _sample(2, "gamma", read=10, write=50),
        _sample(3, "alpha", read=20, write=10),
    ]
    assert [p.pid for p in sort_processes(items, key, ascending=True)] == expected


def test_general_score_combines_cpu_and_memory():
    items = [
        _sample(1, cpu=10.0, mem=0),
        _sample(2, cpu=5.0, mem=500),
    ]
    ordered = sort_processes(items, "general", ascending=False, total_memory=1000)
    assert [p.pid for p in ordered] == [2, 1]


def test_detailed_process_missing_pid(monkeypatch):
    def _raise(pid):
        raise processes_mod.psutil.NoSuchProcess(pid)

    monkeypatch.setattr(processes_mod.psutil, "Process", _raise)
    assert processes_mod.detailed_process(424242) is None
