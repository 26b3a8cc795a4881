from collections import namedtuple

import pytest

_Usage = namedtuple("_Usage", "total used free percent")


def _volumes(tmp_path, windows_tree):
    from bootsleuth.collectors.partition import Volume

    (tmp_path / "C").mkdir()
    other = tmp_path / "E"
    (other / "Windows" / "System32").mkdir(parents=True)
    return [
        Volume(drive="C:", mountpoint=str(tmp_path / "C")),
        Volume(drive="E:", mountpoint=str(other)),
        Volume(drive="D:", mountpoint=str(windows_tree)),
    ]


def test_auto_detect_skips_system_drive(tmp_path, windows_tree) -> None:
    from bootsleuth.collectors.partition import PartitionLocator

    vols = _volumes(tmp_path, windows_tree)
    fact = PartitionLocator(system_drive="C:", list_volumes=lambda: vols).locate()

    assert fact is not None
    assert fact.drive == "E:"
    assert fact.selected_by == "auto"
    assert fact.is_offline is True
    assert fact.windir == "E:\\Windows"


def test_override_wins_over_auto_detection(tmp_path, windows_tree) -> None:
    from bootsleuth.collectors.partition import PartitionLocator

    vols = _volumes(tmp_path, windows_tree)
    locator = PartitionLocator(system_drive="C:", list_volumes=lambda: vols)

    for override in ("D", "d:", "D:\\"):
        fact = locator.locate(override)
        assert fact is not None
        assert fact.drive == "D:"
        assert fact.selected_by == "override"
        assert fact.mountpoint == str(windows_tree)


def test_override_of_unmounted_drive_records_gap(tmp_path, windows_tree) -> None:
    from bootsleuth.collectors.partition import PartitionLocator

    vols = _volumes(tmp_path, windows_tree)
    gaps = []
    assert PartitionLocator(list_volumes=lambda: vols).locate("Z", gaps) is None
    assert gaps[0].kind == "PartitionNotFound"


def test_no_windows_partition_records_gap(tmp_path) -> None:
    from bootsleuth.collectors.partition import PartitionLocator, Volume

    (tmp_path / "C").mkdir()
    gaps = []
    locator = PartitionLocator(list_volumes=lambda: [Volume(drive="C:", mountpoint=str(tmp_path / "C"))])
    assert locator.locate(None, gaps) is None
    assert [g.kind for g in gaps] == ["PartitionNotFound"]


@pytest.mark.parametrize(
    "raw,expected",
    [("d", "D:"), ("D:", "D:"), ("d:\\", "D:"), (" e ", "E:"), ("", None), ("DD", None), (None, None), ("1", None)],
)
def test_normalize_drive(raw, expected) -> None:
    from bootsleuth.config import normalize_drive

    assert normalize_drive(raw) == expected


def test_disk_probe_low_space_is_warning(monkeypatch, tmp_path) -> None:
    import bootsleuth.collectors.disk_health as dh

    monkeypatch.setattr(dh.psutil, "disk_usage", lambda _p: _Usage(1000, 950, 50, 95.0))
    probe = dh.DiskHealthProbe(low_space_pct=10, health_source=lambda d: "Healthy", read_only_source=lambda d: False)
    gaps = []
    fact = probe.probe("d", gaps, mountpoint=str(tmp_path))

    assert fact.drive == "D:"
    assert fact.free_pct == 5.0
    assert fact.low_space is True
    assert fact.status == "Warning"
    assert fact.health_source_status == "Healthy"
    assert gaps == []


def test_disk_probe_critical_records_hardware_fault(monkeypatch, tmp_path) -> None:
    import bootsleuth.collectors.disk_health as dh

    monkeypatch.setattr(dh.psutil, "disk_usage", lambda _p: _Usage(1000, 100, 900, 10.0))
    probe = dh.DiskHealthProbe(health_source=lambda d: "Critical", read_only_source=lambda d: True)
    gaps = []
    fact = probe.probe("D:", gaps, mountpoint=str(tmp_path))

    assert fact.status == "Critical"
    assert fact.read_only is True
    assert "Volume is mounted read-only" in fact.notes
    assert [g.kind for g in gaps] == ["HardwareFault"]


def test_disk_probe_unreadable_usage_is_a_gap(monkeypatch) -> None:
    import bootsleuth.collectors.disk_health as dh

    def _boom(_p):
        raise OSError("no such volume")

    monkeypatch.setattr(dh.psutil, "disk_usage", _boom)
    gaps = []
    fact = dh.DiskHealthProbe(health_source=lambda d: "Unknown", read_only_source=lambda d: None).probe("Q:", gaps)

    assert fact.free_pct is None
    assert fact.status == "Unknown"
    assert gaps[0].kind == "EvidenceUnavailable"


def test_physical_disk_health_unknown_off_windows(monkeypatch) -> None:
    import bootsleuth.collectors.disk_health as dh

    monkeypatch.setattr(dh.platform, "system", lambda: "Linux")
    assert dh.physical_disk_health("C:") == "Unknown"


def test_disk_probe_threshold_uses_unrounded_free_space(monkeypatch, tmp_path) -> None:
    import bootsleuth.collectors.disk_health as dh

    monkeypatch.setattr(dh.psutil, "disk_usage", lambda _p: _Usage(10000, 9004, 996, 90.0))
    probe = dh.DiskHealthProbe(low_space_pct=10, health_source=lambda d: "Healthy", read_only_source=lambda d: False)
    fact = probe.probe("d", [], mountpoint=str(tmp_path))

    assert fact.free_pct == 10.0
    assert fact.low_space is True
    assert fact.status == "Warning"
    assert "Free space 9.96% is below 10%" in fact.notes
