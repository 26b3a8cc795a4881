import json

import pytest


class _FakeOrchestrator:
    report = None
    error = None
    calls: list = []

    def __init__(self, config) -> None:
        self.config = config

    def run(self, *, mode, drive=None, confirm=None):
        _FakeOrchestrator.calls.append({"mode": mode, "drive": drive, "confirm": confirm, "config": self.config})
        if _FakeOrchestrator.error is not None:
            raise _FakeOrchestrator.error
        return _FakeOrchestrator.report


@pytest.fixture
def fake_orchestrator(monkeypatch):
    from bootsleuth.core.models import DiagnosticReport

    _FakeOrchestrator.report = DiagnosticReport()
    _FakeOrchestrator.error = None
    _FakeOrchestrator.calls = []
    monkeypatch.setattr("bootsleuth.pipeline.orchestrator.AnalysisOrchestrator", _FakeOrchestrator)
    return _FakeOrchestrator


def test_ok_report_exits_zero_and_prints_markdown(fake_orchestrator, capsys) -> None:
    import main

    assert main.main([]) == 0
    out = capsys.readouterr().out
    assert out.startswith("# Boot Diagnostic Report")
    assert fake_orchestrator.calls[0]["mode"] == "analyze"
    assert fake_orchestrator.calls[0]["confirm"] is None


def test_degraded_report_exits_two(fake_orchestrator, capsys) -> None:
    import main

    fake_orchestrator.report = fake_orchestrator.report.model_copy(update={"status": "degraded"})
    assert main.main(["--mode", "full", "--drive", "D", "--dump-json"]) == 2
    out = json.loads(capsys.readouterr().out)
    assert out["status"] == "degraded"
    assert fake_orchestrator.calls[0]["drive"] == "D"


def test_no_evidence_exits_one(fake_orchestrator) -> None:
    import main
    from bootsleuth.core.errors import NoEvidenceSourceReachable

    fake_orchestrator.error = NoEvidenceSourceReachable("all sources", "nothing readable")
    assert main.main([]) == 1


def test_report_file_is_written(fake_orchestrator, tmp_path, capsys) -> None:
    import main

    target = tmp_path / "report.json"
    assert main.main(["--report-file", str(target)]) == 0
    data = json.loads(target.read_text(encoding="utf-8"))
    assert data["mode"] == "analyze"


def test_unwritable_report_file_exits_one(fake_orchestrator, tmp_path) -> None:
    import main

    assert main.main(["--report-file", str(tmp_path / "missing-dir" / "r.json")]) == 1


def test_repair_mode_passes_confirmation_gate(fake_orchestrator, monkeypatch) -> None:
    import main

    main.main(["--mode", "repair"])
    assert fake_orchestrator.calls[0]["confirm"] is main.ask_confirmation


def test_ask_confirmation_reads_answer(monkeypatch) -> None:
    import main
    from bootsleuth.core.models import Blocker, BlockerRemediation

    b = Blocker(
        blocker_type="PortableOSFlag",
        registry_path=r"HKLM\SYSTEM\X",
        severity="High",
        remediation=BlockerRemediation(title="t", command="c"),
    )
    monkeypatch.setattr("builtins.input", lambda _prompt: "y")
    assert main.ask_confirmation(b) is True
    monkeypatch.setattr("builtins.input", lambda _prompt: "")
    assert main.ask_confirmation(b) is False


def test_cli_flags_override_env_config(fake_orchestrator, monkeypatch) -> None:
    import main

    monkeypatch.setenv("BOOTSLEUTH_POLL_INTERVAL_SECONDS", "5")
    main.main(["--poll-interval", "0.5", "--timeout", "30"])
    cfg = fake_orchestrator.calls[0]["config"]
    assert cfg.poll_interval_seconds == 0.5
    assert cfg.monitor_timeout_seconds == 30.0


def test_load_engine_config_clamps(monkeypatch) -> None:
    from bootsleuth.config import load_engine_config

    monkeypatch.setenv("BOOTSLEUTH_POLL_INTERVAL_SECONDS", "0.001")
    monkeypatch.setenv("BOOTSLEUTH_MONITOR_TIMEOUT_SECONDS", "nope")
    monkeypatch.setenv("BOOTSLEUTH_SYSTEM_DRIVE", "x")
    monkeypatch.setenv("BOOTSLEUTH_ALLOW_BLOCKER_CLEAR", "0")
    cfg = load_engine_config()

    assert cfg.poll_interval_seconds == 0.1
    assert cfg.monitor_timeout_seconds == 1800.0
    assert cfg.system_drive == "X:"
    assert cfg.allow_blocker_clear is False
