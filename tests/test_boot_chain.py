def _setup_ev(code: str, line: int, *, column: int = 10, kb=None):
    from bootsleuth.core.models import Evidence
    from bootsleuth.knowledge.base import get_default_knowledge_base

    kb = kb or get_default_knowledge_base()
    return Evidence(
        kind="SetupLogEntry",
        source="setupact.log",
        raw=f"Error {code}",
        code=code,
        entry=kb.lookup(code),
        line_number=line,
        offset=line * 100,
        column=column,
    )


def _custom_kb():
    from bootsleuth.knowledge.base import parse_table

    return parse_table(
        {
            "version": 1,
            "codes": [
                {"code": "0xc0000221", "description": "driver", "action": "sfc", "severity": "High", "stage": "Driver"},
                {"code": "0xc000000e", "description": "bcd", "action": "bcdboot", "severity": "High", "stage": "BootLoader"},
                {"code": "0xc000021a", "description": "kernel", "action": "k", "severity": "Critical", "stage": "Kernel"},
            ],
        }
    )


def test_equal_severity_later_code_wins() -> None:
    from bootsleuth.diagnostics.boot_chain import BootChainAnalyzer

    kb = _custom_kb()
    dx = BootChainAnalyzer().analyze([_setup_ev("0xc0000221", 1, kb=kb), _setup_ev("0xc000000e", 2, kb=kb)])

    assert dx.code == "0xc000000e"
    assert dx.stage == "BootLoader"
    assert not dx.unknown_code
    assert [c.code for c in dx.candidates] == ["0xc000000e", "0xc0000221"]


def test_higher_severity_beats_later_code() -> None:
    from bootsleuth.diagnostics.boot_chain import BootChainAnalyzer

    kb = _custom_kb()
    dx = BootChainAnalyzer().analyze([_setup_ev("0xc000021a", 1, kb=kb), _setup_ev("0xc000000e", 2, kb=kb)])

    assert dx.code == "0xc000021a"
    assert dx.stage == "Kernel"
    assert dx.severity == "Critical"


def test_default_table_driver_then_bootloader_sequence() -> None:
    from bootsleuth.diagnostics.boot_chain import BootChainAnalyzer

    dx = BootChainAnalyzer().analyze([_setup_ev("0xc0000221", 1), _setup_ev("0xc000000e", 2)])
    assert dx.code == "0xc000000e"
    assert dx.stage == "BootLoader"
    assert dx.entry is not None and dx.entry.command == "bcdboot {windir}"


def test_same_line_tie_resolves_to_first_match() -> None:
    from bootsleuth.diagnostics.boot_chain import BootChainAnalyzer

    kb = _custom_kb()
    dx = BootChainAnalyzer().analyze(
        [_setup_ev("0xc0000221", 5, column=3, kb=kb), _setup_ev("0xc000000e", 5, column=30, kb=kb)]
    )
    assert dx.code == "0xc0000221"


def test_repeated_code_uses_latest_occurrence() -> None:
    from bootsleuth.diagnostics.boot_chain import BootChainAnalyzer

    kb = _custom_kb()
    dx = BootChainAnalyzer().analyze(
        [_setup_ev("0xc0000221", 1, kb=kb), _setup_ev("0xc000000e", 2, kb=kb), _setup_ev("0xc0000221", 3, kb=kb)]
    )
    assert dx.code == "0xc0000221"
    assert dx.candidates[0].occurrences == 2
    assert dx.candidates[0].last_line == 3


def test_unregistered_code_is_marked_not_guessed() -> None:
    from bootsleuth.diagnostics.boot_chain import BootChainAnalyzer

    dx = BootChainAnalyzer().analyze([_setup_ev("0xdeadbeef", 1)])

    assert dx.stage == "Unknown"
    assert dx.severity == "Unknown"
    assert dx.unknown_code is True
    assert dx.code == "0xdeadbeef"
    assert dx.entry is None
    assert dx.explanation.startswith("unregistered code")
    assert dx.candidates[0].registered is False


def test_known_code_beats_unregistered_code() -> None:
    from bootsleuth.diagnostics.boot_chain import BootChainAnalyzer

    dx = BootChainAnalyzer().analyze([_setup_ev("0xc1900208", 1), _setup_ev("0xdeadbeef", 2)])
    assert dx.code == "0xc1900208"
    assert [c.registered for c in dx.candidates] == [True, False]


def _boot_failure():
    from bootsleuth.core.models import Evidence

    return Evidence(
        kind="BootLogEntry",
        source="ntbtlog.txt",
        raw="Did not load driver bad.sys",
        details={"first_failure": "bad.sys", "last_loaded": "hal.dll", "loaded_count": 3},
    )


def test_boot_log_driver_fallback() -> None:
    from bootsleuth.diagnostics.boot_chain import BootChainAnalyzer

    dx = BootChainAnalyzer().analyze([_boot_failure()])

    assert dx.stage == "Driver"
    assert dx.severity == "High"
    assert dx.unknown_code is True
    assert dx.code is None
    assert "bad.sys" in dx.explanation
    assert "hal.dll" in dx.explanation


def test_unregistered_code_wins_over_driver_fallback() -> None:
    from bootsleuth.actions.planner import RepairPlanner
    from bootsleuth.diagnostics.boot_chain import BootChainAnalyzer

    boot = _boot_failure()
    dx = BootChainAnalyzer().analyze([boot, _setup_ev("0xdeadbeef", 1)])

    assert dx.stage == "Unknown"
    assert dx.severity == "Unknown"
    assert dx.unknown_code is True
    assert dx.code == "0xdeadbeef"
    assert dx.explanation.startswith("unregistered code")
    assert boot in dx.supporting
    assert not RepairPlanner().plan(dx, [], None).has_repair_tool_command()


def test_no_evidence_is_insufficient_not_an_error() -> None:
    from bootsleuth.diagnostics.boot_chain import BootChainAnalyzer

    dx = BootChainAnalyzer().analyze([])
    assert dx.stage == "Unknown"
    assert dx.confidence_0_100 == 0
    assert dx.explanation.startswith("insufficient evidence")
    assert not dx.is_resolved


def test_analysis_is_deterministic() -> None:
    from bootsleuth.diagnostics.boot_chain import BootChainAnalyzer

    ev = [_setup_ev("0xc0000221", 1), _setup_ev("0xc1900101", 2), _setup_ev("0xc000000e", 3)]
    a = BootChainAnalyzer().analyze(ev)
    b = BootChainAnalyzer().analyze(list(ev))
    assert a == b
