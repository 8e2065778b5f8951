import json
from pathlib import Path

from waybackx.workflows.doctor import build_doctor_report, format_doctor_report


def _check(report, name):
    return next(check for check in report["checks"] if check["name"] == name)


def test_clean_environment_is_ok() -> None:
    report = build_doctor_report(environ={})

    assert report["ok"] is True
    assert _check(report, "sensitive_rules")["status"] == "ok"
    assert _check(report, "WAYBACKX_PATTERNS_PATH")["level"] == "info"
    assert _check(report, "WAYBACKX_CDX_ENDPOINT")["detail"] == "http://web.archive.org/cdx/search/cdx"


def test_invalid_values_fail_the_report() -> None:
    report = build_doctor_report(
        environ={"WAYBACKX_RETRIES": "0", "WAYBACKX_TIMEOUT": "soon", "WAYBACKX_CDX_ENDPOINT": "ftp://x"}
    )

    assert report["ok"] is False
    assert _check(report, "WAYBACKX_RETRIES")["status"] == "invalid"
    assert _check(report, "WAYBACKX_TIMEOUT")["status"] == "invalid"
    assert _check(report, "WAYBACKX_CDX_ENDPOINT")["status"] == "invalid"


def test_custom_patterns_file_is_compiled(tmp_path: Path) -> None:
    good = tmp_path / "good.json"
    good.write_text(json.dumps({"keys": [r"secret\.txt"]}), encoding="utf-8")
    bad = tmp_path / "bad.json"
    bad.write_text(json.dumps({"keys": ["(unclosed"]}), encoding="utf-8")

    assert build_doctor_report(environ={"WAYBACKX_PATTERNS_PATH": str(good)})["ok"] is True
    failing = build_doctor_report(environ={"WAYBACKX_PATTERNS_PATH": str(bad)})
    assert failing["ok"] is False
    assert "remedy" in _check(failing, "WAYBACKX_PATTERNS_PATH")


def test_format_lists_checks_and_remedies() -> None:
    report = build_doctor_report(environ={"WAYBACKX_TYPE": "everything"})

    text = format_doctor_report(report)

    assert text.startswith("waybackx doctor\n")
    assert "- [warn] WAYBACKX_TYPE: invalid (everything)" in text
    assert "remedy: Use 'wildcard' or 'domain'." in text
