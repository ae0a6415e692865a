"""Pass/fail check results shared by the conformance harness and the catalog verifier."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class CheckResult:
    name: str
    passed: bool
    detail: str = ""


def format_results(results: list[CheckResult]) -> list[str]:
    """One ``  PASS  name - detail`` line per check, then ``N passed, M failed``."""
    lines = []
    for r in results:
        status = "PASS" if r.passed else "FAIL"
        line = f"  {status}  {r.name}"
        if r.detail:
            line += f" - {r.detail}"
        lines.append(line)

    passed = sum(1 for r in results if r.passed)
    lines.append("")
    lines.append(f"{passed} passed, {len(results) - passed} failed")
    return lines


def all_passed(results: list[CheckResult]) -> bool:
    return all(r.passed for r in results)
