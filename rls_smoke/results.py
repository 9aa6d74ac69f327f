"""
Step results, console reporting and the evidence file.

A step passes on a 2xx status. Cross-user reads use the isolation check:
the request must be denied, or succeed with no rows.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from .rest import RestResponse

logger = logging.getLogger(__name__)

DENIED_STATUSES = (401, 403)

CHECK_STATUS = "status"
CHECK_ISOLATION = "isolation"


@dataclass
class StepResult:
    label: str
    status: int
    body: Any
    passed: bool
    check: str = CHECK_STATUS
    detail: str = ""

    def line(self) -> str:
        """One console line: glyph, label, status and body on failure."""
        glyph = "✅" if self.passed else "❌"
        text = f"{glyph} {self.label} → status {self.status}"
        if not self.passed:
            text += f" {json.dumps(self.body)}"
            if self.detail:
                text += f" ({self.detail})"
        return text


def check_status(label: str, response: RestResponse) -> StepResult:
    return StepResult(
        label=label,
        status=response.status,
        body=response.json,
        passed=response.ok,
    )


def check_isolated(label: str, response: RestResponse, strict: bool = True) -> StepResult:
    """
    Check a read made by one user against another user's rows.

    Strict mode passes when the request is denied or returns zero rows.
    Non-strict mode only requires a 2xx status.
    """
    if not strict:
        result = check_status(label, response)
        result.check = CHECK_ISOLATION
        return result

    detail = ""
    if response.status in DENIED_STATUSES:
        passed = True
    elif response.ok:
        leaked = len(response.rows)
        passed = leaked == 0
        if not passed:
            detail = f"{leaked} foreign row(s) visible"
    else:
        passed = False

    return StepResult(
        label=label,
        status=response.status,
        body=response.json,
        passed=passed,
        check=CHECK_ISOLATION,
        detail=detail,
    )


def check_visible(result: StepResult, response: RestResponse, row_id: Optional[str]) -> StepResult:
    """Fail an otherwise passing listing that does not include ``row_id``."""
    if result.passed and row_id and not any(row.get("id") == row_id for row in response.rows):
        result.passed = False
        result.detail = f"row {row_id} missing from listing"
    return result


@dataclass
class SmokeReport:
    """Everything recorded during one run."""
    supabase_url: str
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None
    identities: Dict[str, str] = field(default_factory=dict)
    steps: List[StepResult] = field(default_factory=list)
    error: Optional[str] = None

    def record(self, result: StepResult) -> StepResult:
        self.steps.append(result)
        print(result.line())
        return result

    def finish(self, error: Optional[str] = None):
        self.finished_at = datetime.now(timezone.utc)
        self.error = error

    @property
    def passed(self) -> int:
        return sum(1 for step in self.steps if step.passed)

    @property
    def failed(self) -> int:
        return sum(1 for step in self.steps if not step.passed)

    @property
    def all_passed(self) -> bool:
        return self.error is None and self.failed == 0

    def summary_lines(self) -> List[str]:
        return [
            f"Total: {len(self.steps)}",
            f"Passed: {self.passed}",
            f"Failed: {self.failed}",
        ]

    def write_evidence(self, path: str) -> Path:
        """Write a markdown record of the run."""
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)

        lines = [
            "# RLS Smoke Test Results",
            "",
            f"**Date**: {self.started_at.isoformat()}",
            f"**Project**: {self.supabase_url}",
            "",
            "## Identities",
            "",
        ]
        for label, user_id in self.identities.items():
            lines.append(f"- {label}: `{user_id}`")

        lines += ["", "## Summary", ""]
        lines += [f"- {line}" for line in self.summary_lines()]
        if self.error:
            lines.append(f"- Aborted: {self.error}")

        lines += ["", "## Steps", ""]
        for step in self.steps:
            status_str = "✅ PASS" if step.passed else "❌ FAIL"
            entry = f"- {status_str} **{step.label}** ({step.check}, status {step.status})"
            if step.detail:
                entry += f": {step.detail}"
            lines.append(entry)

        target.write_text("\n".join(lines) + "\n", encoding="utf-8")
        logger.info(f"Evidence written to {target}")
        return target
