"""
Read-only views over stored interviews: the admin text report and the CSV
export. The CSV is maintained by ``ExportProjection``, a background step that
runs apart from interview handling.
"""
from __future__ import annotations

import asyncio
import csv
import logging
from pathlib import Path
from typing import List, Optional, Union

from sqlalchemy.exc import SQLAlchemyError

from screenbot.models import CandidateRecord
from screenbot.store import InterviewStore

LOG = logging.getLogger("screenbot.reports")

EXPORT_COLUMNS = [
    "candidate_id",
    "username",
    "first_name",
    "last_name",
    "approved",
    "q_idx",
    "answer_text",
    "answer_at",
]


async def generate_report(store: InterviewStore, candidate_id: Optional[int] = None) -> str:
    if candidate_id is not None:
        found = await store.get_candidate(candidate_id)
        candidates: List[CandidateRecord] = [found] if found else []
    else:
        candidates = await store.list_candidates()

    lines: List[str] = []
    for candidate in candidates:
        lines.append(
            f"Candidate #{candidate.id} (@{candidate.username or ''} | "
            f"{candidate.first_name or ''} {candidate.last_name or ''})"
        )
        lines.append(f"  Approved: {'✅ Yes' if candidate.approved else '❌ No'}")
        flags = await store.flags_for(candidate.id)
        if flags:
            lines.append("  Flags:")
            for flag in flags:
                lines.append(f"    - [sev {flag.severity}] {flag.code} ({flag.created_at.isoformat()})")
        else:
            lines.append("  Flags: none")
        lines.append("  Answers:")
        for answer in await store.answers_for(candidate.id):
            lines.append(f"    Q{answer.question_index + 1}: {answer.answer_text[:200]}")
        lines.append("")
    if not lines:
        return "No data."
    return "\n".join(lines) + "\n"


async def export_csv(store: InterviewStore, path: Union[str, Path]) -> Path:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    rows = await store.export_rows()
    tmp = target.with_suffix(target.suffix + ".tmp")
    with open(tmp, "w", newline="", encoding="utf-8") as fh:
        writer = csv.writer(fh)
        writer.writerow(EXPORT_COLUMNS)
        for row in rows:
            writer.writerow(
                [
                    row.candidate_id,
                    row.username or "",
                    row.first_name or "",
                    row.last_name or "",
                    int(row.approved),
                    row.question_index,
                    row.answer_text,
                    row.answer_at.isoformat(),
                ]
            )
    tmp.replace(target)
    return target


class ExportProjection:
    """Keeps the CSV export current without blocking whoever changed the data.

    ``request()`` only marks the export stale. ``run()`` is a long-lived loop
    that rewrites the file once per burst of requests.
    """

    def __init__(self, store: InterviewStore, path: Union[str, Path], debounce: float = 0.5) -> None:
        self.store = store
        self.path = Path(path)
        self.debounce = debounce
        self._dirty = asyncio.Event()

    def request(self) -> None:
        self._dirty.set()

    @property
    def pending(self) -> bool:
        return self._dirty.is_set()

    async def refresh(self) -> Optional[Path]:
        self._dirty.clear()
        try:
            return await export_csv(self.store, self.path)
        except (SQLAlchemyError, OSError) as exc:
            LOG.warning("CSV export projection failed (path=%s): %s", self.path, exc)
            return None

    async def run(self) -> None:
        while True:
            await self._dirty.wait()
            if self.debounce:
                await asyncio.sleep(self.debounce)
            try:
                await self.refresh()
            except Exception:
                LOG.exception("CSV export projection crashed (path=%s); will retry on next change", self.path)
