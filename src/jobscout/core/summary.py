"""Deterministic recap of job listings found by tools."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from jobscout.core.dispatcher import ToolInvocation

MAX_HIGHLIGHTS = 3
MAX_ERRORS = 2


def _extract_jobs(data: Any) -> list[Mapping[str, Any]]:
    if isinstance(data, list):
        candidates = data
    elif isinstance(data, Mapping) and isinstance(data.get("jobs"), list):
        candidates = data["jobs"]
    else:
        return []
    return [job for job in candidates if isinstance(job, Mapping)]


def _job_key(job: Mapping[str, Any], title: str, company: str, location: str | None) -> str:
    job_id = job.get("id")
    if isinstance(job_id, str) and job_id.strip():
        return job_id.strip()
    return f"{title}|{company}|{location or ''}"


def build_job_summary(invocations: Iterable[ToolInvocation]) -> str | None:
    """Summarize job results for when the model ended without saying anything.

    Returns ``None`` when there is neither a job nor a failure to report.
    """
    highlights: list[str] = []
    seen: set[str] = set()
    sources: list[str] = []
    errors: list[str] = []

    for invocation in invocations:
        result = invocation.result
        if result is None:
            continue
        if not result.success:
            text = result.error or result.message
            if text:
                errors.append(text)
            continue

        for job in _extract_jobs(result.data):
            title = job.get("title")
            company = job.get("company")
            if not isinstance(title, str) or not isinstance(company, str) or not title or not company:
                continue
            location = job.get("location") if isinstance(job.get("location"), str) else None
            key = _job_key(job, title, company, location)
            if key not in seen:
                seen.add(key)
                line = f"• {title} at {company}"
                if location:
                    line += f" ({location})"
                highlights.append(line)
            source = job.get("source")
            if isinstance(source, str) and source.strip() and source.strip() not in sources:
                sources.append(source.strip())

    if not seen and not errors:
        return None

    parts: list[str] = []
    if seen:
        suffix = ""
        if sources:
            suffix = " across " + ", ".join(source[:1].upper() + source[1:] for source in sources)
        parts.append(f"I found {len(seen)} role{'' if len(seen) == 1 else 's'}{suffix}.")
        parts.append("Highlights:\n" + "\n".join(highlights[:MAX_HIGHLIGHTS]))
    if errors:
        parts.append(f"A few searches failed: {'; '.join(errors[:MAX_ERRORS])}.")

    parts.append("Let me know if you want to refine the search or apply to any of these.")
    return "\n\n".join(parts)
