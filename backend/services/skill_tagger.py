"""Pattern-based tagging of automation-protected and -vulnerable skills.

Protected patterns are only checked on low-exposure tasks and vulnerable
patterns only on high-exposure tasks, so a tag always reflects the task's
own score.
"""

import re

from models.schemas.exposure import TaskExposureScore

MAX_TAGS = 5

PROTECTED_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"leadership|manage|supervise|mentor", re.I), "Leadership & Management"),
    (re.compile(r"negotiat|persuade|influence", re.I), "Negotiation & Persuasion"),
    (re.compile(r"creativ|design|innovat", re.I), "Creative Problem Solving"),
    (re.compile(r"empath|emotional|counsel|support", re.I), "Emotional Intelligence"),
    (re.compile(r"strateg|planning", re.I), "Strategic Thinking"),
    (re.compile(r"relationship|client|stakeholder", re.I), "Relationship Building"),
    (re.compile(r"complex.*decision|judgment|judgement|ethic", re.I), "Complex Decision Making"),
    (re.compile(r"physical|hands-on|manual", re.I), "Physical/Manual Skills"),
)

VULNERABLE_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"data.*entry|typing|input", re.I), "Data Entry"),
    (re.compile(r"schedul|calendar|appointment", re.I), "Scheduling & Coordination"),
    (re.compile(r"research|gather.*information|search", re.I), "Information Research"),
    (re.compile(r"report|document|summariz|summaris", re.I), "Report Generation"),
    (re.compile(r"routine|repetitive|standard", re.I), "Routine Processing"),
    (re.compile(r"calculat|comput|analysis", re.I), "Data Analysis"),
    (re.compile(r"translat|transcrib", re.I), "Translation & Transcription"),
    (re.compile(r"sort|organiz|organis|fil(e|ing)|categoriz", re.I), "Information Organization"),
)


def _task_text(task: TaskExposureScore) -> str:
    return " ".join([task.description] + [a.title for a in task.top_activities])


def _collect(
    tasks: list[TaskExposureScore],
    category: str,
    patterns: tuple[tuple[re.Pattern[str], str], ...],
) -> list[str]:
    tags: list[str] = []
    for task in tasks:
        if task.category != category:
            continue
        text = _task_text(task)
        for pattern, tag in patterns:
            if tag not in tags and pattern.search(text):
                tags.append(tag)
    return tags[:MAX_TAGS]


def tag_skills(tasks: list[TaskExposureScore]) -> tuple[list[str], list[str]]:
    """Return (protected, vulnerable) skill tags, deduplicated, first-seen order."""
    return (
        _collect(tasks, "low", PROTECTED_PATTERNS),
        _collect(tasks, "high", VULNERABLE_PATTERNS),
    )
