"""All prompt templates for semantic-matching calls."""

from models.schemas.activity import DetailedActivity, UserTask
from models.schemas.occupation import OccupationProfile


def _activity_lines(activities: list[DetailedActivity]) -> str:
    return "\n".join(f"{a.activity_id}: {a.title}" for a in activities)


def build_occupation_prompt(
    job_title: str,
    candidates: list[OccupationProfile],
    industry: str | None = None,
) -> str:
    """Stage 1 fallback: rank the most plausible occupations for a job title."""
    industry_clause = f" in the {industry} industry" if industry else ""
    occupation_list = "\n".join(f"{o.code}: {o.title}" for o in candidates)

    return f"""You are an expert at matching job titles to standardized occupation codes.

Given this job title{industry_clause}:
"{job_title}"

Choose ONLY from these candidate occupations:
{occupation_list}

Suggest the 3 most likely occupations for this job title. Consider:
1. The core responsibilities implied by the title
2. Industry context if provided
3. Common variations of the title

Respond with ONLY valid JSON (no markdown, no code fences) in this exact structure:
{{
  "suggestions": [
    {{"code": "<code from the list>", "confidence": <0.0-1.0>, "reasoning": "<brief explanation>"}}
  ]
}}"""


def build_task_mapping_prompt(
    task: UserTask,
    activities: list[DetailedActivity],
    occupation_title: str | None = None,
) -> str:
    """Stage 2: map one task to detailed work activities."""
    context = f"\nContext: This person works as a {occupation_title}.\n" if occupation_title else ""

    return f"""You are an expert at matching job tasks to standardized Detailed Work Activities.

Given this task description from a user:
"{task.description}"
{context}
Match this task to the most relevant activities from this list:
{_activity_lines(activities)}

Select 1-5 activities that best represent what this task involves. Consider:
1. The core activity being performed
2. The skills and knowledge required
3. The output or goal of the task

Relevance scores:
- 1.0: The activity directly describes the task
- 0.7-0.9: Strongly related, covers major aspects
- 0.4-0.6: Partially related, covers some aspects
- Below 0.4: Only tangentially related

Respond with ONLY valid JSON (no markdown, no code fences) in this exact structure:
{{
  "mappings": [
    {{"activity_id": "<id from the list>", "relevance": <0.0-1.0>}}
  ],
  "confidence": <0.0-1.0, how confident you are in this mapping>
}}"""


def build_batch_mapping_prompt(
    tasks: list[UserTask],
    activities: list[DetailedActivity],
    occupation_title: str | None = None,
) -> str:
    """Stage 2, batched: map several tasks in one request."""
    who = f" who works as a {occupation_title}" if occupation_title else ""
    task_list = "\n".join(
        f'{i}. "{t.description}" ({t.time_share:g}% of time)'
        for i, t in enumerate(tasks, start=1)
    )

    return f"""You are an expert at matching job tasks to standardized Detailed Work Activities.

Given these tasks from a user{who}:
{task_list}

Match each task to relevant activities from this list:
{_activity_lines(activities)}

For each task, select 1-5 activities that best represent what the task involves.

Respond with ONLY valid JSON (no markdown, no code fences) in this exact structure:
{{
  "task_mappings": [
    {{
      "task_index": <task number from the list above>,
      "mappings": [
        {{"activity_id": "<id from the list>", "relevance": <0.0-1.0>}}
      ],
      "confidence": <0.0-1.0>
    }}
  ]
}}"""
