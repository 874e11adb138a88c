from models.schemas.exposure import ScoredActivity, TaskExposureScore
from services.skill_tagger import MAX_TAGS, tag_skills


def _task(description, category, titles=()):
    score = {"low": 20.0, "medium": 45.0, "high": 80.0}[category]
    return TaskExposureScore(
        description=description,
        time_share=100.0,
        exposure_score=score,
        category=category,
        top_activities=[ScoredActivity(activity_id=t, title=t, score=score) for t in titles],
    )


def test_protected_only_from_low_tasks():
    protected, vulnerable = tag_skills([
        _task("Negotiate contracts with suppliers", "low"),
        _task("Negotiate shipping rates", "high"),
    ])
    assert protected == ["Negotiation & Persuasion"]
    assert vulnerable == []


def test_vulnerable_uses_activity_titles():
    protected, vulnerable = tag_skills([
        _task("Back office work", "high", titles=["Schedule appointments", "Transcribe meeting notes"]),
    ])
    assert protected == []
    assert vulnerable == ["Scheduling & Coordination", "Translation & Transcription"]


def test_medium_tasks_are_not_tagged():
    assert tag_skills([_task("Supervise data entry staff", "medium")]) == ([], [])


def test_tags_are_deduplicated_and_capped():
    tasks = [
        _task("Data entry, scheduling, research, reports", "high"),
        _task("Routine calculations, translation, filing", "high"),
        _task("More data entry", "high"),
    ]
    _, vulnerable = tag_skills(tasks)
    assert len(vulnerable) == MAX_TAGS
    assert len(set(vulnerable)) == len(vulnerable)
    assert vulnerable[0] == "Data Entry"
