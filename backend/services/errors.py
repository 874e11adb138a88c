"""Error taxonomy for the assessment pipeline.

Only pipeline-wide failures are raised to the caller. Per-task and
per-candidate problems (including SemanticInferenceFailure) are recovered
inside the stages and show up as lowered confidence instead.
"""


class AssessmentError(Exception):
    """Base class for all pipeline errors."""


class NoOccupationMatch(AssessmentError):
    def __init__(self, job_title: str) -> None:
        super().__init__(f"Could not determine an occupation for {job_title!r}")
        self.job_title = job_title


class EmptyOrInvalidTaskInput(AssessmentError):
    pass


class SemanticInferenceFailure(AssessmentError):
    """The semantic-matching collaborator timed out or returned garbage."""


class ReferenceDataUnavailable(AssessmentError):
    pass
