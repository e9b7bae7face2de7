from __future__ import annotations  # Re-export session report API

from .builder import build_learner_feedback, build_session_report, build_teacher_report
from .models import LearnerFeedback, SessionReport, TeacherReport

__all__ = [
    "LearnerFeedback",
    "SessionReport",
    "TeacherReport",
    "build_learner_feedback",
    "build_session_report",
    "build_teacher_report",
]
