import copy
import os
import sys
import tempfile
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from config.registry import unbind_provider, provider_key
from config.settings import settings
from delivery.controller import SessionController
from ecd.configs import POLICY_TYPES
from observability import clear_recent
from storage.migrate import migrate
from storage.seed import seed_store
from storage.store import memory_store


REFERENCE = {
    "competencies": [
        {"id": "comp1", "name": "Number Sense"},
        {"id": "comp2", "name": "Written Reasoning", "parentId": "comp1"},
    ],
    "evidenceModels": [
        {
            "id": "em1",
            "name": "Fractions",
            "evidences": [{"id": "ev1", "name": "Selected answers"}, {"id": "ev2", "name": "Explanations"}],
            "constructs": [
                {"id": "c1", "name": "Compare fractions", "linkedCompetencyId": "comp1", "evidenceId": "ev1"},
                {"id": "c2", "name": "Explain reasoning", "linkedCompetencyId": "comp2", "evidenceId": "ev2"},
            ],
            "observations": [
                {"id": "o1", "constructId": "c1", "linkedQuestionIds": ["q1", "q2"]},
                {"id": "o2", "constructId": "c2", "linkedQuestionIds": ["q3"], "scoring": {"method": "rubric"}},
                {"id": "o3", "constructId": "c1", "linkedQuestionIds": ["q4"], "scoring": {"method": "partial"}},
            ],
            "rubrics": [
                {
                    "id": "r1",
                    "observationId": "o2",
                    "criteria": [
                        {
                            "name": "Clarity",
                            "levels": [
                                {"name": "Low", "descriptor": "Unclear", "score": 1},
                                {"name": "High", "descriptor": "Clear and complete", "score": 3},
                            ],
                        }
                    ],
                }
            ],
            "measurementModel": {"type": "average"},
        }
    ],
    "taskModels": [
        {
            "id": "tm1",
            "name": "Fraction MCQ",
            "evidenceModelIds": ["em1"],
            "expectedObservations": [{"observationId": "o1", "evidenceId": "ev1"}],
        },
        {
            "id": "tm2",
            "name": "Explain your answer",
            "evidenceModelIds": ["em1"],
            "expectedObservations": [{"observationId": "o2", "evidenceId": "ev2"}],
            "itemMappings": [{"itemId": "q3", "observationId": "o2", "evidenceId": "ev2"}],
        },
        {
            "id": "tm3",
            "name": "Select all",
            "evidenceModelIds": ["em1"],
            "expectedObservations": [{"observationId": "o3", "evidenceId": "ev1"}],
        },
    ],
    "questions": [
        {"id": "q1", "stem": "Which is larger?", "type": "mcq", "options": [{"id": "A"}, {"id": "B"}], "correctOptionId": "A"},
        {"id": "q2", "stem": "Which is smaller?", "type": "mcq", "options": [{"id": "A"}, {"id": "B"}], "correctOptionId": "A"},
        {"id": "q3", "stem": "Explain why 1/2 > 1/3.", "type": "rubric"},
        {"id": "q4", "stem": "Select all equivalent fractions.", "type": "msq", "correctOptionIds": ["A", "C"]},
        {"id": "q5", "stem": "Describe a fraction in your own words.", "type": "open"},
        {"id": "q6", "stem": "6 x 7 = ?", "type": "numeric", "metadata": {"answer": 42, "tolerance": 0.5}},
    ],
    "tasks": [
        {"id": "t1", "taskModelId": "tm1", "questionId": "q1", "title": "Compare"},
        {"id": "t2", "taskModelId": "tm1", "questionId": "q2", "title": "Compare again"},
        {"id": "t3", "taskModelId": "tm2", "questionId": "q3", "title": "Explain"},
        {"id": "t4", "taskModelId": "tm3", "questionId": "q4", "title": "Equivalents"},
        {"id": "t5", "questionId": "q5", "title": "Free response"},
        {"id": "t6", "questionId": "q6", "title": "Arithmetic"},
    ],
    "policies": [
        {"id": "p-irt", "name": "IRT adaptive", "type": "IRT", "config": {"model": "2PL", "thetaStart": 0}},
        {"id": "p-bn", "name": "BN adaptive", "type": "BayesianNetwork", "config": {"targetNodes": ["comp1"]}},
    ],
}


@pytest.fixture(autouse=True)
def tmp_db(monkeypatch):
    td = tempfile.TemporaryDirectory()
    db_path = os.path.join(td.name, "test.db")
    monkeypatch.setattr(settings, "DB_PATH", db_path, raising=False)
    migrate(db_path)
    try:
        yield db_path
    finally:
        td.cleanup()


@pytest.fixture(autouse=True)
def reset_providers():
    clear_recent()
    yield
    for policy_type in POLICY_TYPES:
        unbind_provider(provider_key(policy_type))


@pytest.fixture
def reference():
    return copy.deepcopy(REFERENCE)


@pytest.fixture
def store(reference):
    seeded = memory_store()
    seed_store(seeded, reference)
    return seeded


@pytest.fixture
def controller(store):
    return SessionController(store, auto_finish_on_read=True)
