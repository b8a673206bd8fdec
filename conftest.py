"""
Shared pytest fixtures for CookPlan.

Tests run against an in-memory SQLite database and scripted planners, so no
PostgreSQL server or OpenAI key is needed.
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from CookPlan.ai_planner import Recalculator, ScalingReviewer, TaskGenerator
from CookPlan.database import Base, SessionLocal, engine, get_db
from CookPlan.models import Task
from CookPlan.routers.base import (
    get_clock, get_recalculator, get_scaling_reviewer, get_task_generator,
)
from CookPlan.schemas.meal import MealCreate
from CookPlan.services.meal_service import MealService

SERVE_TIME = datetime(2026, 11, 26, 18, 0, tzinfo=timezone.utc)

# Generator output for a two-recipe dinner; the pie bakes while the turkey roasts
THANKSGIVING_TASKS = [
    {"recipeId": "turkey", "title": "Brine turkey", "startTimeMinutes": -300, "durationMinutes": 30},
    {"recipeId": "turkey", "title": "Roast turkey", "startTimeMinutes": -240, "durationMinutes": 180,
     "requiresOven": True, "ovenTemp": 350, "dependsOn": ["task-1"]},
    {"recipeId": "Pumpkin pie", "title": "Bake pie", "startTimeMinutes": -180, "durationMinutes": 60,
     "requiresOven": True, "ovenTemp": 425},
    {"recipeId": "turkey", "title": "Rest and carve", "startTimeMinutes": -45, "durationMinutes": 30,
     "dependsOn": ["task-2"]},
]


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class ScriptedGenerator(TaskGenerator):
    def __init__(self, tasks=None, error=None):
        self.tasks = THANKSGIVING_TASKS if tasks is None else tasks
        self.error = error
        self.calls = []

    def generate_tasks(self, meal):
        self.calls.append(meal.id)
        if self.error is not None:
            raise self.error
        return [dict(t) for t in self.tasks]


class ScriptedRecalculator(Recalculator):
    """Replies are either dicts or callables taking the timeline."""

    def __init__(self, reply=None, error=None):
        self.reply = reply
        self.error = error
        self.calls = []

    def suggest_recalculation(self, timeline, current_time, context=None, serve_time=None):
        self.calls.append((timeline.id, current_time, context))
        if self.error is not None:
            raise self.error
        return self.reply(timeline) if callable(self.reply) else self.reply


class ScriptedReviewer(ScalingReviewer):
    def __init__(self, notes="", error=None):
        self.notes = notes
        self.error = error
        self.calls = []

    def review_scaling(self, recipe, scaling):
        self.calls.append(recipe.recipe_id)
        if self.error is not None:
            raise self.error
        return self.notes


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def clock():
    return FakeClock(SERVE_TIME - timedelta(hours=5))


@pytest.fixture
def generator():
    return ScriptedGenerator()


@pytest.fixture
def recalculator():
    return ScriptedRecalculator()


@pytest.fixture
def reviewer():
    return ScriptedReviewer()


@pytest.fixture
def meal(db):
    return MealService(db).create_meal(MealCreate(
        name="Thanksgiving dinner",
        serve_time=SERVE_TIME,
        guest_count=8,
        recipes=[
            {"recipe_id": "turkey", "name": "Roast turkey", "serving_size": 8},
            {"recipe_id": "pie", "name": "Pumpkin pie", "serving_size": 8},
        ],
    ))


@pytest.fixture
def make_task():
    def _make(task_id, start, duration, **kwargs):
        kwargs.setdefault("meal_id", "meal-1")
        kwargs.setdefault("recipe_id", "recipe-1")
        kwargs.setdefault("title", task_id.replace("-", " ").title())
        return Task(id=task_id, start_time_minutes=start, duration_minutes=duration, **kwargs)
    return _make


@pytest.fixture
def client(db, clock, generator, recalculator, reviewer):
    from api import app

    def override_db():
        yield db

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_task_generator] = lambda: generator
    app.dependency_overrides[get_recalculator] = lambda: recalculator
    app.dependency_overrides[get_scaling_reviewer] = lambda: reviewer
    app.dependency_overrides[get_clock] = lambda: clock
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def titles(tasks):
    return [t.title for t in tasks]


def by_title(tasks, title):
    return next(t for t in tasks if t.title == title)

