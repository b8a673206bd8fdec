#!/usr/bin/env python3
"""
Main entry point for the CookPlan system.
Contains an example cooking session that exercises generation, validation,
live checkoff with undo, and the behind-schedule push-back.

Run:
    python main.py

Uses the configured DATABASE_URL; set DATABASE_URL=sqlite:// to try it
without PostgreSQL. No language model is needed: tasks come from a
scripted generator.
"""

import pprint
from datetime import timedelta

from CookPlan.ai_planner import TaskGenerator
from CookPlan.database import SessionLocal, init_db
from CookPlan.grouping import group_tasks
from CookPlan.schemas.meal import MealCreate
from CookPlan.services.execution_service import ExecutionService
from CookPlan.services.meal_service import MealService
from CookPlan.services.recalculation_service import RecalculationService
from CookPlan.services.timeline_service import TimelineService
from CookPlan.utils_time import format_relative_time, utc_now


class ScriptedGenerator(TaskGenerator):
    """Returns a fixed Thanksgiving plan, including one oven clash."""

    def generate_tasks(self, meal):
        turkey, pie = meal.recipes[0].recipe_id, meal.recipes[1].recipe_id
        return [
            {"recipeId": turkey, "title": "Brine turkey", "startTimeMinutes": -300, "durationMinutes": 30},
            {"recipeId": turkey, "title": "Roast turkey", "startTimeMinutes": -240, "durationMinutes": 180,
             "requiresOven": True, "ovenTemp": 350, "dependsOn": ["task-1"]},
            {"recipeId": pie, "title": "Bake pie", "startTimeMinutes": -180, "durationMinutes": 60,
             "requiresOven": True, "ovenTemp": 425},
            {"recipeId": turkey, "title": "Rest and carve", "startTimeMinutes": -45, "durationMinutes": 30,
             "dependsOn": ["task-2"]},
        ]


def example_run():
    init_db()
    db_session = SessionLocal()
    clock_now = utc_now()
    clock = lambda: clock_now

    meal = MealService(db_session).create_meal(MealCreate(
        name="Thanksgiving dinner",
        serve_time=clock_now + timedelta(hours=5),
        guest_count=8,
        recipes=[
            {"recipe_id": "turkey", "name": "Roast turkey", "serving_size": 8},
            {"recipe_id": "pie", "name": "Pumpkin pie", "serving_size": 8},
        ],
    ))

    timeline = TimelineService(db_session, ScriptedGenerator()).generate(meal)
    print("\n=== Generated timeline ===")
    for task in timeline.tasks:
        print(f"  {format_relative_time(task.start_time_minutes):>22}  {task.title}")
    print("\nConflicts:")
    pprint.pprint([c.to_dict() for c in timeline.conflicts])

    execution = ExecutionService(db_session, clock)
    timeline = execution.start(meal.id)
    current = timeline.current_task()
    print(f"\nCooking started. Current task: {current.title}")

    timeline, undo = execution.checkoff(meal.id, current.id)
    print(f"Checked off '{current.title}', undo until {undo.expires_at.isoformat()}")
    timeline = execution.undo(meal.id, current.id, undo.previous_status)
    print(f"Undone. Current task is back to: {timeline.current_task().title}")

    timeline = RecalculationService(db_session).shift_pending(meal.id)
    print("\n=== After pushing everything back 15 min ===")
    groups = group_tasks(timeline.tasks, current_task_id=timeline.current_task_id)
    pprint.pprint({k: [t["title"] for t in v] for k, v in groups.to_dict().items()})

    execution.end(meal.id)
    db_session.close()


if __name__ == '__main__':
    example_run()
