"""
SQLAlchemy database setup and ORM models for CookPlan.
"""

import sqlalchemy as sa
from sqlalchemy import (
    create_engine, Column, String, Integer, Float, Boolean, DateTime, Text, ForeignKey, JSON
)
from sqlalchemy.orm import declarative_base, sessionmaker, relationship
from sqlalchemy.pool import StaticPool

from CookPlan.config import DATABASE_URL


def make_engine(url: str = DATABASE_URL):
    if url.startswith("sqlite"):
        # One shared in-process connection so :memory: survives across sessions
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(
        url,
        pool_pre_ping=True,      # Checks connection before use, auto-reconnects
        pool_size=10,            # Number of connections to keep in pool
        max_overflow=20,         # Extra connections allowed above pool_size
        pool_recycle=1800        # Recycle connections every 30 min
    )


engine = make_engine()
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


# Tables
class Meal(Base):
    __tablename__ = "meals"
    meal_id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    serve_time = Column(DateTime(timezone=True))
    guest_count = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True))
    updated_at = Column(DateTime(timezone=True))
    recipes = relationship(
        "MealRecipe", back_populates="meal",
        cascade="all, delete-orphan", order_by="MealRecipe.position"
    )
    timeline = relationship(
        "Timeline", back_populates="meal", uselist=False, cascade="all, delete-orphan"
    )


class MealRecipe(Base):
    __tablename__ = "meal_recipes"
    meal_recipe_id = Column(String, primary_key=True)
    meal_id = Column(String, ForeignKey("meals.meal_id", ondelete="CASCADE"), nullable=False)
    recipe_id = Column(String, nullable=False)
    name = Column(String, nullable=False)
    position = Column(Integer, default=0)
    serving_size = Column(Integer, nullable=False, default=1)
    target_servings = Column(Integer, nullable=False, default=1)
    scale_multiplier = Column(Float, default=1.0)
    review_notes = Column(Text)
    prep_time_minutes = Column(Integer)
    cook_time_minutes = Column(Integer)
    ingredients = Column(JSON, default=list)
    instructions = Column(JSON, default=list)
    meal = relationship("Meal", back_populates="recipes")


class Timeline(Base):
    __tablename__ = "timelines"
    timeline_id = Column(String, primary_key=True)
    meal_id = Column(String, ForeignKey("meals.meal_id", ondelete="CASCADE"), nullable=False, unique=True)
    has_conflicts = Column(Boolean, default=False)
    conflicts = Column(JSON, default=list)
    is_running = Column(Boolean, default=False)
    started_at = Column(DateTime(timezone=True))
    ended_at = Column(DateTime(timezone=True))
    current_task_id = Column(String)
    created_at = Column(DateTime(timezone=True))
    updated_at = Column(DateTime(timezone=True))
    meal = relationship("Meal", back_populates="timeline")
    tasks = relationship(
        "TimelineTask", back_populates="timeline",
        cascade="all, delete-orphan", order_by="TimelineTask.sort_order"
    )


class TimelineTask(Base):
    __tablename__ = "timeline_tasks"
    __table_args__ = (
        sa.Index("ix_timeline_tasks_timeline_sort", "timeline_id", "sort_order"),
    )
    # Task ids are only unique within their timeline
    timeline_id = Column(
        String, ForeignKey("timelines.timeline_id", ondelete="CASCADE"), primary_key=True
    )
    task_id = Column(String, primary_key=True)
    meal_id = Column(String, nullable=False)
    recipe_id = Column(String, nullable=False)
    instruction_id = Column(String)
    title = Column(String, nullable=False)
    description = Column(Text)
    start_time_minutes = Column(Integer, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    end_time_minutes = Column(Integer, nullable=False)
    requires_oven = Column(Boolean, default=False)
    oven_temp = Column(Integer)
    depends_on = Column(JSON, default=list)
    status = Column(String, nullable=False, default="pending")
    completed_at = Column(DateTime(timezone=True))
    notes = Column(Text)
    is_valid = Column(Boolean, default=True)
    validation_errors = Column(JSON, default=list)
    sort_order = Column(Integer, nullable=False, default=0)
    timeline = relationship("Timeline", back_populates="tasks")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind=None):
    Base.metadata.create_all(bind=bind or engine)
