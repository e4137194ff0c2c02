# =============================================
# File: app/db/repo.py
# Purpose: DB repository bootstrap: configure engine from DB_URL (default SQLite), create tables
#          and hand out sessions.
# =============================================

from sqlmodel import SQLModel, Session, create_engine
import os

from app.db import models  # noqa: F401  (register tables on SQLModel.metadata)

DB_URL = os.getenv("DB_URL", "sqlite:///./app.db")
_connect_args = {"check_same_thread": False} if DB_URL.startswith("sqlite") else {}
engine = create_engine(DB_URL, echo=False, connect_args=_connect_args)

def init_db(bind=None):
    SQLModel.metadata.create_all(bind or engine)

def get_session():
    with Session(engine) as session:
        yield session
