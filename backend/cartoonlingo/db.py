from __future__ import annotations
from sqlalchemy import create_engine, inspect
from sqlalchemy.orm import sessionmaker, declarative_base
from .settings import settings


DATABASE_URL = settings.database_url or "sqlite:///./cartoonlingo.db"

_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, connect_args=_connect_args, future=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)
Base = declarative_base()


def get_db():
	db = SessionLocal()
	try:
		yield db
	finally:
		db.close()


# Columns added to auth_users after the first release; (name, DDL)
_AUTH_USER_COLUMNS = (
	("email", "VARCHAR(256)"),
	("total_xp", "INTEGER DEFAULT 0 NOT NULL"),
	("streak", "INTEGER DEFAULT 0 NOT NULL"),
	("hearts", "INTEGER DEFAULT 5 NOT NULL"),
	("daily_goal", "INTEGER DEFAULT 15 NOT NULL"),
	("last_active_date", "VARCHAR(10)"),
)


# Best-effort lightweight migrations for development (SQLite-friendly)
def ensure_schema() -> None:
	inspector = inspect(engine)
	tables = set(inspector.get_table_names())
	if "auth_users" not in tables:
		return
	cols = {c["name"] for c in inspector.get_columns("auth_users")}
	with engine.begin() as conn:
		for name, ddl in _AUTH_USER_COLUMNS:
			if name not in cols:
				conn.exec_driver_sql(f"ALTER TABLE auth_users ADD COLUMN {name} {ddl}")
