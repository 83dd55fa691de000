from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from config import settings


engine = create_engine(
    settings.DATABASE_URL,
    connect_args={"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {},
    echo=False,
)


# Enable WAL mode for better concurrent read performance
@event.listens_for(engine, "connect")
def set_sqlite_pragma(dbapi_connection, connection_record):
    if not settings.DATABASE_URL.startswith("sqlite"):
        return
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class Base(DeclarativeBase):
    pass


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def run_startup_migrations() -> None:
    """Apply lightweight schema fixes for existing SQLite databases."""
    inspector = inspect(engine)

    def _table_columns(table_name: str) -> set[str]:
        try:
            return {col["name"] for col in inspector.get_columns(table_name)}
        except Exception:
            return set()

    habit_columns = _table_columns("habits")
    category_columns = _table_columns("categories")
    if not habit_columns and not category_columns:
        # Tables may not exist yet on first boot.
        return

    alter_statements: list[str] = []
    if habit_columns:
        if "priority" not in habit_columns:
            alter_statements.append("ALTER TABLE habits ADD COLUMN priority INTEGER")
        if "monthly_target" not in habit_columns:
            alter_statements.append("ALTER TABLE habits ADD COLUMN monthly_target INTEGER")
        if "parent_habit_id" not in habit_columns:
            alter_statements.append("ALTER TABLE habits ADD COLUMN parent_habit_id INTEGER")
    if category_columns:
        if "icon_color" not in category_columns:
            alter_statements.append("ALTER TABLE categories ADD COLUMN icon_color TEXT")

    with engine.begin() as conn:
        for stmt in alter_statements:
            conn.execute(text(stmt))

        if habit_columns:
            conn.execute(text("UPDATE habits SET is_deleted = COALESCE(is_deleted, 0)"))
            conn.execute(text("CREATE INDEX IF NOT EXISTS idx_habits_parent ON habits (parent_habit_id)"))
        if category_columns:
            conn.execute(text("UPDATE categories SET is_deleted = COALESCE(is_deleted, 0)"))
