"""Database URL resolution utilities."""
from pathlib import Path


def resolve_db_url(db_url: str) -> str:
    """
    Resolve relative SQLite URLs (sqlite:///./dev.db) to an absolute path
    under the project root. Non-sqlite URLs are returned unchanged.
    """
    if not db_url.startswith("sqlite"):
        return db_url

    if ":///./" in db_url:
        prefix, relative_path = db_url.split(":///./", 1)
        project_root = Path(__file__).resolve().parent.parent.parent
        absolute_path = (project_root / relative_path).resolve()
        return f"{prefix}:///{absolute_path.as_posix()}"

    return db_url
