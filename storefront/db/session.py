from contextlib import contextmanager
import os
from pathlib import Path
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///data/app.db")

_default_factory = None


def make_engine(database_url: str, **kwargs) -> Engine:
    # Ensure sqlite file parent directory exists to avoid 'unable to open database file'
    if database_url.startswith("sqlite:///") and ":memory:" not in database_url:
        db_path = database_url.split("sqlite:///")[-1]
        Path(db_path).expanduser().resolve().parent.mkdir(parents=True, exist_ok=True)
    return create_engine(database_url, future=True, **kwargs)


def make_session_factory(engine: Engine):
    """Return a ``get_session``-style context manager bound to ``engine``."""
    session_local = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, future=True)

    @contextmanager
    def session_scope():
        session = session_local()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    return session_scope


def init_db(engine: Engine) -> None:
    from ..models import Base

    Base.metadata.create_all(engine)


@contextmanager
def get_session():
    global _default_factory
    if _default_factory is None:
        _default_factory = make_session_factory(make_engine(DATABASE_URL))
    with _default_factory() as session:
        yield session
