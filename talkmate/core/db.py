from sqlmodel import Session, SQLModel, create_engine

from talkmate.core.config import settings

engine = create_engine(settings.SQLALCHEMY_DATABASE_URI, pool_pre_ping=True)


def init_db(session: Session) -> None:
    # Only creates missing tables; existing ones are left untouched.
    from talkmate import models  # noqa: F401

    SQLModel.metadata.create_all(session.get_bind())
