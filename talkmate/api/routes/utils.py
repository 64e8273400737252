from fastapi import APIRouter
from sqlmodel import select

from talkmate.api.deps import SessionDep

router = APIRouter(prefix="/utils", tags=["utils"])


@router.get("/health-check/")
def health_check(session: SessionDep) -> bool:
    """Answers once the database round-trips a trivial query."""
    session.exec(select(1)).one()
    return True
