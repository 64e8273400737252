import logging
from typing import Any

from fastapi import APIRouter, HTTPException
from sqlalchemy.exc import SQLAlchemyError

from talkmate import crud
from talkmate.api.deps import AudioStoreDep, CurrentUser, SessionDep, SupabaseDep
from talkmate.models import Message

router = APIRouter(prefix="/account", tags=["account"])
logger = logging.getLogger(__name__)


@router.post("/delete", response_model=Message)
def delete_account(
    session: SessionDep,
    current_user: CurrentUser,
    supabase: SupabaseDep,
    store: AudioStoreDep,
) -> Any:
    """
    Deletes the caller's account.

    Cached audio goes first, session by session. Storage failures are only
    logged so they never block the deletion. Then every row the user owns
    is removed, and last the auth account itself.
    """
    session_ids = crud.list_user_session_ids(session=session, user_id=current_user.id)
    swept = sum(store.sweep(str(session_id)) for session_id in session_ids)
    logger.info(
        "Removed %s audio objects across %s sessions for %s",
        swept,
        len(session_ids),
        current_user.id,
    )

    try:
        crud.delete_user_data(session=session, user_id=current_user.id)
    except SQLAlchemyError as e:
        session.rollback()
        logger.error("Deleting data for %s failed: %s", current_user.id, e)
        raise HTTPException(status_code=500, detail="DB_ERROR")

    try:
        supabase.auth.admin.delete_user(str(current_user.id))
    except Exception as e:
        logger.error("Deleting auth user %s failed: %s", current_user.id, e)
        raise HTTPException(status_code=500, detail="AUTH_DELETE_FAILED")

    return Message(message="Account deleted successfully")
