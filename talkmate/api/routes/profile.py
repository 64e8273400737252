import logging
from typing import Any

from fastapi import APIRouter, HTTPException
from sqlalchemy.exc import SQLAlchemyError

from talkmate import crud
from talkmate.api.deps import CurrentUser, SessionDep
from talkmate.core.consent import (
    COLLECTION_VERSION,
    PRIVACY_VERSION,
    TERMS_VERSION,
    is_consent_accepted,
)
from talkmate.core.plans import DEFAULT_PLAN, normalize_plan
from talkmate.models import (
    AuthUserPublic,
    ConsentStatus,
    LaunchRequestIn,
    LaunchRequestResult,
    ProfilePublic,
    ProfileResponse,
    UserConsent,
)

router = APIRouter(tags=["profile"])
logger = logging.getLogger(__name__)


def _consent_status(consent: UserConsent | None) -> ConsentStatus:
    return ConsentStatus(
        accepted=is_consent_accepted(consent),
        terms_version=TERMS_VERSION,
        privacy_version=PRIVACY_VERSION,
        collection_version=COLLECTION_VERSION,
        accepted_at=consent.accepted_at if consent else None,
    )


@router.get("/profile", response_model=ProfileResponse)
def read_profile(session: SessionDep, current_user: CurrentUser) -> Any:
    """
    The caller's profile. The row is created by a signup trigger and may lag
    behind the first login, so a missing row is reported with safe defaults.
    """
    profile = crud.get_profile(session=session, user_id=current_user.id)
    if profile is not None:
        nickname = profile.nickname
        plan = normalize_plan(profile.plan)
        tts_enabled = profile.tts_enabled
    else:
        nickname = None
        plan = DEFAULT_PLAN
        tts_enabled = False
    if not nickname:
        nickname = current_user.user_metadata.get("name") or current_user.email

    return ProfileResponse(
        user=AuthUserPublic(id=current_user.id, email=current_user.email),
        profile=ProfilePublic(nickname=nickname, plan=plan, tts_enabled=tts_enabled),
        tts_enabled=tts_enabled,
    )


@router.get("/profile/consent", response_model=ConsentStatus)
def read_consent(session: SessionDep, current_user: CurrentUser) -> Any:
    return _consent_status(crud.get_consent(session=session, user_id=current_user.id))


@router.post("/profile/consent", response_model=ConsentStatus)
def accept_consent(session: SessionDep, current_user: CurrentUser) -> Any:
    """Records acceptance of the current terms, privacy and collection notices."""
    consent = crud.record_consent(session=session, user_id=current_user.id)
    logger.info("User %s accepted terms %s", current_user.id, consent.terms_version)
    return _consent_status(consent)


@router.post("/launch-request", response_model=LaunchRequestResult)
def request_launch(
    *, session: SessionDep, current_user: CurrentUser, request_in: LaunchRequestIn
) -> Any:
    """Signs the caller up to hear about the paid plan. Asking twice is harmless."""
    if not current_user.email:
        raise HTTPException(status_code=400, detail="NO_EMAIL")
    if not request_in.consent:
        raise HTTPException(status_code=400, detail="CONSENT_REQUIRED")

    try:
        stored = crud.mark_launch_request(
            session=session, user_id=current_user.id, email=current_user.email
        )
    except SQLAlchemyError as e:
        session.rollback()
        logger.error("Launch request for %s failed: %s", current_user.id, e)
        raise HTTPException(status_code=500, detail="DB_ERROR")
    return LaunchRequestResult(already_requested=not stored, feature=request_in.feature)
