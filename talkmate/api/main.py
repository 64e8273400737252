from fastapi import APIRouter

from talkmate.api.routes import account, chat, details, learning, profile, sessions, tts, utils

api_router = APIRouter()
api_router.include_router(chat.router, tags=["chat"])
api_router.include_router(details.router, tags=["details"])
api_router.include_router(tts.router, tags=["tts"])
api_router.include_router(sessions.router)
api_router.include_router(learning.router)
api_router.include_router(profile.router)
api_router.include_router(account.router)
api_router.include_router(utils.router)
