from fastapi import APIRouter

from . import auth, conversations, diagnoses, farmers, messages, profile

router = APIRouter(prefix="/api")
router.include_router(auth.router)
router.include_router(profile.router)
router.include_router(farmers.router)
router.include_router(conversations.router)
router.include_router(messages.router)
# diagnosis upload, sharing and community feed
router.include_router(diagnoses.router)
