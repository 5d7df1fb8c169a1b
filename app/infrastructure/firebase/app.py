import logging

import firebase_admin
from firebase_admin import credentials

from ...core.config import settings

logger = logging.getLogger(__name__)


def get_firebase_app() -> "firebase_admin.App":
    """Return the default Firebase app, initializing it from settings on first use."""
    try:
        return firebase_admin.get_app()
    except ValueError:
        pass

    if not settings.FIREBASE_CLIENT_EMAIL or not settings.FIREBASE_PRIVATE_KEY or not settings.FIREBASE_PROJECT_ID:
        raise RuntimeError("Firebase credentials are not configured")
    cred = credentials.Certificate({
        "type": "service_account",
        "project_id": settings.FIREBASE_PROJECT_ID,
        "private_key": settings.FIREBASE_PRIVATE_KEY,
        "client_email": settings.FIREBASE_CLIENT_EMAIL,
        "token_uri": "https://oauth2.googleapis.com/token",
    })
    app = firebase_admin.initialize_app(cred, {"projectId": settings.FIREBASE_PROJECT_ID})
    logger.info("Firebase app initialized")
    return app
