import logging
import os
from typing import Optional

import firebase_admin
from dotenv import load_dotenv
from fastapi import Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from firebase_admin import auth as firebase_auth
from firebase_admin import credentials
from firebase_admin.exceptions import FirebaseError
from pydantic import BaseModel

from .exceptions import AuthenticationError, InvalidTokenError

load_dotenv()
logger = logging.getLogger(__name__)

FIREBASE_CREDENTIALS = os.getenv("FIREBASE_CREDENTIALS")

bearer_scheme = HTTPBearer(auto_error=False)


class CurrentUser(BaseModel):
    uid: str
    email: Optional[str] = None
    name: Optional[str] = None
    picture: Optional[str] = None


class FirebaseTokenVerifier:
    """Verifies Firebase ID tokens with the Admin SDK."""

    def __init__(self, app: Optional[firebase_admin.App] = None):
        self.app = app

    async def verify(self, token: str) -> dict:
        try:
            return await run_in_threadpool(
                firebase_auth.verify_id_token, token, app=self.app
            )
        except (ValueError, FirebaseError) as e:
            logger.warning(f"Token verification error: {e}")
            raise InvalidTokenError()


def init_firebase() -> FirebaseTokenVerifier:
    if FIREBASE_CREDENTIALS:
        cred = credentials.Certificate(FIREBASE_CREDENTIALS)
    else:
        cred = credentials.ApplicationDefault()
    try:
        app = firebase_admin.get_app()
    except ValueError:
        app = firebase_admin.initialize_app(cred)
    logger.info("Firebase Admin initialised")
    return FirebaseTokenVerifier(app)


def get_token_verifier(request: Request) -> FirebaseTokenVerifier:
    return request.app.state.token_verifier


async def get_current_user(
    auth_credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    verifier: FirebaseTokenVerifier = Depends(get_token_verifier),
) -> CurrentUser:
    if auth_credentials is None or not auth_credentials.credentials:
        raise AuthenticationError()

    decoded = await verifier.verify(auth_credentials.credentials)
    return CurrentUser(
        uid=decoded.get("uid") or decoded.get("sub", ""),
        email=decoded.get("email"),
        name=decoded.get("name"),
        picture=decoded.get("picture"),
    )
