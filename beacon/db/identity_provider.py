#!/usr/bin/env python3
"""
Identity Provider

Maps a presented API key to the application it belongs to, and manages the
application records behind those keys (register, list, revoke, regenerate).
Only the SHA-256 hash of a key is ever stored.
"""

from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple

import structlog
from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from ..analytics.models import ApplicationIdentity, utcnow
from ..utils.auth_utils import generate_api_key, hash_api_key, key_preview
from .db_utils import handle_store_errors, session_scope
from .exceptions import ApplicationNotFoundError
from .models import Application

logger = structlog.get_logger(__name__)

DEFAULT_KEY_TTL_DAYS = 365


def _to_identity(app: Application) -> ApplicationIdentity:
    return ApplicationIdentity(
        application_id=app.id,
        name=app.name,
        active=bool(app.is_active),
        expires_at=app.expires_at,
    )


def application_to_dict(app: Application) -> Dict[str, Any]:
    return {
        "app_id": app.id,
        "app_name": app.name,
        "app_url": app.url,
        "email": app.email,
        "is_active": bool(app.is_active),
        "created_at": app.created_at.isoformat() if app.created_at else None,
        "expires_at": app.expires_at.isoformat() if app.expires_at else None,
    }


class SqlIdentityProvider:
    """Identity provider over the `applications` table."""

    def __init__(self, session_factory: sessionmaker, key_ttl_days: int = DEFAULT_KEY_TTL_DAYS):
        self.session_factory = session_factory
        self.key_ttl_days = key_ttl_days

    @handle_store_errors
    def resolve(self, presented_key: Optional[str]) -> Optional[ApplicationIdentity]:
        """
        Look up the application a key belongs to.

        Returns None for an empty or unknown key. Active/expiry status is
        reported, not enforced; the caller decides what to do with it.
        """
        if not presented_key:
            return None

        stmt = select(Application).where(Application.api_key_hash == hash_api_key(presented_key))
        with session_scope(self.session_factory) as session:
            app = session.scalars(stmt).first()
            if app is None:
                logger.debug("API key not recognized", key_preview=key_preview(presented_key))
                return None
            return _to_identity(app)

    @handle_store_errors
    def get_application(self, application_id: int) -> Optional[ApplicationIdentity]:
        with session_scope(self.session_factory) as session:
            app = session.get(Application, application_id)
            return _to_identity(app) if app is not None else None

    @handle_store_errors
    def register_application(self, name: str, url: str, email: str) -> Tuple[Dict[str, Any], str]:
        """
        Create an application and its first API key.

        Returns:
            (application dict, plaintext API key). The key is not retrievable later.
        """
        api_key = generate_api_key()
        now = utcnow()
        with session_scope(self.session_factory) as session:
            app = Application(
                name=name,
                url=url,
                email=email,
                api_key_hash=hash_api_key(api_key),
                is_active=True,
                created_at=now,
                updated_at=now,
                expires_at=now + timedelta(days=self.key_ttl_days),
            )
            session.add(app)
            session.commit()
            logger.info("Application registered", application_id=app.id, app_name=name)
            return application_to_dict(app), api_key

    @handle_store_errors
    def revoke_application(self, application_id: int) -> Dict[str, Any]:
        """Deactivate an application's key. Raises ApplicationNotFoundError if absent."""
        with session_scope(self.session_factory) as session:
            app = session.get(Application, application_id)
            if app is None:
                raise ApplicationNotFoundError(f"App {application_id} not found")
            app.is_active = False
            app.updated_at = utcnow()
            session.commit()
            logger.info("Application key revoked", application_id=application_id)
            return application_to_dict(app)

    @handle_store_errors
    def regenerate_key(self, application_id: int) -> Tuple[Dict[str, Any], str]:
        """Issue a new key, reactivate the application and restart its expiry window."""
        api_key = generate_api_key()
        now = utcnow()
        with session_scope(self.session_factory) as session:
            app = session.get(Application, application_id)
            if app is None:
                raise ApplicationNotFoundError(f"App {application_id} not found")
            app.api_key_hash = hash_api_key(api_key)
            app.is_active = True
            app.updated_at = now
            app.expires_at = now + timedelta(days=self.key_ttl_days)
            session.commit()
            logger.info("Application key regenerated", application_id=application_id)
            return application_to_dict(app), api_key

    @handle_store_errors
    def list_applications(self, email: str) -> List[Dict[str, Any]]:
        """Active applications registered under an email, oldest first. Keys are never included."""
        stmt = (
            select(Application)
            .where(Application.email == email, Application.is_active.is_(True))
            .order_by(Application.id)
        )
        with session_scope(self.session_factory) as session:
            return [application_to_dict(app) for app in session.scalars(stmt)]
