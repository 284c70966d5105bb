# services/auth_service.py
"""
Authentication service for API users: registration and token login.
"""

import logging
import re
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from schoolbell.errors import DuplicateKey, InvalidCredentials, InvalidInput, StorageUnavailable
from schoolbell.extensions import db
from schoolbell.models.user import User

EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')


class AuthService:
    """Service class for authentication operations."""

    @staticmethod
    def register_user(name, email, password):
        logger = logging.getLogger('auth_service')

        if not name or not email or not password or not EMAIL_PATTERN.match(email):
            raise InvalidInput('Campos incompletos o email inválido')

        try:
            if db.session.query(User).filter_by(email=email).first():
                raise DuplicateKey('Usuario ya existe')

            user = User(name=name, email=email)
            user.set_password(password)
            user.save()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"Database error registering {email}: {str(e)}", exc_info=True)
            raise StorageUnavailable()

        logger.info(f"User registered: {email}")
        return user

    @staticmethod
    def authenticate_user(email, password):
        """
        Verify credentials and issue an access token.

        Returns:
            tuple: (token: str, user: User)
        """
        logger = logging.getLogger('auth_service')

        if not email or not password or not EMAIL_PATTERN.match(email):
            raise InvalidInput('Campos incompletos o email inválido')

        try:
            user = db.session.query(User).filter_by(email=email).first()
        except SQLAlchemyError as e:
            logger.error(f"Database error during login for {email}: {str(e)}", exc_info=True)
            raise StorageUnavailable()

        if not user or not user.check_password(password):
            logger.warning(f"Failed login attempt for: {email}")
            raise InvalidCredentials()

        return AuthService.issue_token(user), user

    @staticmethod
    def issue_token(user):
        now = datetime.now(timezone.utc)
        payload = {
            'id': user.id,
            'iat': now,
            'exp': now + timedelta(hours=current_app.config.get('JWT_EXPIRES_HOURS', 8)),
        }
        return jwt.encode(
            payload,
            current_app.config['JWT_SECRET'],
            algorithm=current_app.config.get('JWT_ALGORITHM', 'HS256')
        )
