"""Identity service - lookup and provisioning of login accounts"""
import bcrypt
import logging
import secrets
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from photovault.models.user import User, UserProfile

logger = logging.getLogger(__name__)

# No 0/O, 1/l/I: temp passwords get typed in from an email
TEMP_PASSWORD_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz23456789"
TEMP_PASSWORD_LENGTH = 16


class UserAlreadyExistsError(Exception):
    """Raised when an identity with the same email was created concurrently"""
    pass


def hash_password(password: str) -> str:
    """Hash a password using bcrypt"""
    salt = bcrypt.gensalt()
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against its hash"""
    if not password_hash or not password:
        return False
    return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))


def generate_temp_password(length: int = TEMP_PASSWORD_LENGTH) -> str:
    """Random password drawn only from the unambiguous alphabet"""
    return ''.join(secrets.choice(TEMP_PASSWORD_ALPHABET) for _ in range(length))


def find_user_by_email(db: Session, email: str) -> Optional[User]:
    """Case-insensitive identity lookup"""
    if not email:
        return None
    return db.query(User).filter(func.lower(User.email) == email.strip().lower()).first()


def get_user_email(db: Session, user_id: str) -> Optional[str]:
    user = db.query(User).filter(User.id == user_id).first()
    return user.email if user else None


def create_client_user(db: Session, email: str, password: str, full_name: str = "") -> User:
    """
    Create an auto-confirmed client identity.

    Raises:
        UserAlreadyExistsError: If the email was registered in the meantime
    """
    user = User(
        email=email.strip().lower(),
        password_hash=hash_password(password),
        email_confirmed=True,
        user_metadata={"full_name": full_name or "", "user_type": "client"},
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise UserAlreadyExistsError(f"User with email {email} already exists") from e
    db.refresh(user)
    logger.info(f"Created client account {user.id} for {user.email}")
    return user


def ensure_client_profile(db: Session, user_id: str, full_name: str = "") -> bool:
    """Create the client profile row. An existing row is fine, so failures only warn."""
    if db.query(UserProfile).filter(UserProfile.id == user_id).first():
        return False
    try:
        db.add(UserProfile(id=user_id, full_name=full_name or "", user_type="client"))
        db.commit()
        return True
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning(f"Error creating user profile for {user_id} (may already exist): {e}")
        return False
