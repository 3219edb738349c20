# Overview: Service-layer operations for auth; password hashing, user creation and credential checks.

"""
Authentication Service

WHY: Every sale, purchase and status change must be attributable to a
person. Uses bcrypt for password hashing and validates password strength.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters required
- Must contain uppercase, lowercase, digit, and special char
- Session tokens managed separately (see session_service.py)
- Authentication fails for deactivated users and deactivated businesses
"""

import re

import bcrypt

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Business, User
from billing.time_utils import utcnow


BCRYPT_ROUNDS = 12


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character (!@#$%^&*(),.'":{}|<>)
    """
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """Validate strength, then hash with bcrypt."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """
    Timing-safe via bcrypt.checkpw(). A malformed stored hash counts as a
    mismatch rather than an error.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_business(name: str, *, gstin: str | None = None, address: str | None = None, phone: str | None = None) -> Business:
    business = Business(name=name, gstin=gstin, address=address, phone=phone, is_active=True)
    db.session.add(business)
    db.session.commit()
    return business


def create_user(
    username: str,
    email: str,
    password: str,
    business_id: int,
    display_name: str | None = None,
) -> User:
    """
    Create a user of an existing, active business.

    Raises:
        NotFoundError: business does not exist
        ValidationError: business inactive, or weak password
        ConflictError: username or email already taken
    """
    business = db.session.get(Business, business_id)
    if not business:
        raise NotFoundError("Business not found", details={"business_id": business_id})
    if not business.is_active:
        raise ValidationError("Business is not active")

    existing = db.session.query(User).filter(
        db.or_(User.username == username, User.email == email)
    ).first()
    if existing:
        raise ConflictError("Username or email already exists")

    user = User(
        business_id=business_id,
        username=username,
        email=email,
        display_name=display_name,
        password_hash=hash_password(password),
    )

    db.session.add(user)
    db.session.commit()
    return user


def authenticate(username: str, password: str) -> User | None:
    """
    Authenticate by username or email.

    Returns the User (and stamps last_login_at) when the credentials are
    valid and both the user and the business are active, None otherwise.
    """
    user = db.session.query(User).filter(
        db.or_(User.username == username, User.email == username),
        User.is_active.is_(True),
    ).first()

    if not user:
        return None

    business = db.session.get(Business, user.business_id)
    if not business or not business.is_active:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None
