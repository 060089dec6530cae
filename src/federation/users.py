"""
User accounts: registration, login, profile editing, role management and
password reset tokens.
"""
import logging
import re

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from werkzeug.security import check_password_hash, generate_password_hash

from federation.errors import NotFound, PermissionDenied, ValidationError
from federation.models import Role
from federation.roles import SELF_SERVICE_ROLES, is_admin
from federation.store import now_iso

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r'^\S+@\S+\.\S+$')
MIN_PASSWORD_LENGTH = 8
RESET_TOKEN_MAX_AGE = 3600
RESET_SALT = 'fsp-password-reset'


def normalize_email(email: str) -> str:
    return (email or '').strip().lower()


def find_user_by_email(store, email: str):
    email = normalize_email(email)
    return next((u for u in store.load('users') if u.get('email') == email), None)


def create_user(store, email: str, password: str, full_name: str, region_id,
                role: str = Role.ATHLETE, bio: str = '', admin_emails=()) -> tuple:
    """Create a new user. Returns (success, message)."""
    email = normalize_email(email)
    full_name = (full_name or '').strip()
    if not full_name:
        return False, 'Enter your full name.'
    if not EMAIL_RE.match(email):
        return False, 'Enter a valid e-mail address.'
    if len(password or '') < MIN_PASSWORD_LENGTH:
        return False, f'Password must be at least {MIN_PASSWORD_LENGTH} characters.'
    if region_id is None or store.get('regions', region_id) is None:
        return False, 'Select your region.'
    if role not in Role.ALL:
        return False, 'Unknown role.'
    if role not in SELF_SERVICE_ROLES and email not in {normalize_email(e) for e in admin_emails}:
        return False, 'This role cannot be chosen at registration.'

    with store.transaction():
        if find_user_by_email(store, email):
            return False, 'An account with this e-mail already exists.'
        user = store.insert('users', {
            'email': email,
            'full_name': full_name,
            'password_hash': generate_password_hash(password),
            'role': role,
            'region_id': region_id,
            'bio': (bio or '').strip(),
            'created_at': now_iso(),
        })
    logger.info(f'Registered user {user["id"]} ({email}) as {role}')
    return True, 'Account created successfully.'


def authenticate_user(store, email: str, password: str):
    """Return the user row for valid credentials, otherwise None."""
    user = find_user_by_email(store, email)
    if user and check_password_hash(user.get('password_hash', ''), password or ''):
        return user
    return None


def update_profile(store, user_id, full_name: str, bio: str):
    full_name = (full_name or '').strip()
    if not full_name:
        raise ValidationError('Full name cannot be empty.')
    user = store.update('users', user_id, full_name=full_name, bio=(bio or '').strip())
    if user is None:
        raise NotFound('User not found.')
    return user


def set_role(store, admin, user_id, role: str, region_id=None):
    """Change another user's role and region (admins only)."""
    if not is_admin(admin):
        raise PermissionDenied('Only FSP administrators can change roles.')
    if role not in Role.ALL:
        raise ValidationError('Unknown role.')
    if region_id is not None and store.get('regions', region_id) is None:
        raise ValidationError('Unknown region.')
    if user_id == admin['id'] and role != Role.FSP_ADMIN:
        raise ValidationError('You cannot remove your own administrator role.')
    changes = {'role': role}
    if region_id is not None:
        changes['region_id'] = region_id
    user = store.update('users', user_id, **changes)
    if user is None:
        raise NotFound('User not found.')
    logger.info(f'User {user_id} role set to {role} by {admin["id"]}')
    return user


def _serializer(secret_key):
    return URLSafeTimedSerializer(secret_key, salt=RESET_SALT)


def _password_fingerprint(user) -> str:
    # Ties a token to the current password so it stops working once used.
    return user.get('password_hash', '')[-12:]


def make_reset_token(store, secret_key, email: str):
    """Return a signed reset token for the account, or None if unknown."""
    user = find_user_by_email(store, email)
    if user is None:
        return None
    return _serializer(secret_key).dumps({'uid': user['id'], 'fp': _password_fingerprint(user)})


def reset_password(store, secret_key, token: str, password: str) -> tuple:
    """Set a new password from a reset token. Returns (success, message)."""
    try:
        payload = _serializer(secret_key).loads(token, max_age=RESET_TOKEN_MAX_AGE)
    except SignatureExpired:
        return False, 'The reset link has expired.'
    except BadSignature:
        return False, 'The reset link is invalid.'
    if len(password or '') < MIN_PASSWORD_LENGTH:
        return False, f'Password must be at least {MIN_PASSWORD_LENGTH} characters.'
    with store.transaction():
        user = store.get('users', payload.get('uid'))
        if user is None or _password_fingerprint(user) != payload.get('fp'):
            return False, 'The reset link is invalid.'
        store.update('users', user['id'], password_hash=generate_password_hash(password))
    logger.info(f'Password reset for user {user["id"]}')
    return True, 'Password updated. You can now log in.'
