"""
Role and region based permission checks.
"""
from federation.models import Role

SELF_SERVICE_ROLES = (Role.ATHLETE, Role.REGIONAL_REP)
ROLE_LABELS = Role.LABELS


def can_create_competition(role):
    return role in (Role.FSP_ADMIN, Role.REGIONAL_REP)


def can_create_federal_competition(role):
    return role == Role.FSP_ADMIN


def can_create_regional_competition(role):
    return role in (Role.FSP_ADMIN, Role.REGIONAL_REP)


def can_apply_to_regional_competition(user_region_id, competition_region_id, role):
    """Admins may enter any regional competition, everyone else only their own region's."""
    if role == Role.FSP_ADMIN:
        return True
    return user_region_id is not None and user_region_id == competition_region_id


def can_apply_to_federal_as_regional_rep(role):
    return role in (Role.FSP_ADMIN, Role.REGIONAL_REP)


def is_admin(user):
    return bool(user) and user.get('role') == Role.FSP_ADMIN


def is_organizer(user, competition):
    return bool(user) and bool(competition) and competition.get('organizer_user_id') == user['id']


def is_captain(user, team):
    return bool(user) and bool(team) and team.get('captain_user_id') == user['id']
