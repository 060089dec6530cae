"""
Competition creation, editing, deletion and listing.
"""
import logging

from federation.errors import Conflict, NotFound, PermissionDenied, ValidationError
from federation.models import (
    ApplicationStatus,
    CompetitionStatus,
    CompetitionType,
    ParticipationType,
    Role,
    display_name,
)
from federation.roles import (
    can_create_competition,
    can_create_federal_competition,
    can_create_regional_competition,
    is_admin,
    is_organizer,
)
from federation.status import (
    DATE_FIELDS,
    display_status,
    parse_timestamp,
    validate_dates,
)
from federation.store import now_iso

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ('name', 'discipline_id', 'type') + DATE_FIELDS

FIELD_LABELS = {
    'name': 'Name',
    'discipline_id': 'Discipline',
    'type': 'Type',
    'registration_start_date': 'Registration start',
    'registration_end_date': 'Registration end',
    'start_date': 'Start',
    'end_date': 'End',
}


def to_int(value, field='value'):
    """Parse an optional integer form value."""
    if value is None or value == '':
        return None
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        raise ValidationError(f'{FIELD_LABELS.get(field, field)} must be a number.') from None


def get_competition(store, competition_id):
    competition = store.get('competitions', competition_id)
    if competition is None:
        raise NotFound('Competition not found.')
    return competition


def enrich(store, competition, now=None):
    """Copy of a competition row with names and display status resolved."""
    disciplines = store.name_lookup('disciplines')
    regions = store.name_lookup('regions')
    organizer = store.get('users', competition.get('organizer_user_id'))
    return {
        **competition,
        'discipline_name': disciplines.get(competition.get('discipline_id'), ''),
        'region_name': regions.get(competition.get('region_id'), ''),
        'organizer_name': display_name(organizer),
        'organizer_email': organizer.get('email') if organizer else None,
        'display_status': display_status(competition, now),
    }


def _clean_form(store, form) -> dict:
    data = {
        'name': (form.get('name') or '').strip(),
        'description': (form.get('description') or '').strip(),
        'discipline_id': to_int(form.get('discipline_id'), 'discipline_id'),
        'type': (form.get('type') or '').strip(),
        'region_id': to_int(form.get('region_id'), 'region_id'),
        'max_participants_or_teams': to_int(form.get('max_participants_or_teams'),
                                            'max_participants_or_teams'),
        'participation_type': (form.get('participation_type') or ParticipationType.MIXED).strip(),
        'status': (form.get('status') or CompetitionStatus.DRAFT).strip(),
    }
    for field in DATE_FIELDS:
        data[field] = (form.get(field) or '').strip()

    for field in REQUIRED_FIELDS:
        if not data[field]:
            raise ValidationError(f'Field "{FIELD_LABELS[field]}" is required.')
    if data['type'] not in CompetitionType.ALL:
        raise ValidationError('Unknown competition type.')
    if data['participation_type'] not in ParticipationType.ALL:
        raise ValidationError('Unknown participation type.')
    if data['status'] not in (CompetitionStatus.DRAFT, CompetitionStatus.PUBLISHED):
        raise ValidationError('Status must be draft or published.')
    if store.get('disciplines', data['discipline_id']) is None:
        raise ValidationError('Unknown discipline.')
    if data['max_participants_or_teams'] is not None and data['max_participants_or_teams'] < 1:
        raise ValidationError('Maximum participants must be at least 1.')

    error = validate_dates(*(data[f] for f in DATE_FIELDS))
    if error:
        raise ValidationError(error)
    for field in DATE_FIELDS:
        data[field] = parse_timestamp(data[field]).isoformat()

    if data['type'] != CompetitionType.REGIONAL:
        data['region_id'] = None
    return data


def _apply_role_rules(store, user, data):
    role = user.get('role')
    if data['type'] == CompetitionType.FEDERAL and not can_create_federal_competition(role):
        raise PermissionDenied('Only FSP administrators can create federal competitions.')
    if data['type'] == CompetitionType.REGIONAL:
        if not can_create_regional_competition(role):
            raise PermissionDenied(
                'Only regional representatives and FSP administrators can create regional competitions.')
        if role == Role.REGIONAL_REP:
            data['region_id'] = user.get('region_id')
        if data['region_id'] is None:
            raise ValidationError('A regional competition needs a region.')
        if store.get('regions', data['region_id']) is None:
            raise ValidationError('Unknown region.')


def create_competition(store, user, form) -> dict:
    if not can_create_competition(user.get('role')):
        raise PermissionDenied('You are not allowed to create competitions.')
    data = _clean_form(store, form)
    _apply_role_rules(store, user, data)
    data['organizer_user_id'] = user['id']
    data['created_at'] = now_iso()
    data['updated_at'] = None
    competition = store.insert('competitions', data)
    logger.info(f'Competition {competition["id"]} "{competition["name"]}" created by user {user["id"]}')
    return competition


def update_competition(store, user, competition_id, form) -> dict:
    competition = get_competition(store, competition_id)
    if not is_organizer(user, competition):
        raise PermissionDenied('Only the organizer can edit this competition.')
    data = _clean_form(store, form)
    _apply_role_rules(store, user, data)
    if competition.get('status') == CompetitionStatus.RESULTS_PUBLISHED:
        data['status'] = CompetitionStatus.RESULTS_PUBLISHED
    data['updated_at'] = now_iso()
    updated = store.update('competitions', competition_id, **data)
    logger.info(f'Competition {competition_id} updated by user {user["id"]}')
    return updated


def delete_competition(store, user, competition_id):
    """Delete a competition that has no active applications."""
    with store.transaction():
        competition = get_competition(store, competition_id)
        if not is_organizer(user, competition):
            raise PermissionDenied('Only the organizer can delete this competition.')
        applications = store.find('applications', competition_id=competition_id)
        active = [a for a in applications if a.get('status') in ApplicationStatus.ACTIVE]
        if active:
            raise Conflict(
                f'The competition has {len(active)} active applications. '
                'Reject or cancel them first.')
        store.delete_where('applications', lambda a: a.get('competition_id') == competition_id)
        store.delete_where('competition_results', lambda r: r.get('competition_id') == competition_id)
        store.delete_where('team_join_requests', lambda r: r.get('competition_id') == competition_id)
        store.delete('competitions', competition_id)
    logger.info(f'Competition {competition_id} deleted by user {user["id"]}')


def _visible_to(user, competition):
    if competition.get('status') != CompetitionStatus.DRAFT:
        return True
    return is_admin(user) or is_organizer(user, competition)


def get_visible_competition(store, user, competition_id):
    """Like get_competition, but drafts are hidden from everyone except the organizer and admins."""
    competition = get_competition(store, competition_id)
    if not _visible_to(user, competition):
        raise NotFound('Competition not found.')
    return competition


def list_competitions(store, user, filters=None, now=None) -> list:
    """Competitions visible to the user, newest first, with optional filters.

    Filters: type, discipline_id, search (name substring) and status. A
    status of draft or published compares the stored lifecycle, anything
    else compares the display status.
    """
    filters = filters or {}
    type_filter = filters.get('type') or ''
    discipline_id = to_int(filters.get('discipline_id'), 'discipline_id')
    search = (filters.get('search') or '').strip().lower()
    status_filter = filters.get('status') or ''

    competitions = [c for c in store.load('competitions') if _visible_to(user, c)]
    competitions.sort(key=lambda c: c.get('created_at') or '', reverse=True)

    result = []
    for competition in competitions:
        item = enrich(store, competition, now)
        if type_filter and item.get('type') != type_filter:
            continue
        if discipline_id is not None and item.get('discipline_id') != discipline_id:
            continue
        if search and search not in (item.get('name') or '').lower():
            continue
        if status_filter:
            if status_filter in (CompetitionStatus.DRAFT, CompetitionStatus.PUBLISHED):
                if item.get('status') != status_filter:
                    continue
            elif item['display_status'] != status_filter:
                continue
        result.append(item)
    return result


def _registration_start_key(competition):
    start = parse_timestamp(competition.get('registration_start_date'))
    return start.timestamp() if start else 0


def recent_competitions(store, user, limit=6, now=None) -> list:
    """Dashboard feed: latest registration windows first."""
    competitions = [c for c in store.load('competitions') if _visible_to(user, c)]
    competitions.sort(key=_registration_start_key, reverse=True)
    return [enrich(store, c, now) for c in competitions[:limit]]
