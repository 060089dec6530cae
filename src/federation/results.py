"""
Final standings entry and participation history.
"""
import logging

from federation.competitions import get_competition
from federation.errors import PermissionDenied, ValidationError
from federation.models import ApplicationStatus, CompetitionStatus, display_name
from federation.roles import is_organizer
from federation.status import COMPLETED, derive_status, is_finished
from federation.store import now_iso

logger = logging.getLogger(__name__)


def _require_results_entry(store, user, competition_id, now=None):
    competition = get_competition(store, competition_id)
    if not is_organizer(user, competition):
        raise PermissionDenied('Only the organizer can enter results.')
    if derive_status(competition, now) != COMPLETED:
        raise ValidationError('Results can only be entered once the competition has ended.')
    return competition


def participants_for_results(store, user, competition_id, now=None) -> list:
    """Approved participants of a finished competition, one entry row each."""
    _require_results_entry(store, user, competition_id, now)
    approved = store.find('applications', competition_id=competition_id,
                          status=ApplicationStatus.APPROVED)
    existing = {}
    for r in store.find('competition_results', competition_id=competition_id):
        existing[('team', r.get('team_id')) if r.get('team_id') else ('user', r.get('user_id'))] = r

    participants = []
    for a in approved:
        if a.get('applicant_team_id'):
            team = store.get('teams', a['applicant_team_id'])
            if team is None:
                continue
            captain = store.get('users', team['captain_user_id'])
            row = {'name': team['name'], 'captain_name': display_name(captain),
                   'team_id': team['id'], 'user_id': None}
            previous = existing.get(('team', team['id']))
        else:
            athlete = store.get('users', a.get('applicant_user_id'))
            if athlete is None:
                continue
            row = {'name': display_name(athlete), 'captain_name': None,
                   'team_id': None, 'user_id': athlete['id']}
            previous = existing.get(('user', athlete['id']))
        previous = previous or {}
        row.update({
            'application_id': a['id'],
            'place': previous.get('place'),
            'score': previous.get('score'),
            'details': (previous.get('result_data') or {}).get('details', ''),
        })
        participants.append(row)
    return participants


def _parse_number(value, cast, label):
    if value is None or str(value).strip() == '':
        return None
    try:
        return cast(str(value).strip())
    except ValueError:
        raise ValidationError(f'{label} must be a number.') from None


def record_results(store, user, competition_id, rows, now=None) -> list:
    """Replace the competition's results and mark them published.

    Each row carries ``application_id``, ``place``, ``score`` and ``details``;
    the application must be one of the approved participants.
    """
    with store.transaction():
        competition = _require_results_entry(store, user, competition_id, now)
        participants = {p['application_id']: p
                        for p in participants_for_results(store, user, competition_id, now)}
        if not participants:
            raise ValidationError('There are no approved participants to record results for.')

        recorded_at = now_iso()
        new_rows = []
        for row in rows:
            participant = participants.get(row.get('application_id'))
            if participant is None:
                raise ValidationError('Results can only be recorded for approved participants.')
            place = _parse_number(row.get('place'), int, 'Place')
            if place is not None and place < 1:
                raise ValidationError('Place must be 1 or higher.')
            details = (row.get('details') or '').strip()
            new_rows.append({
                'competition_id': competition_id,
                'user_id': participant['user_id'],
                'team_id': participant['team_id'],
                'place': place,
                'score': _parse_number(row.get('score'), float, 'Score'),
                'result_data': {'details': details} if details else None,
                'recorded_at': recorded_at,
                'recorded_by_user_id': user['id'],
            })

        store.delete_where('competition_results', lambda r: r.get('competition_id') == competition_id)
        created = store.insert_many('competition_results', new_rows) if new_rows else []
        store.update('competitions', competition_id, status=CompetitionStatus.RESULTS_PUBLISHED,
                     updated_at=recorded_at)
    logger.info(f'{len(created)} results recorded for competition {competition_id} '
                f'("{competition["name"]}") by user {user["id"]}')
    return created


def history_for_user(store, user_id, now=None) -> list:
    """Results for the user and their teams in finished competitions, newest first."""
    team_ids = {t['id'] for t in store.find('teams', captain_user_id=user_id)}
    team_ids.update(m['team_id'] for m in store.find('team_members', user_id=user_id))
    competitions = {c['id']: c for c in store.load('competitions')}
    teams = store.name_lookup('teams')

    history = []
    seen = set()
    for r in store.load('competition_results'):
        if r['id'] in seen:
            continue
        if r.get('user_id') != user_id and r.get('team_id') not in team_ids:
            continue
        competition = competitions.get(r.get('competition_id'))
        if competition is None or not is_finished(competition, now):
            continue
        seen.add(r['id'])
        history.append({
            **r,
            'competition_name': competition['name'],
            'competition_end': competition.get('end_date'),
            'team_name': teams.get(r.get('team_id')) if r.get('team_id') else None,
            'details': (r.get('result_data') or {}).get('details', ''),
        })
    history.sort(key=lambda r: r.get('recorded_at') or '', reverse=True)
    return history


def team_results(store, team_id) -> list:
    """Results recorded for a team, newest competition first."""
    competitions = {c['id']: c for c in store.load('competitions')}
    rows = []
    for r in store.find('competition_results', team_id=team_id):
        competition = competitions.get(r.get('competition_id'))
        if competition is None:
            continue
        rows.append({
            **r,
            'competition_name': competition['name'],
            'competition_end': competition.get('end_date'),
            'details': (r.get('result_data') or {}).get('details', ''),
        })
    rows.sort(key=lambda r: r.get('competition_end') or '', reverse=True)
    return rows


def standings(store, competition_id) -> list:
    """Published results of a competition ordered by place (unplaced rows last)."""
    teams = {t['id']: t for t in store.load('teams')}
    users = {u['id']: u for u in store.load('users')}
    rows = []
    for r in store.find('competition_results', competition_id=competition_id):
        team = teams.get(r.get('team_id'))
        rows.append({
            **r,
            'name': team['name'] if team else display_name(users.get(r.get('user_id'))),
            'is_team': team is not None,
            'details': (r.get('result_data') or {}).get('details', ''),
        })
    rows.sort(key=lambda r: (r.get('place') is None, r.get('place') or 0))
    return rows
