"""
Teams, their members and requests to join teams that are still forming.
"""
import logging

from federation.errors import Conflict, NotFound, PermissionDenied, ValidationError
from federation.models import ApplicationStatus, JoinRequestStatus, display_name
from federation.roles import is_captain
from federation.store import now_iso
from federation.users import find_user_by_email

logger = logging.getLogger(__name__)

ALREADY_REQUESTED = 'already_requested'
REQUESTED = 'requested'


def get_team(store, team_id):
    team = store.get('teams', team_id)
    if team is None:
        raise NotFound('Team not found.')
    return team


def _require_captain(user, team, action='manage this team'):
    if not is_captain(user, team):
        raise PermissionDenied(f'Only the team captain can {action}.')


def create_team(store, user, name: str):
    name = (name or '').strip()
    if not name:
        raise ValidationError('Enter a team name.')
    team = store.insert('teams', {
        'name': name,
        'captain_user_id': user['id'],
        'created_at': now_iso(),
    })
    logger.info(f'Team {team["id"]} "{name}" created by user {user["id"]}')
    return team


def rename_team(store, user, team_id, name: str):
    team = get_team(store, team_id)
    _require_captain(user, team, 'rename the team')
    name = (name or '').strip()
    if not name:
        raise ValidationError('Team name cannot be empty.')
    return store.update('teams', team_id, name=name)


def delete_team(store, user, team_id):
    """Delete a team that has no active applications, with everything that refers to it."""
    with store.transaction():
        team = get_team(store, team_id)
        _require_captain(user, team, 'delete the team')
        active = [a for a in store.find('applications', applicant_team_id=team_id)
                  if a.get('status') in ApplicationStatus.ACTIVE]
        if active:
            raise Conflict('A team with active competition applications cannot be deleted. '
                           'Cancel the applications first.')
        store.delete_where('team_members', lambda m: m.get('team_id') == team_id)
        store.delete_where('team_join_requests', lambda r: r.get('team_id') == team_id)
        store.delete_where('applications', lambda a: a.get('applicant_team_id') == team_id)
        store.delete_where('competition_results', lambda r: r.get('team_id') == team_id)
        store.delete('teams', team_id)
    logger.info(f'Team {team_id} deleted by user {user["id"]}')


def members(store, team_id) -> list:
    rows = store.find('team_members', team_id=team_id)
    users = {u['id']: u for u in store.find_in('users', 'id', [m['user_id'] for m in rows])}
    return [{**m,
             'full_name': display_name(users.get(m['user_id'])),
             'email': users.get(m['user_id'], {}).get('email')}
            for m in rows]


def add_member(store, user, team_id, email: str):
    """Captain adds a registered user to the team by e-mail."""
    with store.transaction():
        team = get_team(store, team_id)
        _require_captain(user, team, 'add members')
        email = (email or '').strip()
        if not email:
            raise ValidationError('Enter an e-mail address.')
        new_member = find_user_by_email(store, email)
        if new_member is None:
            raise NotFound(f'No user with e-mail "{email}" is registered.')
        if new_member['id'] == team['captain_user_id']:
            raise ValidationError('The captain cannot be added as a member.')
        if store.find('team_members', team_id=team_id, user_id=new_member['id']):
            raise Conflict('This user is already a team member.')
        member = store.insert('team_members', {'team_id': team_id, 'user_id': new_member['id']})
    logger.info(f'User {new_member["id"]} added to team {team_id}')
    return member


def remove_member(store, user, team_id, member_id):
    team = get_team(store, team_id)
    _require_captain(user, team, 'remove members')
    removed = store.delete_where(
        'team_members', lambda m: m.get('id') == member_id and m.get('team_id') == team_id)
    if not removed:
        raise NotFound('Team member not found.')
    logger.info(f'Member {member_id} removed from team {team_id}')


def teams_for_user(store, user) -> list:
    """Teams the user captains (with member counts) followed by teams they belong to."""
    all_members = store.load('team_members')
    captain_teams = []
    for team in store.find('teams', captain_user_id=user['id']):
        count = sum(1 for m in all_members if m.get('team_id') == team['id'])
        captain_teams.append({**team, 'member_count': count, 'is_captain': True})
    seen = {t['id'] for t in captain_teams}

    member_team_ids = [m['team_id'] for m in all_members if m.get('user_id') == user['id']]
    member_teams = []
    for team in store.find_in('teams', 'id', member_team_ids):
        if team['id'] in seen:
            continue
        captain = store.get('users', team['captain_user_id'])
        member_teams.append({**team, 'captain_name': display_name(captain), 'is_captain': False})
        seen.add(team['id'])
    return captain_teams + member_teams


def is_member(store, user_id, team):
    if team.get('captain_user_id') == user_id:
        return True
    return bool(store.find('team_members', team_id=team['id'], user_id=user_id))


def teams_looking_for_members(store, user, competition_id) -> list:
    """Teams with a forming application for the competition that the user is not part of."""
    result = []
    forming = store.find('applications', competition_id=competition_id,
                         status=ApplicationStatus.FORMING)
    for application in forming:
        team = store.get('teams', application.get('applicant_team_id'))
        if team is None or is_member(store, user['id'], team):
            continue
        data = application.get('additional_data') or {}
        captain = store.get('users', team['captain_user_id'])
        already = store.find('team_join_requests', team_id=team['id'], user_id=user['id'],
                             competition_id=competition_id)
        result.append({
            'team_id': team['id'],
            'team_name': team['name'],
            'captain_name': display_name(captain),
            'captain_email': captain.get('email') if captain else None,
            'required_members': data.get('required_members'),
            'roles_needed': data.get('roles_needed'),
            'already_requested': bool(already),
        })
    return result


def request_to_join(store, user, team_id, competition_id) -> str:
    """File a join request. Returns REQUESTED or ALREADY_REQUESTED."""
    with store.transaction():
        team = get_team(store, team_id)
        if is_member(store, user['id'], team):
            raise ValidationError('You are already in this team.')
        forming = store.find('applications', competition_id=competition_id,
                             applicant_team_id=team_id, status=ApplicationStatus.FORMING)
        if not forming:
            raise ValidationError('This team is not looking for members in this competition.')
        if store.find('team_join_requests', team_id=team_id, user_id=user['id'],
                      competition_id=competition_id):
            return ALREADY_REQUESTED
        store.insert('team_join_requests', {
            'team_id': team_id,
            'user_id': user['id'],
            'competition_id': competition_id,
            'status': JoinRequestStatus.PENDING,
            'created_at': now_iso(),
        })
    logger.info(f'User {user["id"]} asked to join team {team_id} for competition {competition_id}')
    return REQUESTED


def pending_join_requests(store, team_id) -> list:
    requests = store.find('team_join_requests', team_id=team_id, status=JoinRequestStatus.PENDING)
    competitions = store.name_lookup('competitions')
    result = []
    for r in requests:
        requester = store.get('users', r['user_id'])
        result.append({**r,
                       'full_name': display_name(requester),
                       'email': requester.get('email') if requester else None,
                       'competition_name': competitions.get(r.get('competition_id'), '')})
    return result


def resolve_join_request(store, user, request_id, accept: bool):
    """Captain accepts (adding the member) or rejects a pending join request."""
    with store.transaction():
        join_request = store.get('team_join_requests', request_id)
        if join_request is None:
            raise NotFound('Join request not found.')
        team = get_team(store, join_request['team_id'])
        _require_captain(user, team, 'answer join requests')
        if join_request.get('status') != JoinRequestStatus.PENDING:
            raise Conflict('This request has already been answered.')
        status = JoinRequestStatus.ACCEPTED if accept else JoinRequestStatus.REJECTED
        store.update('team_join_requests', request_id, status=status)
        if accept and not is_member(store, join_request['user_id'], team):
            store.insert('team_members', {'team_id': team['id'], 'user_id': join_request['user_id']})
    logger.info(f'Join request {request_id} {status}')
    return status


def team_applications(store, team_id) -> list:
    competitions = {c['id']: c for c in store.load('competitions')}
    result = []
    for a in store.find('applications', applicant_team_id=team_id):
        competition = competitions.get(a['competition_id'], {})
        result.append({**a,
                       'competition_name': competition.get('name', ''),
                       'status_label': ApplicationStatus.LABELS.get(a.get('status'), a.get('status'))})
    result.sort(key=lambda a: a.get('submitted_at') or '', reverse=True)
    return result
