"""
Flask web application for the FSP competition console.
"""
import os
import hmac
import io
import shutil
import zipfile
from datetime import datetime, timedelta
from functools import wraps
from filelock import Timeout
from flask import Flask, render_template, request, jsonify, redirect, url_for, flash, send_file, session, g
from federation import applications, competitions, reference, results, teams, users
from federation.errors import FederationError
from federation.models import (
    ApplicationStatus,
    CompetitionStatus,
    CompetitionType,
    ParticipationType,
    Role,
)
from federation.roles import SELF_SERVICE_ROLES, can_create_competition, is_admin, is_captain, is_organizer
from federation.status import STATUS_LABELS, TIMELINE_STATUSES, parse_timestamp
from federation.store import TABLE_FILES, Store

app = Flask(__name__)


def _get_or_create_secret_key() -> bytes:
    """Get SECRET_KEY from env, or generate and persist to file."""
    env_key = os.environ.get('SECRET_KEY')
    if env_key:
        return env_key.encode() if isinstance(env_key, str) else env_key
    key_file = os.path.join(DATA_DIR, '.secret_key')
    if os.path.exists(key_file):
        with open(key_file, 'rb') as f:
            return f.read()
    key = os.urandom(24)
    os.makedirs(os.path.dirname(key_file), exist_ok=True)
    with open(key_file, 'wb') as f:
        f.write(key)
    return key


BASE_DIR = os.path.dirname(os.path.dirname(__file__))
DATA_DIR = os.environ.get('FSP_DATA_DIR', os.path.join(BASE_DIR, 'data'))

app.secret_key = _get_or_create_secret_key()
app.config['PERMANENT_SESSION_LIFETIME'] = timedelta(days=30)

# E-mails allowed to pick the fsp_admin role at registration
ADMIN_EMAILS = {e.strip().lower() for e in os.environ.get('FSP_ADMIN_EMAILS', '').split(',') if e.strip()}

MAX_SITE_UPLOAD_SIZE = 50 * 1024 * 1024  # 50 MB for site-wide imports

PUBLIC_ENDPOINTS = ('static', 'login_page', 'register_page', 'forgot_password',
                    'reset_password_page', 'api_admin_export', 'api_admin_import', None)


def _store() -> Store:
    """Store over the current DATA_DIR."""
    return Store(DATA_DIR)


def login_required(f):
    """Redirect to login page if user not authenticated."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('user') is None:
            return redirect(url_for('login_page'))
        return f(*args, **kwargs)
    return decorated_function


def require_backup_key(f):
    """Require valid BACKUP_API_KEY in Authorization header."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        expected_key = os.environ.get('BACKUP_API_KEY')
        if not expected_key:
            return jsonify({'error': 'Server not configured for backup operations'}), 500

        auth_header = request.headers.get('Authorization', '')
        if not auth_header.startswith('Bearer '):
            return jsonify({'error': 'Missing or invalid Authorization header'}), 401

        provided_key = auth_header[7:]  # Strip "Bearer "
        if not hmac.compare_digest(expected_key, provided_key):
            return jsonify({'error': 'Invalid API key'}), 401

        return f(*args, **kwargs)
    return decorated_function


def _form_int(name, source=None):
    """Integer field from a form or JSON body, or None when blank or malformed."""
    source = request.form if source is None else source
    value = source.get(name)
    try:
        return int(value) if value not in (None, '') else None
    except (TypeError, ValueError):
        return None


def _payload() -> dict:
    """JSON body of an in-page action, falling back to form fields."""
    return request.get_json(silent=True) or request.form


@app.before_request
def load_current_user():
    """Set g.user from the session and require login for everything but public pages."""
    g.user = None
    if request.endpoint in ('static', 'api_admin_export', 'api_admin_import', None):
        return

    store = _store()
    store.seed_reference_data()

    user_id = session.get('user_id')
    if user_id is not None:
        g.user = store.get('users', user_id)
        if g.user is None:
            session.clear()

    if g.user is None and request.endpoint not in PUBLIC_ENDPOINTS:
        if request.path.startswith('/api/'):
            return jsonify({'success': False, 'error': 'Login required'}), 401
        return redirect(url_for('login_page'))


@app.errorhandler(FederationError)
def handle_federation_error(e):
    """Domain errors become JSON for API calls and a flashed message for screens."""
    app.logger.info(f'{request.method} {request.path} refused: {e.message}')
    if request.path.startswith('/api/'):
        return jsonify({'success': False, 'error': e.message}), e.status_code
    if request.method == 'POST':
        flash(e.message, 'error')
        return redirect(request.referrer or url_for('dashboard'))
    return render_template('error.html', message=e.message, code=e.status_code), e.status_code


@app.errorhandler(Timeout)
def handle_lock_timeout(e):
    app.logger.error(f'Data lock timeout on {request.method} {request.path}')
    message = 'The server is busy, please try again in a moment.'
    if request.path.startswith('/api/'):
        return jsonify({'success': False, 'error': message}), 503
    return render_template('error.html', message=message, code=503), 503


@app.context_processor
def inject_user_context():
    """Make the current user and display labels available to all templates."""
    user = g.get('user')
    return {
        'current_user': user,
        'is_admin': is_admin(user),
        'can_create': bool(user) and can_create_competition(user.get('role')),
        'role_labels': Role.LABELS,
        'status_labels': STATUS_LABELS,
        'application_labels': ApplicationStatus.LABELS,
        'type_labels': CompetitionType.LABELS,
        'participation_labels': ParticipationType.LABELS,
    }


@app.template_filter('format_date')
def format_date(value):
    """Render a stored ISO timestamp as 'YYYY-MM-DD HH:MM'."""
    dt = parse_timestamp(value)
    return dt.strftime('%Y-%m-%d %H:%M') if dt else ''


# -- accounts -----------------------------------------------------------------

@app.route('/login', methods=['GET', 'POST'])
def login_page():
    """Login form and authentication."""
    if g.user:
        return redirect(url_for('dashboard'))
    if request.method == 'POST':
        email = request.form.get('email', '')
        password = request.form.get('password', '')
        user = users.authenticate_user(_store(), email, password)
        if user:
            session['user_id'] = user['id']
            session.permanent = True
            app.logger.info(f'User {user["id"]} logged in')
            return redirect(url_for('dashboard'))
        flash('Invalid e-mail or password.', 'error')
    return render_template('login.html')


@app.route('/register', methods=['GET', 'POST'])
def register_page():
    """Registration form and user creation."""
    if g.user:
        return redirect(url_for('dashboard'))
    store = _store()
    form = request.form
    if request.method == 'POST':
        password = form.get('password', '')
        if password != form.get('confirm_password', ''):
            flash('Passwords do not match.', 'error')
        else:
            ok, msg = users.create_user(
                store, form.get('email', ''), password, form.get('full_name', ''),
                _form_int('region_id'), role=form.get('role', Role.ATHLETE),
                bio=form.get('bio', ''), admin_emails=ADMIN_EMAILS)
            if ok:
                user = users.find_user_by_email(store, form.get('email', ''))
                session['user_id'] = user['id']
                session.permanent = True
                flash(msg, 'success')
                return redirect(url_for('dashboard'))
            flash(msg, 'error')
    return render_template('register.html',
                           regions=reference.list_items(store, 'regions'),
                           roles=Role.ALL, self_service_roles=SELF_SERVICE_ROLES,
                           form=form)


@app.route('/logout')
def logout():
    """Clear session and redirect to login."""
    session.clear()
    flash('Logged out.', 'success')
    return redirect(url_for('login_page'))


@app.route('/forgot-password', methods=['GET', 'POST'])
def forgot_password():
    """Issue a password reset link. Delivery is out of scope, the link is logged."""
    if request.method == 'POST':
        email = request.form.get('email', '')
        token = users.make_reset_token(_store(), app.secret_key, email)
        if token:
            link = url_for('reset_password_page', token=token, _external=True)
            app.logger.info(f'Password reset link for {users.normalize_email(email)}: {link}')
        flash('If the address is registered, a reset link has been sent.', 'success')
        return redirect(url_for('login_page'))
    return render_template('forgot_password.html')


@app.route('/reset-password/<token>', methods=['GET', 'POST'])
def reset_password_page(token):
    """Set a new password from a reset link."""
    if request.method == 'POST':
        password = request.form.get('password', '')
        if password != request.form.get('confirm_password', ''):
            flash('Passwords do not match.', 'error')
        else:
            ok, msg = users.reset_password(_store(), app.secret_key, token, password)
            flash(msg, 'success' if ok else 'error')
            if ok:
                return redirect(url_for('login_page'))
    return render_template('reset_password.html', token=token)


@app.route('/profile', methods=['GET', 'POST'])
@login_required
def profile():
    """View and edit the profile, with participation history."""
    store = _store()
    if request.method == 'POST':
        g.user = users.update_profile(store, g.user['id'], request.form.get('full_name', ''),
                                      request.form.get('bio', ''))
        flash('Profile updated.', 'success')
        return redirect(url_for('profile'))
    regions = store.name_lookup('regions')
    return render_template('profile.html',
                           region_name=regions.get(g.user.get('region_id'), ''),
                           history=results.history_for_user(store, g.user['id']))


# -- dashboard and competitions -----------------------------------------------

@app.route('/')
@app.route('/dashboard')
@login_required
def dashboard():
    """Most recent competitions and shortcuts."""
    return render_template('dashboard.html',
                           competitions=competitions.recent_competitions(_store(), g.user))


@app.route('/competitions')
@login_required
def competition_list():
    """Competition list with type, discipline, name and status filters."""
    store = _store()
    filters = {
        'type': request.args.get('type', ''),
        'discipline_id': request.args.get('discipline_id', ''),
        'search': request.args.get('search', ''),
        'status': request.args.get('status', ''),
    }
    return render_template('competitions.html',
                           competitions=competitions.list_competitions(store, g.user, filters),
                           disciplines=reference.list_items(store, 'disciplines'),
                           filters=filters,
                           status_filters=(CompetitionStatus.DRAFT, CompetitionStatus.PUBLISHED)
                           + TIMELINE_STATUSES + (CompetitionStatus.RESULTS_PUBLISHED,))


def _competition_form_context(store, competition=None):
    return {
        'competition': competition,
        'editing': competition is not None,
        'disciplines': reference.list_items(store, 'disciplines'),
        'regions': reference.list_items(store, 'regions'),
        'types': CompetitionType.ALL,
        'participation_types': ParticipationType.ALL,
        'form': request.form,
    }


@app.route('/competitions/create', methods=['GET', 'POST'])
@login_required
def competition_create():
    """Create a competition (administrators and regional representatives)."""
    store = _store()
    if not can_create_competition(g.user.get('role')):
        flash('You are not allowed to create competitions.', 'error')
        return redirect(url_for('competition_list'))
    if request.method == 'POST':
        try:
            competition = competitions.create_competition(store, g.user, request.form)
        except FederationError as e:
            flash(e.message, 'error')
        else:
            flash(f'Competition "{competition["name"]}" created.', 'success')
            return redirect(url_for('competition_detail', competition_id=competition['id']))
    return render_template('competition_form.html', **_competition_form_context(store))


@app.route('/competitions/<int:competition_id>')
@login_required
def competition_detail(competition_id):
    """Competition detail with the actions available to the current user."""
    store = _store()
    competition = competitions.get_visible_competition(store, g.user, competition_id)
    eligibility = applications.eligibility(store, g.user, competition)
    looking = []
    if eligibility['registration_open'] and not eligibility['is_organizer']:
        looking = teams.teams_looking_for_members(store, g.user, competition_id)
    standings = []
    if competition.get('status') == CompetitionStatus.RESULTS_PUBLISHED:
        standings = results.standings(store, competition_id)
    return render_template('competition_detail.html',
                           competition=competitions.enrich(store, competition),
                           eligibility=eligibility,
                           looking_for_members=looking,
                           standings=standings)


@app.route('/competitions/<int:competition_id>/edit', methods=['GET', 'POST'])
@login_required
def competition_edit(competition_id):
    """Edit form for the competition's organizer."""
    store = _store()
    competition = competitions.get_competition(store, competition_id)
    if not is_organizer(g.user, competition):
        flash('Only the organizer can edit this competition.', 'error')
        return redirect(url_for('competition_detail', competition_id=competition_id))
    if request.method == 'POST':
        try:
            competitions.update_competition(store, g.user, competition_id, request.form)
        except FederationError as e:
            flash(e.message, 'error')
        else:
            flash('Competition updated.', 'success')
            return redirect(url_for('competition_detail', competition_id=competition_id))
    return render_template('competition_form.html', **_competition_form_context(store, competition))


@app.route('/competitions/<int:competition_id>/delete', methods=['POST'])
@login_required
def competition_delete(competition_id):
    """Delete a competition without active applications."""
    competitions.delete_competition(_store(), g.user, competition_id)
    flash('Competition deleted.', 'success')
    return redirect(url_for('competition_list'))


# -- applications -------------------------------------------------------------

@app.route('/competitions/<int:competition_id>/apply/individual', methods=['GET', 'POST'])
@login_required
def apply_individual(competition_id):
    """Individual application form and submission."""
    store = _store()
    competition = competitions.get_visible_competition(store, g.user, competition_id)
    if request.method == 'POST':
        applications.submit_individual(store, g.user, competition_id, request.form.get('notes', ''))
        flash('Application submitted.', 'success')
        return redirect(url_for('my_applications'))
    return render_template('apply_form.html', mode='individual', competition=competition)


@app.route('/competitions/<int:competition_id>/apply/team', methods=['GET', 'POST'])
@login_required
def apply_team(competition_id):
    """Team application form; a forming application lets others ask to join."""
    store = _store()
    competition = competitions.get_visible_competition(store, g.user, competition_id)
    if request.method == 'POST':
        forming = request.form.get('forming') == 'on'
        application = applications.submit_team(
            store, g.user, competition_id, _form_int('team_id'), forming=forming,
            required_members=_form_int('required_members'),
            roles_needed=request.form.get('roles_needed', ''))
        if application['status'] == ApplicationStatus.FORMING:
            flash('Application saved. Other users can now ask to join your team.', 'success')
        else:
            flash('Application submitted.', 'success')
        return redirect(url_for('my_applications'))
    return render_template('apply_form.html', mode='team', competition=competition,
                           teams=store.find('teams', captain_user_id=g.user['id']))


@app.route('/competitions/<int:competition_id>/apply/regional', methods=['GET', 'POST'])
@login_required
def apply_regional(competition_id):
    """Regional representative enters several teams of the region."""
    store = _store()
    competition = competitions.get_visible_competition(store, g.user, competition_id)
    if request.method == 'POST':
        team_ids = [int(t) for t in request.form.getlist('team_ids') if t.isdigit()]
        created = applications.submit_regional(store, g.user, competition_id, team_ids)
        flash(f'{len(created)} team applications submitted.', 'success')
        return redirect(url_for('competition_detail', competition_id=competition_id))
    return render_template('apply_form.html', mode='regional', competition=competition,
                           teams=applications.regional_candidates(store, g.user, competition_id))


@app.route('/competitions/<int:competition_id>/applications')
@login_required
def competition_applications(competition_id):
    """Organizer review screen."""
    store = _store()
    status = request.args.get('status', '')
    rows = applications.list_for_competition(store, g.user, competition_id, status or None)
    return render_template('applications_manage.html',
                           competition=competitions.get_competition(store, competition_id),
                           applications=rows, status=status,
                           statuses=ApplicationStatus.ALL)


@app.route('/api/applications/<int:application_id>/status', methods=['POST'])
@login_required
def api_review_application(application_id):
    """Approve or reject an application (organizer only)."""
    action = _payload().get('action', '')
    application = applications.review_application(_store(), g.user, application_id, action)
    return jsonify({'success': True, 'status': application['status']})


@app.route('/api/applications/<int:application_id>/cancel', methods=['POST'])
@login_required
def api_cancel_application(application_id):
    """Withdraw an application on behalf of its applicant."""
    application = applications.cancel_application(_store(), g.user, application_id)
    return jsonify({'success': True, 'status': application['status']})


@app.route('/api/applications/<int:application_id>/finalize', methods=['POST'])
@login_required
def api_finalize_application(application_id):
    """Submit a forming team application for review."""
    application = applications.finalize_application(_store(), g.user, application_id)
    return jsonify({'success': True, 'status': application['status']})


@app.route('/applications')
@login_required
def my_applications():
    """Applications of the current user and the teams they captain or belong to."""
    return render_template('my_applications.html',
                           applications=applications.list_for_user(_store(), g.user))


# -- results ------------------------------------------------------------------

@app.route('/competitions/<int:competition_id>/results', methods=['GET', 'POST'])
@login_required
def competition_results(competition_id):
    """Organizer enters the final standings of a completed competition."""
    store = _store()
    competition = competitions.get_competition(store, competition_id)
    participants = results.participants_for_results(store, g.user, competition_id)
    if request.method == 'POST':
        rows = [{
            'application_id': p['application_id'],
            'place': request.form.get(f'place_{p["application_id"]}', ''),
            'score': request.form.get(f'score_{p["application_id"]}', ''),
            'details': request.form.get(f'details_{p["application_id"]}', ''),
        } for p in participants]
        results.record_results(store, g.user, competition_id, rows)
        flash('Results published.', 'success')
        return redirect(url_for('competition_detail', competition_id=competition_id))
    return render_template('results_form.html', competition=competition, participants=participants)


# -- teams --------------------------------------------------------------------

@app.route('/teams')
@login_required
def team_list():
    """Teams the current user captains or belongs to."""
    return render_template('teams.html', teams=teams.teams_for_user(_store(), g.user))


@app.route('/teams/create', methods=['POST'])
@login_required
def team_create():
    """Create a team captained by the current user."""
    team = teams.create_team(_store(), g.user, request.form.get('name', ''))
    flash(f'Team "{team["name"]}" created.', 'success')
    return redirect(url_for('team_detail', team_id=team['id']))


@app.route('/teams/<int:team_id>')
@login_required
def team_detail(team_id):
    """Team page with members, applications, results and join requests."""
    store = _store()
    team = teams.get_team(store, team_id)
    captain = is_captain(g.user, team)
    return render_template('team_detail.html',
                           team=team,
                           captain=store.get('users', team['captain_user_id']),
                           is_captain=captain,
                           members=teams.members(store, team_id),
                           applications=teams.team_applications(store, team_id),
                           results=results.team_results(store, team_id),
                           join_requests=teams.pending_join_requests(store, team_id) if captain else [])


@app.route('/teams/<int:team_id>/rename', methods=['POST'])
@login_required
def team_rename(team_id):
    """Rename a team (captain only)."""
    teams.rename_team(_store(), g.user, team_id, request.form.get('name', ''))
    flash('Team renamed.', 'success')
    return redirect(url_for('team_detail', team_id=team_id))


@app.route('/teams/<int:team_id>/delete', methods=['POST'])
@login_required
def team_delete(team_id):
    """Delete a team (captain only)."""
    teams.delete_team(_store(), g.user, team_id)
    flash('Team deleted.', 'success')
    return redirect(url_for('team_list'))


@app.route('/teams/<int:team_id>/members', methods=['POST'])
@login_required
def team_add_member(team_id):
    """Add a registered user to the team by e-mail."""
    teams.add_member(_store(), g.user, team_id, request.form.get('email', ''))
    flash('Member added.', 'success')
    return redirect(url_for('team_detail', team_id=team_id))


@app.route('/api/teams/<int:team_id>/members/<int:member_id>/remove', methods=['POST'])
@login_required
def api_remove_member(team_id, member_id):
    """Remove a member from the team."""
    teams.remove_member(_store(), g.user, team_id, member_id)
    return jsonify({'success': True})


@app.route('/api/teams/<int:team_id>/join', methods=['POST'])
@login_required
def api_request_to_join(team_id):
    """Ask to join a team that is still forming for a competition."""
    competition_id = _form_int('competition_id', _payload())
    if competition_id is None:
        return jsonify({'success': False, 'error': 'competition_id is required'}), 400
    outcome = teams.request_to_join(_store(), g.user, team_id, competition_id)
    return jsonify({'success': True, 'result': outcome})


@app.route('/api/join-requests/<int:request_id>', methods=['POST'])
@login_required
def api_resolve_join_request(request_id):
    """Accept or reject a join request (team captain only)."""
    accept = _payload().get('accept')
    if isinstance(accept, str):
        accept = accept.lower() in ('1', 'true', 'yes', 'on')
    status = teams.resolve_join_request(_store(), g.user, request_id, bool(accept))
    return jsonify({'success': True, 'status': status})


# -- administration -----------------------------------------------------------

def admin_required(f):
    """Only FSP administrators may use the administration screens."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not is_admin(g.user):
            flash('Administrator access required.', 'error')
            return redirect(url_for('dashboard'))
        return f(*args, **kwargs)
    return decorated_function


@app.route('/admin')
@login_required
@admin_required
def admin():
    """Administration page: reference data and user roles."""
    store = _store()
    return render_template('admin.html',
                           regions=reference.list_items(store, 'regions'),
                           disciplines=reference.list_items(store, 'disciplines'),
                           users=sorted(store.load('users'), key=lambda u: u.get('email', '')),
                           roles=Role.ALL)


@app.route('/admin/<any(regions, disciplines):table>', methods=['POST'])
@login_required
@admin_required
def admin_add_reference(table):
    """Add a region or discipline."""
    item = reference.add_item(_store(), g.user, table, request.form.get('name', ''))
    flash(f'"{item["name"]}" added.', 'success')
    return redirect(url_for('admin'))


@app.route('/admin/<any(regions, disciplines):table>/<int:item_id>/delete', methods=['POST'])
@login_required
@admin_required
def admin_delete_reference(table, item_id):
    """Delete an unused region or discipline."""
    reference.delete_item(_store(), g.user, table, item_id)
    flash('Deleted.', 'success')
    return redirect(url_for('admin'))


@app.route('/admin/users/<int:user_id>/role', methods=['POST'])
@login_required
@admin_required
def admin_set_role(user_id):
    """Change a user's role and region."""
    user = users.set_role(_store(), g.user, user_id, request.form.get('role', ''),
                          _form_int('region_id'))
    flash(f'{user["email"]} is now {Role.LABELS[user["role"]]}.', 'success')
    return redirect(url_for('admin'))


# -- backup -------------------------------------------------------------------

@app.route('/api/admin/export')
@require_backup_key
def api_admin_export():
    """Download every table file of the store as one ZIP (admin backup)."""
    if not os.path.exists(DATA_DIR):
        app.logger.error(f'Admin export failed: DATA_DIR does not exist: {DATA_DIR}')
        return jsonify({'error': 'Data directory does not exist'}), 404

    store = _store()
    buffer = io.BytesIO()
    with store.transaction():
        names = store.table_files()
        with zipfile.ZipFile(buffer, 'w', zipfile.ZIP_DEFLATED) as zf:
            for name in names:
                zf.write(os.path.join(DATA_DIR, name), name)
    app.logger.info(f'Admin export: added {len(names)} tables to ZIP')

    buffer.seek(0)
    timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
    return send_file(
        buffer,
        mimetype='application/zip',
        as_attachment=True,
        download_name=f'fsp-backup-{timestamp}.zip',
    )


def _copy_tables(store, backup_location):
    """Copy the current table files aside before a restore overwrites them."""
    os.makedirs(backup_location, exist_ok=True)
    for name in store.table_files():
        shutil.copy2(os.path.join(DATA_DIR, name), os.path.join(backup_location, name))


@app.route('/api/admin/import', methods=['POST'])
@require_backup_key
def api_admin_import():
    """Replace all tables with the ones in an uploaded backup ZIP, keeping a pre-restore copy.

    Tables absent from the archive are left empty.
    """
    file = request.files.get('file')
    if not file or file.filename == '':
        return jsonify({'error': 'No file uploaded'}), 400

    file_bytes = file.read()
    if len(file_bytes) > MAX_SITE_UPLOAD_SIZE:
        return jsonify({'error': f'File too large (max {MAX_SITE_UPLOAD_SIZE} bytes)'}), 400
    if not zipfile.is_zipfile(io.BytesIO(file_bytes)):
        return jsonify({'error': 'Uploaded file is not a valid ZIP archive'}), 400

    with zipfile.ZipFile(io.BytesIO(file_bytes), 'r') as zf:
        names = set(zf.namelist())
        for name in names:
            if '..' in name or name.startswith('/') or name.startswith('\\'):
                return jsonify({'error': 'ZIP contains unsafe file paths. Import aborted.'}), 400
        if 'users.yaml' not in names:
            return jsonify({'error': 'ZIP does not appear to be a valid backup (missing users.yaml)'}), 400
        restored = [name for name in TABLE_FILES if name in names]
        ignored = sorted(names - set(restored))
        if ignored:
            app.logger.warning(f'Admin import ignoring non-table entries: {ignored}')

        timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
        backup_location = os.path.join(BASE_DIR, 'backups', f'pre-restore-{timestamp}')
        store = _store()
        with store.transaction():
            _copy_tables(store, backup_location)
            app.logger.info(f'Pre-restore backup saved to: {backup_location}')
            for name in store.table_files():
                if name not in names:
                    os.remove(os.path.join(DATA_DIR, name))
            for name in restored:
                with zf.open(name) as src, open(os.path.join(DATA_DIR, name), 'wb') as dst:
                    dst.write(src.read())
    app.logger.info(f'Admin import restored {len(restored)} tables into {DATA_DIR}')

    return jsonify({
        'success': True,
        'backup_location': backup_location,
        'message': f'Data restored successfully. Previous data backed up to {backup_location}'
    }), 200


if __name__ == '__main__':
    app.run(debug=True, port=5000)
