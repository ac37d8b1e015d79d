"""
Flask web application exposing the bracket engine to the chat gateway.

The gateway (bot, reactions, buttons) calls these JSON endpoints; organizer
commands additionally require the organizer API key.
"""
import os
import hmac
import logging
from datetime import datetime, timedelta
from functools import wraps
from flask import Flask, request, jsonify
from bracket.display import get_bracket_display
from bracket.errors import ConfigurationError, TournamentError
from bracket.events import EventBus
from bracket.models import to_local_naive
from bracket.notify import WebhookNotifier
from bracket.service import TournamentService
from bracket.settings import load_settings
from bracket.store import TournamentStore

app = Flask(__name__)

BASE_DIR = os.path.dirname(os.path.dirname(__file__))
DATA_DIR = os.environ.get('TOURNAMENT_DATA_DIR', os.path.join(BASE_DIR, 'data'))
SETTINGS_FILE = os.environ.get('TOURNAMENT_SETTINGS_FILE', os.path.join(DATA_DIR, 'settings.yaml'))
DEFAULT_TOURNAMENT_NAME = 'Wordsmith of the Month'

_service = None


def log_event(event):
    """Default collaborator: announcements go to the application log."""
    app.logger.info(f'[{event.tournament_id}] {event.name}: {event.payload}')


def get_service() -> TournamentService:
    """Build the engine on first use from DATA_DIR and SETTINGS_FILE."""
    global _service
    if _service is None:
        settings = load_settings(SETTINGS_FILE)
        events = EventBus()
        events.subscribe(log_event)
        if settings.gateway_webhook_url:
            events.subscribe(WebhookNotifier(settings.gateway_webhook_url, os.environ.get('GATEWAY_API_KEY')))
        _service = TournamentService(TournamentStore(DATA_DIR), settings, events=events)
    return _service


def _bearer_token() -> str:
    auth_header = request.headers.get('Authorization', '')
    if not auth_header.startswith('Bearer '):
        return ''
    return auth_header[7:]  # Strip "Bearer "


def organizer_required(f):
    """Require ORGANIZER_API_KEY, and an organizer role when roles are configured."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        expected_key = os.environ.get('ORGANIZER_API_KEY')
        if not expected_key:
            raise ConfigurationError('Server not configured for organizer operations.')

        provided_key = _bearer_token()
        if not provided_key:
            return jsonify({'success': False, 'error': 'Missing or invalid Authorization header'}), 401
        if not hmac.compare_digest(expected_key, provided_key):
            return jsonify({'success': False, 'error': 'Invalid API key'}), 401

        organizer_roles = set(get_service().settings.organizer_role_ids)
        if organizer_roles:
            member_roles = {r.strip() for r in request.headers.get('X-Member-Roles', '').split(',') if r.strip()}
            if not organizer_roles & member_roles:
                return jsonify({'success': False, 'error': 'Only organizers can do that.'}), 403

        return f(*args, **kwargs)
    return decorated_function


def _json_body() -> dict:
    return request.get_json(silent=True) or {}


def _required(data: dict, *fields):
    missing = [name for name in fields if not str(data.get(name, '')).strip()]
    if missing:
        raise TournamentError(f"Missing required fields: {', '.join(missing)}")
    return [str(data[name]).strip() for name in fields]


def _parse_timestamp(value):
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except (TypeError, ValueError):
        raise TournamentError('timestamp must be an ISO 8601 date-time.')
    return to_local_naive(parsed)


def _tournament_summary(tournament) -> dict:
    return {
        'id': tournament.id,
        'name': tournament.name,
        'status': tournament.status,
        'participants': [p.to_dict() for p in tournament.participants],
        'max_participants': tournament.max_participants,
        'created_at': tournament.created_at.isoformat(),
        'champion': tournament.champion.display_name if tournament.champion else None,
    }


def _match_summary(match) -> dict:
    return {
        'match_id': match.id,
        'status': match.status,
        'winner': match.winner,
        'deadline': match.deadline.isoformat() if match.deadline else None,
        'reply_count': match.reply_count,
        'last_actor': match.last_actor,
    }


@app.errorhandler(TournamentError)
def handle_tournament_error(e):
    if isinstance(e, ConfigurationError):
        app.logger.warning(f'Configuration error: {e.reason}')
    return jsonify({'success': False, 'error': e.reason}), e.status_code


@app.route('/')
def index():
    return jsonify({'success': True, 'status': 'Tourney bot alive'})


# Tournaments

@app.route('/api/tournaments', methods=['POST'])
@organizer_required
def api_create_tournament():
    data = _json_body()
    name = str(data.get('name') or DEFAULT_TOURNAMENT_NAME).strip()
    max_participants = data.get('max_participants')
    if max_participants is not None and (not isinstance(max_participants, int) or max_participants < 0):
        return jsonify({'success': False, 'error': 'max_participants must be 0 (unlimited) or more.'}), 400
    tournament = get_service().create_tournament(name, max_participants, data.get('make_current', True))
    return jsonify({'success': True, 'tournament': _tournament_summary(tournament)}), 201


@app.route('/api/tournaments', methods=['GET'])
def api_list_tournaments():
    service = get_service()
    current = service.store.get_current()
    tournaments = []
    for tournament in service.list_tournaments():
        summary = _tournament_summary(tournament)
        summary['is_current'] = tournament.id == current
        tournaments.append(summary)
    return jsonify({'success': True, 'tournaments': tournaments})


@app.route('/api/tournaments/<tournament_id>/activate', methods=['POST'])
@organizer_required
def api_activate_tournament(tournament_id):
    get_service().set_current_tournament(tournament_id)
    return jsonify({'success': True, 'current': tournament_id})


@app.route('/api/tournaments/current', methods=['GET'])
def api_current_tournament():
    service = get_service()
    tournament = service.get_tournament(service.current_tournament_id())
    return jsonify({'success': True, 'tournament': _tournament_summary(tournament)})


@app.route('/api/tournaments/<tournament_id>', methods=['GET'])
def api_get_tournament(tournament_id):
    tournament = get_service().get_tournament(tournament_id)
    return jsonify({'success': True, 'tournament': _tournament_summary(tournament)})


@app.route('/api/tournaments/<tournament_id>/bracket', methods=['GET'])
def api_bracket(tournament_id):
    tournament = get_service().get_tournament(tournament_id)
    return jsonify({'success': True, 'bracket': get_bracket_display(tournament)})


# Registration surface

@app.route('/api/tournaments/<tournament_id>/register', methods=['POST'])
def api_register(tournament_id):
    data = _json_body()
    participant_id, = _required(data, 'participant_id')
    participant = get_service().register(tournament_id, participant_id, data.get('display_name'))
    return jsonify({'success': True, 'participant': participant.to_dict()})


@app.route('/api/tournaments/<tournament_id>/unregister', methods=['POST'])
def api_unregister(tournament_id):
    participant_id, = _required(_json_body(), 'participant_id')
    get_service().unregister(tournament_id, participant_id)
    return jsonify({'success': True})


# Organizer commands

@app.route('/api/tournaments/<tournament_id>/close-registration', methods=['POST'])
@organizer_required
def api_close_registration(tournament_id):
    tournament = get_service().close_registration(tournament_id)
    return jsonify({'success': True, 'bracket': get_bracket_display(tournament)})


@app.route('/api/tournaments/<tournament_id>/assign-fixtures', methods=['POST'])
@organizer_required
def api_assign_fixtures(tournament_id):
    round_index = _json_body().get('round_index', 0)
    if not isinstance(round_index, int):
        return jsonify({'success': False, 'error': 'round_index must be an integer.'}), 400
    fixtures = get_service().assign_fixtures(tournament_id, round_index)
    return jsonify({'success': True, 'fixtures': fixtures})


@app.route('/api/tournaments/<tournament_id>/matches/<match_id>/open-vote', methods=['POST'])
@organizer_required
def api_open_vote(tournament_id, match_id):
    hours = _json_body().get('duration_hours')
    if hours is not None and (not isinstance(hours, (int, float)) or hours <= 0):
        return jsonify({'success': False, 'error': 'duration_hours must be a positive number.'}), 400
    duration = timedelta(hours=hours) if hours else None
    match = get_service().open_vote(tournament_id, match_id, duration)
    return jsonify({'success': True, 'match': _match_summary(match)})


@app.route('/api/tournaments/<tournament_id>/matches/<match_id>/end', methods=['POST'])
@organizer_required
def api_end_match(tournament_id, match_id):
    winner, = _required(_json_body(), 'winner')
    match = get_service().end_match(tournament_id, match_id, winner)
    return jsonify({'success': True, 'match': _match_summary(match)})


@app.route('/api/tournaments/<tournament_id>/end', methods=['POST'])
@organizer_required
def api_end_tournament(tournament_id):
    tournament = get_service().end_tournament(tournament_id)
    return jsonify({'success': True, 'tournament': _tournament_summary(tournament)})


# Inbound play events for the current tournament

@app.route('/api/matches/<match_id>/posts', methods=['POST'])
def api_participant_post(match_id):
    data = _json_body()
    actor_id, = _required(data, 'actor_id')
    match = get_service().on_participant_post(match_id, actor_id, _parse_timestamp(data.get('timestamp')))
    return jsonify({'success': True, 'match': _match_summary(match)})


@app.route('/api/matches/<match_id>/votes', methods=['POST'])
def api_vote(match_id):
    voter_id, choice = _required(_json_body(), 'voter_id', 'choice')
    recorded = get_service().on_vote_cast(match_id, voter_id, choice)
    return jsonify({'success': True, 'choice': recorded})


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s %(name)s: %(message)s')
    service = get_service()
    if service.store.get_current():
        service.resume_all()
    else:
        service.create_tournament(DEFAULT_TOURNAMENT_NAME)
    app.run(debug=False, port=int(os.environ.get('PORT', 5000)))
