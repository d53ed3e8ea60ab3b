"""
Flask web application for the billiards overlay manager.
"""
import os
import hmac
import time
import logging
from datetime import datetime, timedelta
from functools import wraps
from flask import Flask, request, jsonify, Response, stream_with_context, session, g
from core.store import DocumentStore
from core.models import Player, Logo
from core.formats import FORMATS, get_format
from core.bracket import (initialize_matches, normalize_matches, record_match, reset_tournament,
                          get_champion, needs_bracket_reset, tournament_summary, get_match,
                          increment_score, decrement_score, DEFAULT_RACE_TO)
from core.scoreboard import (load_state, to_document, select_player, adjust_score,
                             set_race_to, step_race_to, set_turn, cycle_turn, toggle_ball,
                             reset_balls, reset_scores, set_game_mode, set_live, find_winner,
                             close_winner, apply_key, ball_numbers, placeholder_avatar)
from core.standby import time_options, start_countdown, stop_countdown, reset_countdown, current_countdown
from core.roster import (new_id, validate_player_form, validate_logo_form, rank_players,
                         search_players, sort_logos)

app = Flask(__name__)
logging.basicConfig(level=logging.INFO)


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
DATA_DIR = os.environ.get('SCOREBOARD_DATA_DIR', os.path.join(BASE_DIR, 'data'))

app.secret_key = _get_or_create_secret_key()
app.config['PERMANENT_SESSION_LIFETIME'] = timedelta(days=30)
MAX_UPLOAD_SIZE = 10 * 1024 * 1024  # 10 MB, photos arrive inline as data URLs
app.config['MAX_CONTENT_LENGTH'] = MAX_UPLOAD_SIZE

# Shared manager password; unset means only an upstream auth proxy can log managers in
MANAGER_PASSWORD = os.environ.get('MANAGER_PASSWORD')

STREAM_POLL_SECONDS = 3
STREAM_HEARTBEAT_SECONDS = 15

# Bracket pages and the format each one plays
BRACKETS = {
    'invitational': 'double-8',
    'tour-manager': 'double-4',
    'knockout-4': 'single-4',
    'knockout-8': 'single-8',
    'matches': 'manual-10',
}

# Overlay pages and their scoreboard layout
OVERLAYS = {
    'live-match': 'two-player',
    'pbs-live': 'two-player',
    'pbs-tour': 'two-player',
    'pbs-tour-2': 'two-player',
    'arys': 'two-player',
    'tour-manager': 'two-player',
    '3-players': 'three-player',
    'pbs-cup-8': 'eight-team',
}

PLAYERS = 'players'
LOGOS = 'logos'
CURRENT_MATCH = 'current_match'
CONFIG = 'config'
STANDBY_DOC = 'standby'


def get_store() -> DocumentStore:
    """Return the document store for the current request."""
    try:
        if 'store' not in g:
            g.store = DocumentStore(DATA_DIR)
        return g.store
    except RuntimeError:
        return DocumentStore(DATA_DIR)


def _matches_collection(bracket_id: str) -> str:
    return f'matches_{bracket_id}'


def _watched_collections() -> list:
    return [PLAYERS, LOGOS, CURRENT_MATCH, CONFIG] + [_matches_collection(b) for b in BRACKETS]


def is_manager() -> bool:
    return 'user' in session


def manager_required(f):
    """Reject writes from anyone without a manager session."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not is_manager():
            return jsonify({'success': False, 'error': 'Only managers can make changes. Please log in.'}), 403
        return f(*args, **kwargs)
    return decorated_function


def _error(message: str, status: int = 400):
    return jsonify({'success': False, 'error': message}), status


def _request_data() -> dict:
    """JSON body if present, otherwise form fields."""
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


def _int_field(data: dict, key: str, default=None) -> int:
    value = data.get(key, default)
    if value is None or value == '':
        if default is None:
            raise ValueError(f'{key} is required')
        return default
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise ValueError(f'{key} must be a whole number')
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f'{key} must be a whole number')


def load_players() -> list:
    """All players, as dicts."""
    return [Player.from_dict(p).to_dict() for p in get_store().list(PLAYERS)]


def find_player(player_id):
    """Look up a player by id. Empty id means no player; unknown id is an error."""
    if not player_id:
        return None
    doc = get_store().get(PLAYERS, player_id)
    if doc is None:
        raise LookupError(f'Player not found: {player_id}')
    doc['id'] = player_id
    return Player.from_dict(doc).to_dict()


@app.route('/')
def index():
    """List the overlay and bracket pages this service backs."""
    return jsonify({
        'overlays': [{'id': oid, 'layout': layout} for oid, layout in OVERLAYS.items()],
        'brackets': [{'id': bid, 'format': key, 'label': FORMATS[key].label}
                     for bid, key in BRACKETS.items()],
        'is_manager': is_manager(),
    })


@app.route('/login', methods=['POST'])
def login():
    """Start a manager session."""
    data = _request_data()
    email = str(data.get('email') or data.get('username') or '').strip()
    password = str(data.get('password') or '')
    if not MANAGER_PASSWORD:
        app.logger.warning('Login attempted but MANAGER_PASSWORD is not configured')
        return _error('Manager login is not configured on this server.', 503)
    if not hmac.compare_digest(MANAGER_PASSWORD, password):
        return _error('Invalid password.', 401)
    # Display name is the part of the email before the @
    session['user'] = email.split('@')[0] if email else 'Manager'
    session.permanent = True
    return jsonify({'success': True, 'username': session['user']})


@app.route('/logout', methods=['POST'])
def logout():
    session.clear()
    return jsonify({'success': True})


@app.route('/api/session')
def api_session():
    return jsonify({'is_manager': is_manager(), 'username': session.get('user')})


# -- Players ---------------------------------------------------------------

@app.route('/api/players', methods=['GET'])
def api_players():
    """Players ranked by points, optionally filtered by ?q=."""
    players = rank_players(load_players())
    return jsonify({'players': search_players(players, request.args.get('q', ''))})


@app.route('/api/players', methods=['POST'])
@manager_required
def api_create_player():
    try:
        fields = validate_player_form(_request_data())
    except ValueError as e:
        return _error(str(e))
    player = Player(new_id(), **fields)
    get_store().set(PLAYERS, player.id, player.to_dict())
    app.logger.info(f'Player added: {player.name}')
    return jsonify({'success': True, 'player': player.to_dict()}), 201


@app.route('/api/players/<player_id>', methods=['POST'])
@manager_required
def api_update_player(player_id):
    store = get_store()
    existing = store.get(PLAYERS, player_id)
    if existing is None:
        return _error('Player not found', 404)
    data = _request_data()
    merged = {**existing, **{k: v for k, v in data.items() if k in ('name', 'points', 'photo_url')}}
    try:
        fields = validate_player_form(merged)
    except ValueError as e:
        return _error(str(e))
    player = Player(player_id, **fields)
    store.set(PLAYERS, player_id, player.to_dict())
    return jsonify({'success': True, 'player': player.to_dict()})


@app.route('/api/players/<player_id>', methods=['DELETE'])
@manager_required
def api_delete_player(player_id):
    if not get_store().delete(PLAYERS, player_id):
        return _error('Player not found', 404)
    return jsonify({'success': True})


# -- Logos -----------------------------------------------------------------

@app.route('/api/logos', methods=['GET'])
def api_logos():
    logos = [Logo.from_dict(l).to_dict() for l in get_store().list(LOGOS)]
    return jsonify({'logos': sort_logos(logos)})


@app.route('/api/logos', methods=['POST'])
@manager_required
def api_create_logo():
    try:
        fields = validate_logo_form(_request_data())
    except ValueError as e:
        return _error(str(e))
    logo = Logo(new_id(), **fields)
    get_store().set(LOGOS, logo.id, logo.to_dict())
    return jsonify({'success': True, 'logo': logo.to_dict()}), 201


@app.route('/api/logos/<logo_id>', methods=['DELETE'])
@manager_required
def api_delete_logo(logo_id):
    if not get_store().delete(LOGOS, logo_id):
        return _error('Logo not found', 404)
    return jsonify({'success': True})


# -- Brackets --------------------------------------------------------------

def _bracket_format(bracket_id: str):
    """Format of a bracket page; manual pages can be resized by the manager."""
    key = BRACKETS.get(bracket_id)
    if not key:
        return None
    if FORMATS[key].manual:
        override = (get_store().get(CONFIG, f'bracket_{bracket_id}') or {}).get('format')
        if override in FORMATS and FORMATS[override].manual:
            return FORMATS[override]
    return FORMATS[key]


def load_bracket(bracket_id: str) -> list:
    """
    Load the matches of a bracket page.

    An empty bracket is seeded with fresh matches; they are only written to
    the store when a manager is looking, so viewers never cause writes.
    """
    fmt = _bracket_format(bracket_id)
    store = get_store()
    collection = _matches_collection(bracket_id)
    stored = store.list(collection)
    if stored:
        return normalize_matches(fmt, stored)
    matches = initialize_matches(fmt)
    if is_manager():
        if not store.seed(collection, {m['id']: m for m in matches}):
            # Filled by a concurrent request since the read above
            return normalize_matches(fmt, store.list(collection))
        app.logger.info(f'Initialized {len(matches)} matches for {bracket_id}')
    return matches


def _bracket_payload(bracket_id: str, matches: list, **extra) -> dict:
    fmt = _bracket_format(bracket_id)
    payload = {
        'success': True,
        'bracket': bracket_id,
        'format': fmt.key,
        'label': fmt.label,
        'manual': fmt.manual,
        'entrants': fmt.size,
        'matches': matches,
        'champion': get_champion(fmt, matches),
        'needs_bracket_reset': needs_bracket_reset(fmt, matches),
    }
    payload.update(extra)
    return payload


def _save_match(bracket_id: str, match_id: str, player1, player2, score1: int, score2: int, race_to: int):
    """Record a match and write every match whose slots changed."""
    fmt = _bracket_format(bracket_id)
    store = get_store()
    with store.locked():
        matches = load_bracket(bracket_id)
        matches, changed = record_match(fmt, matches, match_id, player1, player2, score1, score2, race_to)
        store.set_many(_matches_collection(bracket_id), {mid: get_match(matches, mid) for mid in changed})
    if len(changed) > 1:
        app.logger.info(f'{bracket_id}: {match_id} advanced players into {", ".join(changed[1:])}')
    return matches, changed


@app.route('/api/brackets/<bracket_id>')
def api_bracket(bracket_id):
    if _bracket_format(bracket_id) is None:
        return _error('Bracket not found', 404)
    return jsonify(_bracket_payload(bracket_id, load_bracket(bracket_id)))


@app.route('/api/brackets/<bracket_id>/matches/<match_id>', methods=['POST'])
@manager_required
def api_save_match(bracket_id, match_id):
    """Save players and scores of one match and advance the result."""
    fmt = _bracket_format(bracket_id)
    if fmt is None:
        return _error('Bracket not found', 404)
    if match_id not in fmt.match_ids:
        return _error('Match not found', 404)
    data = _request_data()
    current = get_match(load_bracket(bracket_id), match_id)
    try:
        player1 = find_player(data.get('player1_id'))
        player2 = find_player(data.get('player2_id'))
    except LookupError as e:
        return _error(str(e))
    try:
        score1 = _int_field(data, 'score1', 0)
        score2 = _int_field(data, 'score2', 0)
        race_to = _int_field(data, 'race_to', current.get('race_to') or DEFAULT_RACE_TO)
        matches, changed = _save_match(bracket_id, match_id, player1, player2, score1, score2, race_to)
    except ValueError as e:
        return _error(str(e))
    return jsonify(_bracket_payload(bracket_id, matches, changed=changed))


@app.route('/api/brackets/<bracket_id>/matches/<match_id>/step', methods=['POST'])
@manager_required
def api_step_match_score(bracket_id, match_id):
    """
    Add or remove one point in the match editor.

    Requires: slot ('player1'/'player2') and action ('increment', 'decrement'
    or 'confirm') in the JSON body. A point that would win the match is not
    applied on 'increment'; the response sets pending_winner and the editor
    sends 'confirm' to apply it.
    """
    fmt = _bracket_format(bracket_id)
    if fmt is None:
        return _error('Bracket not found', 404)
    if match_id not in fmt.match_ids:
        return _error('Match not found', 404)
    data = _request_data()
    slot = data.get('slot')
    action = data.get('action')
    if slot not in ('player1', 'player2'):
        return _error('Invalid slot')
    if action not in ('increment', 'decrement', 'confirm'):
        return _error('Invalid action')

    with get_store().locked():
        match = get_match(load_bracket(bracket_id), match_id)
        score_key, other_key = ('score1', 'score2') if slot == 'player1' else ('score2', 'score1')
        scores = {'score1': match['score1'], 'score2': match['score2']}
        race_to = match['race_to']
        pending_winner = None
        if action == 'increment':
            scores[score_key], needs_confirm = increment_score(scores[score_key], scores[other_key], race_to)
            if needs_confirm:
                pending_winner = slot
        elif action == 'decrement':
            scores[score_key] = decrement_score(scores[score_key])
        else:
            _, needs_confirm = increment_score(scores[score_key], scores[other_key], race_to)
            if not needs_confirm:
                return _error('No winning point is pending for this player')
            scores[score_key] = race_to

        try:
            matches, changed = _save_match(bracket_id, match_id, match['player1'], match['player2'],
                                           scores['score1'], scores['score2'], race_to)
        except ValueError as e:
            return _error(str(e))
    return jsonify(_bracket_payload(bracket_id, matches, changed=changed, pending_winner=pending_winner))


@app.route('/api/brackets/<bracket_id>/reset', methods=['POST'])
@manager_required
def api_reset_bracket(bracket_id):
    fmt = _bracket_format(bracket_id)
    if fmt is None:
        return _error('Bracket not found', 404)
    matches = reset_tournament(fmt)
    get_store().set_many(_matches_collection(bracket_id), {m['id']: m for m in matches}, replace=True)
    return jsonify(_bracket_payload(bracket_id, matches))


@app.route('/api/brackets/<bracket_id>/entrants', methods=['POST'])
@manager_required
def api_set_bracket_entrants(bracket_id):
    """
    Change the player count of a manual bracket.

    Requires: total_players in the JSON body. Each player past eight adds a
    qualifying match, so the bracket starts over with fresh matches.
    """
    fmt = _bracket_format(bracket_id)
    if fmt is None:
        return _error('Bracket not found', 404)
    if not fmt.manual:
        return _error('Only manual brackets can change their player count')
    try:
        entrants = _int_field(_request_data(), 'total_players')
        new_fmt = get_format('manual', entrants)
    except ValueError as e:
        return _error(str(e))
    store = get_store()
    with store.locked():
        store.set(CONFIG, f'bracket_{bracket_id}', {'format': new_fmt.key})
        matches = initialize_matches(new_fmt)
        store.set_many(_matches_collection(bracket_id), {m['id']: m for m in matches}, replace=True)
    app.logger.info(f'{bracket_id}: resized to {entrants} players, {len(matches)} matches')
    return jsonify(_bracket_payload(bracket_id, matches))


@app.route('/api/brackets/<bracket_id>/summary')
def api_bracket_summary(bracket_id):
    """Champion and every matchup, for the end-of-tournament receipt."""
    fmt = _bracket_format(bracket_id)
    if fmt is None:
        return _error('Bracket not found', 404)
    return jsonify(tournament_summary(fmt, load_bracket(bracket_id)))


# -- Overlays --------------------------------------------------------------

def load_overlay(overlay_id: str) -> dict:
    state = load_state(OVERLAYS[overlay_id], get_store().get(CURRENT_MATCH, overlay_id))
    config = get_store().get(CONFIG, overlay_id) or {}
    if config.get('logo_url'):
        state['logo_url'] = config['logo_url']
    return state


def _overlay_payload(overlay_id: str, state: dict, **extra) -> dict:
    slots = []
    for i, slot in enumerate(state['slots']):
        player = slot['player']
        avatar = (player or {}).get('photo_url') or placeholder_avatar((player or {}).get('id'), i + 1)
        slots.append({**slot, 'avatar': avatar})
    payload = {
        'success': True,
        'overlay': overlay_id,
        'layout': state['layout'],
        'state': {**state, 'slots': slots},
        'winner': find_winner(state),
        'ball_numbers': ball_numbers(state['game_mode']),
    }
    payload.update(extra)
    return payload


def _update_overlay(overlay_id: str, change, result_key: str = None):
    """Load an overlay, apply change(state), save it and answer with the new state."""
    if overlay_id not in OVERLAYS:
        return _error('Overlay not found', 404)
    store = get_store()
    with store.locked():
        state = load_overlay(overlay_id)
        try:
            result = change(state)
        except (ValueError, LookupError) as e:
            return _error(str(e))
        doc = to_document(state)
        doc['updated_at'] = datetime.now().isoformat()
        store.set(CURRENT_MATCH, overlay_id, doc)
    extra = {result_key: result} if result_key else {}
    return jsonify(_overlay_payload(overlay_id, state, **extra))


@app.route('/api/overlays/<overlay_id>')
def api_overlay(overlay_id):
    if overlay_id not in OVERLAYS:
        return _error('Overlay not found', 404)
    return jsonify(_overlay_payload(overlay_id, load_overlay(overlay_id)))


@app.route('/api/overlays/<overlay_id>/players', methods=['POST'])
@manager_required
def api_overlay_select_player(overlay_id):
    """Put a player in a slot. Requires: slot, player_id (empty to clear)."""
    data = _request_data()
    if overlay_id in OVERLAYS and load_overlay(overlay_id)['is_live']:
        return _error('Player selection is disabled while live', 403)
    return _update_overlay(overlay_id,
                           lambda s: select_player(s, data.get('slot'), find_player(data.get('player_id'))))


@app.route('/api/overlays/<overlay_id>/score', methods=['POST'])
@manager_required
def api_overlay_score(overlay_id):
    data = _request_data()

    def change(state):
        adjust_score(state, data.get('slot'), _int_field(data, 'delta'))

    return _update_overlay(overlay_id, change)


@app.route('/api/overlays/<overlay_id>/race-to', methods=['POST'])
@manager_required
def api_overlay_race_to(overlay_id):
    """Set race-to with 'race_to', or step it with 'delta'."""
    data = _request_data()

    def change(state):
        if 'delta' in data:
            step_race_to(state, _int_field(data, 'delta'))
        else:
            set_race_to(state, _int_field(data, 'race_to'))

    return _update_overlay(overlay_id, change)


@app.route('/api/overlays/<overlay_id>/turn', methods=['POST'])
@manager_required
def api_overlay_turn(overlay_id):
    """Set the turn to 'slot' (null clears it), or pass it on with cycle=true."""
    data = _request_data()

    def change(state):
        if data.get('cycle'):
            cycle_turn(state)
        else:
            set_turn(state, data.get('slot') or None)

    return _update_overlay(overlay_id, change)


@app.route('/api/overlays/<overlay_id>/balls', methods=['POST'])
@manager_required
def api_overlay_toggle_ball(overlay_id):
    data = _request_data()
    return _update_overlay(overlay_id, lambda s: toggle_ball(s, _int_field(data, 'ball')))


@app.route('/api/overlays/<overlay_id>/balls/reset', methods=['POST'])
@manager_required
def api_overlay_reset_balls(overlay_id):
    return _update_overlay(overlay_id, reset_balls)


@app.route('/api/overlays/<overlay_id>/scores/reset', methods=['POST'])
@manager_required
def api_overlay_reset_scores(overlay_id):
    return _update_overlay(overlay_id, reset_scores)


@app.route('/api/overlays/<overlay_id>/game-mode', methods=['POST'])
@manager_required
def api_overlay_game_mode(overlay_id):
    data = _request_data()
    return _update_overlay(overlay_id, lambda s: set_game_mode(s, data.get('game_mode')))


@app.route('/api/overlays/<overlay_id>/live', methods=['POST'])
@manager_required
def api_overlay_live(overlay_id):
    """GO LIVE / leave live. Toggles when 'is_live' is not given."""
    data = _request_data()

    def change(state):
        set_live(state, data['is_live'] if 'is_live' in data else not state['is_live'])

    return _update_overlay(overlay_id, change)


@app.route('/api/overlays/<overlay_id>/logo', methods=['POST'])
@manager_required
def api_overlay_logo(overlay_id):
    """Pick the overlay logo from the logos collection (logo_id) or by URL."""
    if overlay_id not in OVERLAYS:
        return _error('Overlay not found', 404)
    data = _request_data()
    logo_url = data.get('logo_url') or ''
    if data.get('logo_id'):
        logo = get_store().get(LOGOS, data['logo_id'])
        if logo is None:
            return _error('Logo not found', 404)
        logo_url = logo.get('logo_url') or ''
    get_store().set(CONFIG, overlay_id, {'logo_url': logo_url}, merge=True)
    return jsonify(_overlay_payload(overlay_id, load_overlay(overlay_id)))


@app.route('/api/overlays/<overlay_id>/winner/close', methods=['POST'])
@manager_required
def api_overlay_close_winner(overlay_id):
    return _update_overlay(overlay_id, close_winner)


@app.route('/api/overlays/<overlay_id>/key', methods=['POST'])
@manager_required
def api_overlay_key(overlay_id):
    """Apply a keyboard shortcut sent by the overlay page."""
    key = str(_request_data().get('key') or '')
    if not key:
        return _error('key is required')
    return _update_overlay(overlay_id, lambda s: apply_key(s, key, time.time()),
                           result_key='action')


# -- Standby ---------------------------------------------------------------

def _load_standby() -> dict:
    return get_store().get(CONFIG, STANDBY_DOC) or {}


def _standby_payload(state: dict) -> dict:
    return {'success': True, 'countdown': current_countdown(state, datetime.now()), 'options': time_options()}


@app.route('/api/standby')
def api_standby():
    return jsonify(_standby_payload(_load_standby()))


@app.route('/api/standby/start', methods=['POST'])
@manager_required
def api_standby_start():
    start_time = str(_request_data().get('start_time') or '').strip()
    if start_time not in {o['value'] for o in time_options()}:
        return _error('Invalid start time')
    state = start_countdown(start_time, datetime.now())
    get_store().set(CONFIG, STANDBY_DOC, state)
    return jsonify(_standby_payload(state))


@app.route('/api/standby/stop', methods=['POST'])
@manager_required
def api_standby_stop():
    state = stop_countdown(_load_standby(), datetime.now())
    get_store().set(CONFIG, STANDBY_DOC, state)
    return jsonify(_standby_payload(state))


@app.route('/api/standby/reset', methods=['POST'])
@manager_required
def api_standby_reset():
    state = reset_countdown()
    get_store().set(CONFIG, STANDBY_DOC, state)
    return jsonify(_standby_payload(state))


# -- Live updates ----------------------------------------------------------

@app.route('/api/live-stream')
def api_live_stream():
    """Server-Sent Events stream that notifies overlays when stored data changes."""
    store = get_store()
    collections = _watched_collections()

    def generate():
        """Yield SSE events, checking collection mtimes every few seconds."""
        # Send immediate connected event so the overlay shows "Live" status right away
        yield "event: connected\ndata: ok\n\n"

        last_mtimes = store.mtimes(collections)
        heartbeat_counter = 0

        while True:
            time.sleep(STREAM_POLL_SECONDS)
            heartbeat_counter += STREAM_POLL_SECONDS

            current_mtimes = store.mtimes(collections)
            if current_mtimes != last_mtimes:
                changed = [c for c in collections if current_mtimes[c] != last_mtimes[c]]
                last_mtimes = current_mtimes
                yield f"event: update\ndata: {','.join(changed)}\n\n"

            if heartbeat_counter >= STREAM_HEARTBEAT_SECONDS:
                heartbeat_counter = 0
                yield ": heartbeat\n\n"

    return Response(
        stream_with_context(generate()),
        mimetype='text/event-stream',
        headers={
            'Cache-Control': 'no-cache',
            'X-Accel-Buffering': 'no',
        },
    )


if __name__ == '__main__':
    app.run(debug=True, port=5000)
