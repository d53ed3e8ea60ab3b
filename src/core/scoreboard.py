"""
Live scoreboard state for overlay pages.

A scoreboard holds the players on screen, their scores, whose turn it is,
which balls are pocketed, the game mode and the race-to target. The state is
a plain dict so it can be stored as the overlay's current match document.
"""
import copy
from typing import Dict, List, Optional

from .bracket import MIN_RACE_TO, MAX_RACE_TO, validate_race_to

GAME_MODES = ('9-ball', '10-ball', '15-ball')
DEFAULT_GAME_MODE = '9-ball'
RESET_DOUBLE_PRESS_SECONDS = 0.5

LAYOUTS = {
    'two-player': {'slots': ['player1', 'player2'], 'race_to': 9},
    'three-player': {'slots': ['player1', 'player2', 'player3'], 'race_to': 7},
    'eight-team': {'slots': [f'team{i}' for i in range(1, 9)], 'race_to': 5,
                   'keys': {'-', '_', '+', '=', 'Delete', 'Del', 'r', 'R'}},
}

# Score keys per slot position: (increment, decrement)
SCORE_KEYS = [('q', 'a'), ('w', 's'), ('e', 'd')]
TURN_KEYS = ['z', 'x', 'c']


def ball_numbers(game_mode: str) -> List[int]:
    """Balls shown on the overlay for a game mode. 15-ball shows none."""
    if game_mode == '10-ball':
        return list(range(1, 11))
    if game_mode == '15-ball':
        return []
    return list(range(1, 10))


def placeholder_avatar(player_id: Optional[str], default_index: int = 1) -> str:
    """Pick one of six placeholder avatars, stable per player id."""
    if not player_id:
        return f"/avatar-placeholder-{default_index}.svg"
    n = sum(ord(ch) for ch in player_id) % 6 + 1
    return f"/avatar-placeholder-{n}.svg"


def _slot_names(state: Dict) -> List[str]:
    return LAYOUTS[state['layout']]['slots']


def _slot_index(state: Dict, slot: str) -> int:
    names = _slot_names(state)
    if slot not in names:
        raise ValueError(f"Unknown slot: {slot}")
    return names.index(slot)


def new_state(layout: str) -> Dict:
    if layout not in LAYOUTS:
        raise ValueError(f"Unknown layout: {layout}")
    layout_def = LAYOUTS[layout]
    return {
        'layout': layout,
        'slots': [{'name': name, 'player': None, 'score': 0} for name in layout_def['slots']],
        'current_turn': None,
        'pocketed_balls': [],
        'game_mode': DEFAULT_GAME_MODE,
        'race_to': layout_def['race_to'],
        'is_live': False,
        'logo_url': '',
        'last_reset_press': 0.0,
    }


def load_state(layout: str, doc: Optional[Dict]) -> Dict:
    """Build a state from a stored document, keeping defaults for anything invalid."""
    state = new_state(layout)
    if not doc:
        return state
    stored_slots = {s.get('name'): s for s in doc.get('slots') or [] if isinstance(s, dict)}
    for slot in state['slots']:
        stored = stored_slots.get(slot['name'])
        if not stored:
            continue
        if isinstance(stored.get('player'), dict) and stored['player'].get('id'):
            slot['player'] = stored['player']
        score = stored.get('score')
        if isinstance(score, int) and not isinstance(score, bool) and score >= 0:
            slot['score'] = score
    if doc.get('current_turn') in _slot_names(state):
        state['current_turn'] = doc['current_turn']
    if doc.get('game_mode') in GAME_MODES:
        state['game_mode'] = doc['game_mode']
    allowed = ball_numbers(state['game_mode'])
    balls = doc.get('pocketed_balls') or []
    if isinstance(balls, list):
        state['pocketed_balls'] = sorted({b for b in balls if b in allowed})
    race_to = doc.get('race_to')
    if isinstance(race_to, int) and MIN_RACE_TO <= race_to <= MAX_RACE_TO:
        state['race_to'] = race_to
    state['is_live'] = bool(doc.get('is_live'))
    state['logo_url'] = doc.get('logo_url') or ''
    state['last_reset_press'] = float(doc.get('last_reset_press') or 0.0)
    return state


def to_document(state: Dict) -> Dict:
    """Copy of the state suitable for the store."""
    return copy.deepcopy(state)


def select_player(state: Dict, slot: str, player: Optional[Dict]) -> Dict:
    """Put a player (or nobody) in a slot. Not allowed while the overlay is live."""
    if state['is_live']:
        raise ValueError("Player selection is disabled while live")
    idx = _slot_index(state, slot)
    state['slots'][idx]['player'] = copy.deepcopy(player) if player else None
    return state


def adjust_score(state: Dict, slot: str, delta: int) -> Dict:
    idx = _slot_index(state, slot)
    entry = state['slots'][idx]
    entry['score'] = max(0, entry['score'] + delta)
    return state


def set_race_to(state: Dict, race_to: int) -> Dict:
    state['race_to'] = validate_race_to(race_to)
    return state


def step_race_to(state: Dict, delta: int) -> Dict:
    state['race_to'] = min(MAX_RACE_TO, max(MIN_RACE_TO, state['race_to'] + delta))
    return state


def set_turn(state: Dict, slot: Optional[str]) -> Dict:
    if slot is not None:
        _slot_index(state, slot)
    state['current_turn'] = slot
    return state


def cycle_turn(state: Dict) -> Dict:
    """Pass the turn to the next slot, wrapping around; start at the first slot."""
    names = _slot_names(state)
    current = state['current_turn']
    if current not in names:
        state['current_turn'] = names[0]
    else:
        state['current_turn'] = names[(names.index(current) + 1) % len(names)]
    return state


def toggle_ball(state: Dict, number: int) -> Dict:
    """Mark a ball pocketed, or back on the table. Balls outside the game mode are ignored."""
    if number not in ball_numbers(state['game_mode']):
        return state
    balls = set(state['pocketed_balls'])
    balls.symmetric_difference_update({number})
    state['pocketed_balls'] = sorted(balls)
    return state


def reset_balls(state: Dict) -> Dict:
    state['pocketed_balls'] = []
    return state


def set_game_mode(state: Dict, game_mode: str) -> Dict:
    if game_mode not in GAME_MODES:
        raise ValueError(f"Unknown game mode: {game_mode}")
    state['game_mode'] = game_mode
    allowed = ball_numbers(game_mode)
    state['pocketed_balls'] = [b for b in state['pocketed_balls'] if b in allowed]
    return state


def set_live(state: Dict, is_live: bool) -> Dict:
    state['is_live'] = bool(is_live)
    return state


def reset_scores(state: Dict) -> Dict:
    for slot in state['slots']:
        slot['score'] = 0
    state['current_turn'] = None
    return state


def find_winner(state: Dict) -> Optional[Dict]:
    """First slot, in order, whose player reached the race-to target."""
    for slot in state['slots']:
        if slot['player'] and slot['score'] >= state['race_to']:
            return {'slot': slot['name'], 'player': slot['player'], 'score': slot['score']}
    return None


def close_winner(state: Dict) -> Dict:
    """Dismiss the winner announcement and set up the next rack."""
    reset_scores(state)
    reset_balls(state)
    return state


def apply_key(state: Dict, key: str, now: float) -> Optional[str]:
    """
    Apply a keyboard shortcut to the scoreboard.

    Args:
        state: Scoreboard state, modified in place
        key: Key name as reported by the browser ('q', 'Tab', 'Delete', '7', ...)
        now: Current time in seconds, used for the double-press reset

    Returns:
        Name of the action applied, or None if the key does nothing here.
    """
    names = _slot_names(state)
    # Layouts with a restricted key map ignore everything else
    allowed = LAYOUTS[state['layout']].get('keys')
    if allowed is not None and key not in allowed:
        return None

    if key in ('Delete', 'Del', 'Backspace'):
        if find_winner(state):
            close_winner(state)
            return 'close_winner'
        reset_balls(state)
        return 'reset_balls'

    if key == 'Tab':
        cycle_turn(state)
        return 'cycle_turn'

    if key in ('-', '_'):
        step_race_to(state, -1)
        return 'race_to_down'

    if key in ('+', '='):
        step_race_to(state, 1)
        return 'race_to_up'

    if len(key) == 1 and key.isdigit():
        number = 10 if key == '0' else int(key)
        if number not in ball_numbers(state['game_mode']):
            return None
        toggle_ball(state, number)
        return 'toggle_ball'

    key = key.lower()
    for idx, (up, down) in enumerate(SCORE_KEYS):
        if idx >= len(names):
            break
        if key == up:
            adjust_score(state, names[idx], 1)
            return 'score_up'
        if key == down:
            adjust_score(state, names[idx], -1)
            return 'score_down'

    if key in TURN_KEYS:
        idx = TURN_KEYS.index(key)
        if idx >= len(names):
            return None
        set_turn(state, names[idx])
        return 'set_turn'

    if key == 'v':
        set_turn(state, None)
        return 'clear_turn'

    if key == 'r':
        if now - state['last_reset_press'] < RESET_DOUBLE_PRESS_SECONDS:
            reset_scores(state)
            state['last_reset_press'] = 0.0
            return 'reset_scores'
        state['last_reset_press'] = now
        return 'reset_armed'

    return None
