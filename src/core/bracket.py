"""
Bracket advancement for the fixed elimination formats.

Matches are plain dicts (see core.models). A completed match pushes its
winner, and in double elimination its loser, into the slot named by the
format's advancement table. The grand final is special: if the losers bracket
champion wins it, both finalists meet again in the bracket reset match.
"""
import copy
import logging
from typing import Dict, List, Optional, Tuple

from .formats import BracketFormat, SLOTS

logger = logging.getLogger(__name__)

MIN_RACE_TO = 1
MAX_RACE_TO = 50
DEFAULT_RACE_TO = 9


def _default_match(fmt: BracketFormat, match_id: str, race_to: int) -> Dict:
    return {
        'id': match_id,
        'match_number': fmt.match_number(match_id),
        'player1': None,
        'player2': None,
        'score1': 0,
        'score2': 0,
        'race_to': race_to,
        'winner': None,
        'status': 'pending',
        'round': fmt.round_labels[match_id],
        'bracket': fmt.bracket_of(match_id),
    }


def initialize_matches(fmt: BracketFormat, race_to: int = DEFAULT_RACE_TO) -> List[Dict]:
    """Create the empty match list of a format, in bracket order."""
    return [_default_match(fmt, match_id, race_to) for match_id in fmt.match_ids]


def reset_tournament(fmt: BracketFormat, race_to: int = DEFAULT_RACE_TO) -> List[Dict]:
    """Start the bracket over: every match empty and pending."""
    logger.info(f"Resetting {fmt.key} bracket")
    return initialize_matches(fmt, race_to)


def normalize_matches(fmt: BracketFormat, stored: List[Dict]) -> List[Dict]:
    """
    Return exactly the format's matches, in order.

    Stored documents are used where present; missing matches get defaults and
    stored matches that are not part of the format are dropped.
    """
    by_id = {m.get('id'): m for m in stored if m}
    matches = []
    for match_id in fmt.match_ids:
        match = _default_match(fmt, match_id, DEFAULT_RACE_TO)
        if match_id in by_id:
            match.update({k: v for k, v in by_id[match_id].items() if v is not None or k in SLOTS})
        matches.append(match)
    return matches


def get_match(matches: List[Dict], match_id: str) -> Optional[Dict]:
    return next((m for m in matches if m['id'] == match_id), None)


def winner_of(match: Optional[Dict]) -> Optional[Dict]:
    """Return the winning player dict of a match, if it has one."""
    if not match or not match.get('winner'):
        return None
    if not match.get('player1') or not match.get('player2'):
        return None
    return match[match['winner']]


def loser_of(match: Optional[Dict]) -> Optional[Dict]:
    if winner_of(match) is None:
        return None
    return match['player2'] if match['winner'] == 'player1' else match['player1']


def _same_player(a: Optional[Dict], b: Optional[Dict]) -> bool:
    return bool(a and b and a.get('id') == b.get('id'))


def validate_race_to(race_to) -> int:
    if isinstance(race_to, bool) or not isinstance(race_to, int):
        raise ValueError("Race-to must be a whole number")
    if race_to < MIN_RACE_TO or race_to > MAX_RACE_TO:
        raise ValueError(f"Race-to must be between {MIN_RACE_TO} and {MAX_RACE_TO}")
    return race_to


def determine_result(player1: Optional[Dict], player2: Optional[Dict], score1: int, score2: int,
                     race_to: int) -> Tuple[Optional[str], str]:
    """
    Determine winner slot and status from scores.

    Returns:
        (winner, status) where winner is 'player1', 'player2' or None and
        status is 'pending', 'in_progress' or 'completed'.
    """
    for score in (score1, score2):
        if isinstance(score, bool) or not isinstance(score, int) or score < 0:
            raise ValueError("Scores must be non-negative whole numbers")
    validate_race_to(race_to)

    if not player1 or not player2:
        return None, 'pending'
    if score1 >= race_to and score1 > score2:
        return 'player1', 'completed'
    if score2 >= race_to and score2 > score1:
        return 'player2', 'completed'
    return None, 'in_progress'


def get_losers_champion(fmt: BracketFormat, matches: List[Dict]) -> Optional[Dict]:
    """Winner of the losers final, or None if it has not been decided."""
    if not fmt.double:
        return None
    return winner_of(get_match(matches, fmt.losers_final))


def needs_bracket_reset(fmt: BracketFormat, matches: List[Dict]) -> bool:
    """True when the grand final was won by the losers bracket champion."""
    if not fmt.double:
        return False
    gf_winner = winner_of(get_match(matches, fmt.grand_final))
    return _same_player(gf_winner, get_losers_champion(fmt, matches))


def get_champion(fmt: BracketFormat, matches: List[Dict]) -> Optional[Dict]:
    """
    Return the tournament champion, or None while the bracket is undecided.

    Double elimination: winner of the bracket reset if it was played,
    otherwise winner of the grand final unless that winner came from the
    losers bracket (the reset match still has to be played).
    """
    if not fmt.double:
        final = get_match(matches, fmt.final)
        if final and final.get('status') == 'completed':
            return winner_of(final)
        return None

    reset = get_match(matches, fmt.bracket_reset)
    if reset and reset.get('status') == 'completed' and winner_of(reset):
        return winner_of(reset)

    grand_final = get_match(matches, fmt.grand_final)
    if grand_final and grand_final.get('status') == 'completed' and winner_of(grand_final):
        if needs_bracket_reset(fmt, matches):
            return None
        return winner_of(grand_final)
    return None


def _set_slot(matches: List[Dict], match_id: str, slot: str, player: Optional[Dict]) -> bool:
    """Put a player into a slot. Returns True if the slot changed."""
    target = get_match(matches, match_id)
    if target is None:
        logger.warning(f"Advancement target {match_id} not found")
        return False
    if target.get(slot) == player:
        return False
    target[slot] = copy.deepcopy(player)
    return True


def _apply_grand_final(fmt: BracketFormat, matches: List[Dict], grand_final: Dict) -> bool:
    """Fill or clear the bracket reset match after the grand final is edited."""
    reset = get_match(matches, fmt.bracket_reset)
    if reset is None:
        return False
    if needs_bracket_reset(fmt, matches):
        changed = _set_slot(matches, fmt.bracket_reset, 'player1', grand_final['player1'])
        changed = _set_slot(matches, fmt.bracket_reset, 'player2', grand_final['player2']) or changed
        if changed:
            logger.info(f"{fmt.key}: losers bracket champion won the grand final, bracket reset")
        return changed
    if reset.get('status') != 'completed' and (reset.get('player1') or reset.get('player2')):
        reset['player1'] = None
        reset['player2'] = None
        reset['score1'] = 0
        reset['score2'] = 0
        reset['winner'] = None
        reset['status'] = 'pending'
        return True
    return False


def record_match(fmt: BracketFormat, matches: List[Dict], match_id: str,
                 player1: Optional[Dict], player2: Optional[Dict],
                 score1: int, score2: int, race_to: int) -> Tuple[List[Dict], List[str]]:
    """
    Save the state of one match and propagate the outcome downstream.

    Args:
        fmt: Bracket format the matches belong to
        matches: Current match list (not modified)
        match_id: Match being edited
        player1, player2: Player dicts or None
        score1, score2: Current scores
        race_to: Target score of the match

    Returns:
        (updated matches, ids of the matches that changed). The edited match
        comes first, followed by downstream matches whose slots changed.
    """
    if match_id not in fmt.match_ids:
        raise ValueError(f"Unknown match: {match_id}")

    winner, status = determine_result(player1, player2, score1, score2, race_to)
    matches = normalize_matches(fmt, copy.deepcopy(matches))
    match = get_match(matches, match_id)
    match.update({
        'player1': copy.deepcopy(player1) if player1 else None,
        'player2': copy.deepcopy(player2) if player2 else None,
        'score1': score1,
        'score2': score2,
        'race_to': race_to,
        'winner': winner,
        'status': status,
    })
    changed = [match_id]

    # Any grand final edit can fill or empty the bracket reset
    if fmt.double and match_id == fmt.grand_final:
        if _apply_grand_final(fmt, matches, match) and fmt.bracket_reset not in changed:
            changed.append(fmt.bracket_reset)

    if status != 'completed':
        return matches, changed

    routes = fmt.advancement.get(match_id, {})
    outcomes = {'winner': winner_of(match), 'loser': loser_of(match)}
    for outcome in ('winner', 'loser'):
        if outcome not in routes:
            continue
        target_id, slot = routes[outcome]
        if _set_slot(matches, target_id, slot, outcomes[outcome]) and target_id not in changed:
            changed.append(target_id)

    champion = get_champion(fmt, matches)
    if champion:
        logger.info(f"{fmt.key}: champion decided: {champion.get('name')}")
    return matches, changed


def increment_score(score: int, other: int, race_to: int) -> Tuple[int, bool]:
    """
    Step a score up by one for the match editor.

    The score never passes race_to. When the next point would win the match
    the score is left unchanged and the second value is True, so the caller
    can ask for confirmation before applying the winning point.
    """
    if score >= race_to:
        return score, False
    following = score + 1
    if following == race_to and following > other:
        return score, True
    return following, False


def decrement_score(score: int) -> int:
    return max(0, score - 1)


def tournament_summary(fmt: BracketFormat, matches: List[Dict]) -> Dict:
    """Champion and one line per match, for the end-of-tournament receipt."""
    matches = normalize_matches(fmt, matches)
    lines = []
    for m in matches:
        lines.append({
            'match_number': m['match_number'],
            'round': m.get('round') or '-',
            'player1': (m.get('player1') or {}).get('name', '-'),
            'player2': (m.get('player2') or {}).get('name', '-'),
            'score1': m.get('score1') or 0,
            'score2': m.get('score2') or 0,
            'winner': m.get('winner'),
        })
    return {
        'format': fmt.label,
        'champion': get_champion(fmt, matches),
        'matches': lines,
    }
