"""
Player and logo administration helpers.
"""
import uuid
from typing import Dict, List


def new_id() -> str:
    return uuid.uuid4().hex[:20]


def validate_player_form(form: Dict) -> Dict:
    """Clean a submitted player form. Raises ValueError on bad input."""
    name = str(form.get('name') or '').strip()
    if not name:
        raise ValueError('Player name is required.')
    raw_points = form.get('points')
    if raw_points in (None, ''):
        points = 0
    else:
        try:
            points = int(raw_points)
        except (TypeError, ValueError):
            raise ValueError('Points must be a whole number.')
    if points < 0:
        raise ValueError('Points cannot be negative.')
    photo_url = str(form.get('photo_url') or '').strip()
    return {'name': name, 'points': points, 'photo_url': photo_url}


def validate_logo_form(form: Dict) -> Dict:
    name = str(form.get('name') or '').strip()
    logo_url = str(form.get('logo_url') or '').strip()
    if not name:
        raise ValueError('Logo name is required.')
    if not logo_url:
        raise ValueError('Logo image is required.')
    return {'name': name, 'logo_url': logo_url}


def rank_players(players: List[Dict]) -> List[Dict]:
    """Sort by points (highest first), then name, and number the ranks from 1."""
    ordered = sorted(players, key=lambda p: (-(p.get('points') or 0), (p.get('name') or '').lower()))
    return [{**p, 'rank': i + 1} for i, p in enumerate(ordered)]


def search_players(players: List[Dict], query: str) -> List[Dict]:
    """Case-insensitive name filter. An empty query matches everyone."""
    query = (query or '').strip().lower()
    if not query:
        return list(players)
    return [p for p in players if query in (p.get('name') or '').lower()]


def sort_logos(logos: List[Dict]) -> List[Dict]:
    return sorted(logos, key=lambda l: (l.get('name') or '').lower())
