"""
Standby screen countdown to the start of the stream.
"""
from datetime import datetime, timedelta
from typing import Dict, List

FIRST_START_HOUR = 12
LAST_START_HOUR = 20
DEFAULT_START_TIME = '15:00'


def time_options() -> List[Dict[str, str]]:
    """Selectable start times, every 30 minutes from noon through the 20:00 hour."""
    options = []
    for hour in range(FIRST_START_HOUR, LAST_START_HOUR + 1):
        for minutes in (0, 30):
            value = f"{hour:02d}:{minutes:02d}"
            label = datetime(2000, 1, 1, hour, minutes).strftime('%I:%M %p').lstrip('0')
            options.append({'value': value, 'label': label})
    return options


def _parse_start_time(start_time: str):
    try:
        parsed = datetime.strptime(start_time, '%H:%M')
    except (TypeError, ValueError):
        raise ValueError(f"Invalid start time: {start_time!r}")
    return parsed.hour, parsed.minute


def start_countdown(start_time: str, now: datetime) -> Dict:
    """
    Start counting down to start_time.

    If that time has already passed today (or is right now), the countdown
    targets the same time tomorrow.
    """
    hour, minute = _parse_start_time(start_time)
    target = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if target <= now:
        target += timedelta(days=1)
    return {
        'start_time': start_time,
        'is_running': True,
        'time_left': int((target - now).total_seconds()),
        'started_at': now.isoformat(),
    }


def remaining_seconds(state: Dict, now: datetime) -> int:
    """Seconds left on a countdown, never negative."""
    time_left = int(state.get('time_left') or 0)
    if not state.get('is_running') or not state.get('started_at'):
        return max(0, time_left)
    elapsed = int((now - datetime.fromisoformat(state['started_at'])).total_seconds())
    return max(0, time_left - elapsed)


def current_countdown(state: Dict, now: datetime) -> Dict:
    """Countdown as seen at `now`; a countdown that ran out is no longer running."""
    if not state:
        return reset_countdown()
    remaining = remaining_seconds(state, now)
    return {
        'start_time': state.get('start_time') or DEFAULT_START_TIME,
        'is_running': bool(state.get('is_running')) and remaining > 0,
        'time_left': remaining,
        'started_at': state.get('started_at'),
        'display': format_time(remaining),
    }


def stop_countdown(state: Dict, now: datetime) -> Dict:
    """Pause a countdown, keeping the time that was left."""
    return {
        'start_time': state.get('start_time') or DEFAULT_START_TIME,
        'is_running': False,
        'time_left': remaining_seconds(state, now),
        'started_at': None,
    }


def reset_countdown() -> Dict:
    return {
        'start_time': DEFAULT_START_TIME,
        'is_running': False,
        'time_left': 0,
        'started_at': None,
        'display': format_time(0),
    }


def format_time(seconds: int) -> str:
    hours = seconds // 3600
    minutes = (seconds % 3600) // 60
    secs = seconds % 60
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"
