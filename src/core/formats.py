"""
Static bracket topologies.

Each format is a fixed list of matches plus an advancement table saying which
slot of which later match receives the winner (and, in double elimination,
the loser) of every match. Double elimination formats also name the grand
final and the bracket reset match, which is only played when the losers
bracket champion wins the grand final.
"""
from typing import Dict, List, Optional, Tuple

SLOTS = ('player1', 'player2')


def get_round_name(players_in_round: int) -> str:
    """Get the name of a single elimination round based on number of players."""
    if players_in_round == 2:
        return "Final"
    elif players_in_round == 4:
        return "Semifinal"
    elif players_in_round == 8:
        return "Quarterfinal"
    else:
        return f"Round of {players_in_round}"


class BracketFormat:
    def __init__(self, key: str, label: str, match_ids: List[str], round_labels: Dict[str, str],
                 advancement: Dict[str, Dict[str, Tuple[str, str]]], double: bool = False,
                 grand_final: Optional[str] = None, bracket_reset: Optional[str] = None,
                 losers_final: Optional[str] = None, final: Optional[str] = None,
                 manual: bool = False, entrants: Optional[int] = None):
        self.key = key
        self.label = label
        self.match_ids = list(match_ids)
        self.round_labels = dict(round_labels)
        self.advancement = advancement
        self.double = double
        self.grand_final = grand_final
        self.bracket_reset = bracket_reset
        self.losers_final = losers_final
        # Single elimination: the match whose winner is champion
        self.final = final if final else grand_final
        # Manual formats have no advancement; results are entered match by match
        self.manual = manual
        self.entrants = entrants

    @property
    def size(self) -> int:
        if self.entrants:
            return self.entrants
        return len(self.first_round_ids()) * 2

    def match_number(self, match_id: str) -> str:
        return f"M{self.match_ids.index(match_id) + 1}"

    def bracket_of(self, match_id: str) -> str:
        return 'losers' if self.round_labels[match_id].startswith('LB') else 'winners'

    def feeds_into(self, match_id: str) -> List[Tuple[str, str, str]]:
        """Return (source_match, outcome, slot) tuples feeding match_id."""
        feeds = []
        for source in self.match_ids:
            for outcome, target in self.advancement.get(source, {}).items():
                if target[0] == match_id:
                    feeds.append((source, outcome, target[1]))
        return feeds

    def first_round_ids(self) -> List[str]:
        return [m for m in self.match_ids if not self.feeds_into(m) and m != self.bracket_reset]

    def __repr__(self):
        return f"BracketFormat(key={self.key}, matches={len(self.match_ids)})"


def validate_format(fmt: BracketFormat) -> None:
    """Check the advancement table of a format; raise ValueError on the first problem."""
    known = set(fmt.match_ids)
    if len(known) != len(fmt.match_ids):
        raise ValueError(f"{fmt.key}: duplicate match ids")
    for match_id in fmt.match_ids:
        if match_id not in fmt.round_labels:
            raise ValueError(f"{fmt.key}: {match_id} has no round label")
    fed_slots = {}
    for source, routes in fmt.advancement.items():
        if source not in known:
            raise ValueError(f"{fmt.key}: advancement from unknown match {source}")
        for outcome, (target, slot) in routes.items():
            if outcome not in ('winner', 'loser'):
                raise ValueError(f"{fmt.key}: {source} has unknown outcome {outcome}")
            if target not in known:
                raise ValueError(f"{fmt.key}: {source} feeds unknown match {target}")
            if target == source:
                raise ValueError(f"{fmt.key}: {source} feeds itself")
            if slot not in SLOTS:
                raise ValueError(f"{fmt.key}: {source} feeds unknown slot {slot}")
            if (target, slot) in fed_slots:
                raise ValueError(f"{fmt.key}: {target}.{slot} fed by both "
                                 f"{fed_slots[(target, slot)]} and {source}")
            fed_slots[(target, slot)] = source
    for match_id in fmt.match_ids:
        fed = [slot for slot in SLOTS if (match_id, slot) in fed_slots]
        if fed and len(fed) != 2:
            raise ValueError(f"{fmt.key}: {match_id} has only {fed[0]} fed")
    if fmt.double:
        for name in ('grand_final', 'bracket_reset', 'losers_final'):
            if getattr(fmt, name) not in known:
                raise ValueError(f"{fmt.key}: {name} is not a match of the format")
    elif not fmt.manual and fmt.final not in known:
        raise ValueError(f"{fmt.key}: final is not a match of the format")


def _single_elimination(size: int) -> BracketFormat:
    """Build a single elimination format for a power-of-two entrant count."""
    match_ids = []
    round_labels = {}
    advancement = {}
    rounds = []
    players = size
    counter = 1
    while players >= 2:
        ids = [f"m{counter + i}" for i in range(players // 2)]
        counter += len(ids)
        for match_id in ids:
            round_labels[match_id] = get_round_name(players)
        rounds.append(ids)
        match_ids.extend(ids)
        players //= 2
    for current, following in zip(rounds, rounds[1:]):
        for i, match_id in enumerate(current):
            advancement[match_id] = {'winner': (following[i // 2], SLOTS[i % 2])}
    return BracketFormat(
        key=f"single-{size}",
        label=f"{size}-Player Single Elimination",
        match_ids=match_ids,
        round_labels=round_labels,
        advancement=advancement,
        final=match_ids[-1],
    )


DOUBLE_4 = BracketFormat(
    key="double-4",
    label="4-Player Double Elimination",
    match_ids=["m1", "m2", "m3", "m4", "m5", "m6", "m7"],
    round_labels={
        "m1": "WB R1", "m2": "WB R1", "m3": "WB Final",
        "m4": "LB R1", "m5": "LB Final",
        "m6": "Grand Final", "m7": "Bracket Reset",
    },
    advancement={
        "m1": {"winner": ("m3", "player1"), "loser": ("m4", "player1")},
        "m2": {"winner": ("m3", "player2"), "loser": ("m4", "player2")},
        "m3": {"winner": ("m6", "player1"), "loser": ("m5", "player1")},
        "m4": {"winner": ("m5", "player2")},
        "m5": {"winner": ("m6", "player2")},
    },
    double=True,
    grand_final="m6",
    bracket_reset="m7",
    losers_final="m5",
)

# 7 WB + 6 LB + Grand Final + Bracket Reset
DOUBLE_8 = BracketFormat(
    key="double-8",
    label="8-Player Double Elimination",
    match_ids=[f"m{i}" for i in range(1, 16)],
    round_labels={
        "m1": "WB R1", "m2": "WB R1", "m3": "WB R1", "m4": "WB R1",
        "m5": "WB R2", "m6": "WB R2", "m7": "WB Final",
        "m8": "LB R1", "m9": "LB R1", "m10": "LB R2", "m11": "LB R2",
        "m12": "LB R3", "m13": "LB Final",
        "m14": "Grand Final", "m15": "Bracket Reset",
    },
    advancement={
        "m1": {"winner": ("m5", "player1"), "loser": ("m8", "player1")},
        "m2": {"winner": ("m5", "player2"), "loser": ("m8", "player2")},
        "m3": {"winner": ("m6", "player1"), "loser": ("m9", "player1")},
        "m4": {"winner": ("m6", "player2"), "loser": ("m9", "player2")},
        "m5": {"winner": ("m7", "player1"), "loser": ("m10", "player1")},
        "m6": {"winner": ("m7", "player2"), "loser": ("m11", "player1")},
        "m7": {"winner": ("m14", "player1"), "loser": ("m13", "player1")},
        "m8": {"winner": ("m10", "player2")},
        "m9": {"winner": ("m11", "player2")},
        "m10": {"winner": ("m12", "player1")},
        "m11": {"winner": ("m12", "player2")},
        "m12": {"winner": ("m13", "player2")},
        "m13": {"winner": ("m14", "player2")},
    },
    double=True,
    grand_final="m14",
    bracket_reset="m15",
    losers_final="m13",
)

MIN_MANUAL_ENTRANTS = 8
MAX_MANUAL_ENTRANTS = 16

# Fixed part of the manually scored bracket after the qualifying matches
_MANUAL_ROUNDS = [
    ("WB R1", 4), ("WB R2", 2), ("WB R3", 1),
    ("LB Qualifying", 1), ("LB R1", 3), ("LB R2", 2), ("LB R3", 1), ("LB R4", 1),
]


def _manual_double(entrants: int) -> BracketFormat:
    """
    Build the manually scored double elimination layout.

    Every entrant past eight adds one qualifying match in front of WB R1.
    Nothing advances automatically; the manager fills in each match.
    """
    if not MIN_MANUAL_ENTRANTS <= entrants <= MAX_MANUAL_ENTRANTS:
        raise ValueError(f"Manual bracket needs {MIN_MANUAL_ENTRANTS}-{MAX_MANUAL_ENTRANTS} players, got {entrants}")
    rounds = [("WB Qualifying", entrants - MIN_MANUAL_ENTRANTS)] + _MANUAL_ROUNDS
    match_ids = []
    round_labels = {}
    for label, count in rounds:
        for _ in range(count):
            match_id = f"m{len(match_ids) + 1}"
            match_ids.append(match_id)
            round_labels[match_id] = label
    return BracketFormat(
        key=f"manual-{entrants}",
        label=f"{entrants}-Player Manual Bracket",
        match_ids=match_ids,
        round_labels=round_labels,
        advancement={},
        manual=True,
        entrants=entrants,
    )


SINGLE_4 = _single_elimination(4)
SINGLE_8 = _single_elimination(8)

FORMATS = {fmt.key: fmt for fmt in (SINGLE_4, SINGLE_8, DOUBLE_4, DOUBLE_8)}
FORMATS.update({f"manual-{n}": _manual_double(n)
                for n in range(MIN_MANUAL_ENTRANTS, MAX_MANUAL_ENTRANTS + 1)})

for _fmt in FORMATS.values():
    validate_format(_fmt)


def get_format(kind: str, size: int) -> BracketFormat:
    """Look up a format by kind ('single', 'double' or 'manual') and entrant count."""
    key = f"{kind}-{size}"
    if key not in FORMATS:
        raise ValueError(f"Unsupported bracket format: {kind} with {size} players")
    return FORMATS[key]
