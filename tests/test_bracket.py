"""
Tests for bracket advancement.
"""
import pytest
from core.formats import DOUBLE_4, DOUBLE_8, SINGLE_4, SINGLE_8, FORMATS
from core.bracket import (
    initialize_matches,
    normalize_matches,
    determine_result,
    record_match,
    get_match,
    get_champion,
    get_losers_champion,
    needs_bracket_reset,
    increment_score,
    decrement_score,
    reset_tournament,
    tournament_summary,
    validate_race_to,
)


def play(fmt, matches, match_id, winner_slot, player1=None, player2=None, race_to=9):
    """Finish a match with a 9-3 result for winner_slot, using seeded players when given."""
    match = get_match(matches, match_id)
    player1 = player1 or match['player1']
    player2 = player2 or match['player2']
    score1, score2 = (race_to, 3) if winner_slot == 'player1' else (3, race_to)
    matches, _ = record_match(fmt, matches, match_id, player1, player2, score1, score2, race_to)
    return matches


def seed(fmt, matches, players):
    """Play every first-round match, player1 winning, with players seeded in pairs."""
    for i, match_id in enumerate(fmt.first_round_ids()):
        matches = play(fmt, matches, match_id, 'player1', players[2 * i], players[2 * i + 1])
    return matches


def names(match):
    return ((match['player1'] or {}).get('name'), (match['player2'] or {}).get('name'))


class TestInitialize:
    """Tests for initialize_matches and normalize_matches."""

    def test_fresh_matches(self):
        matches = initialize_matches(DOUBLE_8)
        assert [m['id'] for m in matches] == DOUBLE_8.match_ids
        assert all(m['status'] == 'pending' for m in matches)
        assert all(m['player1'] is None and m['player2'] is None for m in matches)
        assert matches[0]['match_number'] == 'M1'
        assert matches[0]['race_to'] == 9

    def test_round_and_bracket_labels(self):
        matches = initialize_matches(DOUBLE_8)
        assert get_match(matches, 'm9')['round'] == 'LB R1'
        assert get_match(matches, 'm9')['bracket'] == 'losers'
        assert get_match(matches, 'm7')['round'] == 'WB Final'

    def test_normalize_fills_missing_and_drops_extra(self):
        """Stored matches are kept, missing ones defaulted, unknown ones dropped."""
        stored = [{'id': 'm2', 'score1': 4, 'race_to': 7}, {'id': 'm99', 'score1': 1}]
        matches = normalize_matches(SINGLE_4, stored)
        assert [m['id'] for m in matches] == ['m1', 'm2', 'm3']
        assert get_match(matches, 'm2')['score1'] == 4
        assert get_match(matches, 'm2')['race_to'] == 7
        assert get_match(matches, 'm1')['score1'] == 0

    def test_reset_tournament(self):
        matches = reset_tournament(SINGLE_8, race_to=5)
        assert len(matches) == 7
        assert all(m['race_to'] == 5 for m in matches)


class TestDetermineResult:
    """Tests for determine_result."""

    def test_player1_wins(self, sample_players):
        a, b = sample_players[:2]
        assert determine_result(a, b, 9, 4, 9) == ('player1', 'completed')

    def test_player2_wins(self, sample_players):
        a, b = sample_players[:2]
        assert determine_result(a, b, 2, 9, 9) == ('player2', 'completed')

    def test_in_progress(self, sample_players):
        a, b = sample_players[:2]
        assert determine_result(a, b, 8, 8, 9) == (None, 'in_progress')

    def test_tie_at_race_to_not_completed(self, sample_players):
        """Both at race-to is not a win for either side."""
        a, b = sample_players[:2]
        assert determine_result(a, b, 9, 9, 9) == (None, 'in_progress')

    def test_missing_player_is_pending(self, sample_players):
        assert determine_result(sample_players[0], None, 9, 0, 9) == (None, 'pending')

    def test_negative_score_rejected(self, sample_players):
        a, b = sample_players[:2]
        with pytest.raises(ValueError):
            determine_result(a, b, -1, 0, 9)

    @pytest.mark.parametrize("race_to", [0, 51, True, "9"])
    def test_invalid_race_to(self, race_to):
        with pytest.raises(ValueError):
            validate_race_to(race_to)


class TestRecordMatch:
    """Tests for record_match advancement."""

    def test_winner_and_loser_advance(self, sample_players):
        a, b = sample_players[:2]
        matches, changed = record_match(DOUBLE_8, initialize_matches(DOUBLE_8), 'm1', a, b, 9, 5, 9)
        assert changed == ['m1', 'm5', 'm8']
        assert get_match(matches, 'm5')['player1']['id'] == a['id']
        assert get_match(matches, 'm8')['player1']['id'] == b['id']

    def test_in_progress_does_not_advance(self, sample_players):
        a, b = sample_players[:2]
        matches, changed = record_match(DOUBLE_8, initialize_matches(DOUBLE_8), 'm1', a, b, 5, 5, 9)
        assert changed == ['m1']
        assert get_match(matches, 'm1')['status'] == 'in_progress'
        assert get_match(matches, 'm5')['player1'] is None

    def test_input_not_modified(self, sample_players):
        a, b = sample_players[:2]
        original = initialize_matches(SINGLE_4)
        record_match(SINGLE_4, original, 'm1', a, b, 9, 0, 9)
        assert original[0]['status'] == 'pending'

    def test_unknown_match(self, sample_players):
        a, b = sample_players[:2]
        with pytest.raises(ValueError, match="Unknown match"):
            record_match(SINGLE_4, initialize_matches(SINGLE_4), 'm42', a, b, 9, 0, 9)

    def test_re_record_overwrites_downstream(self, sample_players):
        """Changing a finished result moves the new winner and loser downstream."""
        a, b = sample_players[:2]
        matches = play(DOUBLE_8, initialize_matches(DOUBLE_8), 'm1', 'player1', a, b)
        matches, changed = record_match(DOUBLE_8, matches, 'm1', a, b, 3, 9, 9)
        assert changed == ['m1', 'm5', 'm8']
        assert get_match(matches, 'm5')['player1']['id'] == b['id']
        assert get_match(matches, 'm8')['player1']['id'] == a['id']

    def test_same_result_changes_only_edited_match(self, sample_players):
        a, b = sample_players[:2]
        matches = play(DOUBLE_8, initialize_matches(DOUBLE_8), 'm1', 'player1', a, b)
        _, changed = record_match(DOUBLE_8, matches, 'm1', a, b, 9, 4, 9)
        assert changed == ['m1']

    def test_advanced_player_is_a_copy(self, sample_players):
        a, b = sample_players[:2]
        matches, _ = record_match(SINGLE_4, initialize_matches(SINGLE_4), 'm1', a, b, 9, 0, 9)
        get_match(matches, 'm3')['player1']['name'] = 'Renamed'
        assert get_match(matches, 'm1')['player1']['name'] == a['name']


class TestSingleElimination:
    """Full walks through the single elimination formats."""

    def test_single_4_champion(self, sample_players):
        matches = seed(SINGLE_4, initialize_matches(SINGLE_4), sample_players)
        assert names(get_match(matches, 'm3')) == ('Player 1', 'Player 3')
        assert get_champion(SINGLE_4, matches) is None
        matches = play(SINGLE_4, matches, 'm3', 'player2')
        assert get_champion(SINGLE_4, matches)['id'] == 'p3'

    def test_single_8_champion(self, sample_players):
        matches = seed(SINGLE_8, initialize_matches(SINGLE_8), sample_players)
        matches = play(SINGLE_8, matches, 'm5', 'player1')
        matches = play(SINGLE_8, matches, 'm6', 'player2')
        assert names(get_match(matches, 'm7')) == ('Player 1', 'Player 7')
        matches = play(SINGLE_8, matches, 'm7', 'player1')
        assert get_champion(SINGLE_8, matches)['id'] == 'p1'

    def test_single_has_no_reset(self, sample_players):
        matches = seed(SINGLE_4, initialize_matches(SINGLE_4), sample_players)
        assert needs_bracket_reset(SINGLE_4, matches) is False
        assert get_losers_champion(SINGLE_4, matches) is None


class TestDoubleEliminationEight:
    """Full walk through the 8-player double elimination bracket."""

    def _to_grand_final(self, players):
        """Play every match up to the grand final, player1 always winning."""
        matches = seed(DOUBLE_8, initialize_matches(DOUBLE_8), players)
        for match_id in ['m5', 'm6', 'm8', 'm9', 'm10', 'm11', 'm7', 'm12', 'm13']:
            matches = play(DOUBLE_8, matches, match_id, 'player1')
        return matches

    def test_first_round_drops_losers(self, sample_players):
        matches = seed(DOUBLE_8, initialize_matches(DOUBLE_8), sample_players)
        assert names(get_match(matches, 'm8')) == ('Player 2', 'Player 4')
        assert names(get_match(matches, 'm9')) == ('Player 6', 'Player 8')
        assert names(get_match(matches, 'm5')) == ('Player 1', 'Player 3')
        assert names(get_match(matches, 'm6')) == ('Player 5', 'Player 7')

    def test_path_to_grand_final(self, sample_players):
        matches = self._to_grand_final(sample_players)
        assert names(get_match(matches, 'm10')) == ('Player 3', 'Player 2')
        assert names(get_match(matches, 'm11')) == ('Player 7', 'Player 6')
        assert names(get_match(matches, 'm12')) == ('Player 3', 'Player 7')
        assert names(get_match(matches, 'm13')) == ('Player 5', 'Player 3')
        assert names(get_match(matches, 'm14')) == ('Player 1', 'Player 5')
        assert get_losers_champion(DOUBLE_8, matches)['id'] == 'p5'
        assert get_champion(DOUBLE_8, matches) is None

    def test_winners_champion_takes_grand_final(self, sample_players):
        """No bracket reset when the winners bracket champion wins the grand final."""
        matches = self._to_grand_final(sample_players)
        matches, changed = record_match(DOUBLE_8, matches, 'm14', *self._finalists(matches), 9, 2, 9)
        assert changed == ['m14']
        assert needs_bracket_reset(DOUBLE_8, matches) is False
        assert get_champion(DOUBLE_8, matches)['id'] == 'p1'
        assert names(get_match(matches, 'm15')) == (None, None)

    def test_losers_champion_forces_reset(self, sample_players):
        """The reset match is filled with both finalists in the same slots."""
        matches = self._to_grand_final(sample_players)
        matches, changed = record_match(DOUBLE_8, matches, 'm14', *self._finalists(matches), 4, 9, 9)
        assert changed == ['m14', 'm15']
        assert needs_bracket_reset(DOUBLE_8, matches) is True
        assert names(get_match(matches, 'm15')) == ('Player 1', 'Player 5')
        assert get_champion(DOUBLE_8, matches) is None

        matches = play(DOUBLE_8, matches, 'm15', 'player2')
        assert get_champion(DOUBLE_8, matches)['id'] == 'p5'

    def test_reset_cleared_when_grand_final_corrected(self, sample_players):
        """Correcting the grand final to a winners champion win empties the unplayed reset."""
        matches = self._to_grand_final(sample_players)
        finalists = self._finalists(matches)
        matches, _ = record_match(DOUBLE_8, matches, 'm14', *finalists, 4, 9, 9)
        matches, changed = record_match(DOUBLE_8, matches, 'm14', *finalists, 9, 4, 9)
        assert 'm15' in changed
        assert names(get_match(matches, 'm15')) == (None, None)
        assert get_champion(DOUBLE_8, matches)['id'] == 'p1'

    def test_reset_cleared_when_grand_final_reopened(self, sample_players):
        """Setting a decided grand final back to in progress empties the reset match."""
        matches = self._to_grand_final(sample_players)
        finalists = self._finalists(matches)
        matches, _ = record_match(DOUBLE_8, matches, 'm14', *finalists, 4, 9, 9)
        matches, changed = record_match(DOUBLE_8, matches, 'm14', *finalists, 5, 5, 9)
        assert changed == ['m14', 'm15']
        assert get_match(matches, 'm14')['status'] == 'in_progress'
        assert names(get_match(matches, 'm15')) == (None, None)
        assert needs_bracket_reset(DOUBLE_8, matches) is False

    def _finalists(self, matches):
        gf = get_match(matches, 'm14')
        return gf['player1'], gf['player2']

    @pytest.mark.slow
    def test_every_winner_pattern_reaches_a_champion(self, sample_players):
        """Any combination of first-round winners still produces a complete bracket."""
        order = ['m1', 'm2', 'm3', 'm4', 'm5', 'm6', 'm8', 'm9', 'm10', 'm11', 'm7', 'm12', 'm13', 'm14']
        for pattern in range(2 ** len(order)):
            matches = initialize_matches(DOUBLE_8)
            for i, match_id in enumerate(order):
                slot = 'player2' if pattern >> i & 1 else 'player1'
                if match_id in DOUBLE_8.first_round_ids():
                    idx = DOUBLE_8.first_round_ids().index(match_id)
                    matches = play(DOUBLE_8, matches, match_id, slot,
                                   sample_players[2 * idx], sample_players[2 * idx + 1])
                else:
                    matches = play(DOUBLE_8, matches, match_id, slot)
            if needs_bracket_reset(DOUBLE_8, matches):
                matches = play(DOUBLE_8, matches, 'm15', 'player1')
            assert get_champion(DOUBLE_8, matches) is not None


class TestDoubleEliminationFour:
    """Walk through the 4-player double elimination bracket."""

    def test_full_bracket_with_reset(self, sample_players):
        matches = seed(DOUBLE_4, initialize_matches(DOUBLE_4), sample_players)
        assert names(get_match(matches, 'm4')) == ('Player 2', 'Player 4')
        matches = play(DOUBLE_4, matches, 'm3', 'player1')
        matches = play(DOUBLE_4, matches, 'm4', 'player2')
        assert names(get_match(matches, 'm5')) == ('Player 3', 'Player 4')
        matches = play(DOUBLE_4, matches, 'm5', 'player1')
        assert names(get_match(matches, 'm6')) == ('Player 1', 'Player 3')
        matches = play(DOUBLE_4, matches, 'm6', 'player2')
        assert names(get_match(matches, 'm7')) == ('Player 1', 'Player 3')
        matches = play(DOUBLE_4, matches, 'm7', 'player1')
        assert get_champion(DOUBLE_4, matches)['id'] == 'p1'


class TestScoreStepping:
    """Tests for increment_score and decrement_score."""

    def test_increment(self):
        assert increment_score(3, 5, 9) == (4, False)

    def test_winning_point_needs_confirmation(self):
        """The point that would win is held back and flagged."""
        assert increment_score(8, 3, 9) == (8, True)

    def test_capped_at_race_to(self):
        assert increment_score(9, 3, 9) == (9, False)

    def test_decrement_floors_at_zero(self):
        assert decrement_score(0) == 0
        assert decrement_score(4) == 3


class TestSummary:
    """Tests for tournament_summary."""

    def test_summary_lines(self, sample_players):
        matches = seed(SINGLE_4, initialize_matches(SINGLE_4), sample_players)
        matches = play(SINGLE_4, matches, 'm3', 'player1')
        summary = tournament_summary(SINGLE_4, matches)
        assert summary['format'] == '4-Player Single Elimination'
        assert summary['champion']['name'] == 'Player 1'
        assert summary['matches'][0] == {
            'match_number': 'M1', 'round': 'Semifinal', 'player1': 'Player 1',
            'player2': 'Player 2', 'score1': 9, 'score2': 3, 'winner': 'player1',
        }

    def test_summary_of_empty_bracket(self):
        summary = tournament_summary(DOUBLE_4, initialize_matches(DOUBLE_4))
        assert summary['champion'] is None
        assert summary['matches'][-1]['player1'] == '-'


class TestManualBracket:
    """The manually scored bracket records results without advancing anyone."""

    def test_completed_match_stays_put(self, sample_players):
        fmt = FORMATS['manual-10']
        a, b = sample_players[:2]
        matches, changed = record_match(fmt, initialize_matches(fmt), 'm3', a, b, 9, 1, 9)
        assert changed == ['m3']
        assert get_match(matches, 'm3')['status'] == 'completed'
        assert all(m['player1'] is None for m in matches if m['id'] != 'm3')

    def test_no_champion(self, sample_players):
        fmt = FORMATS['manual-8']
        a, b = sample_players[:2]
        matches, _ = record_match(fmt, initialize_matches(fmt), 'm15', a, b, 9, 1, 9)
        assert get_champion(fmt, matches) is None
        assert needs_bracket_reset(fmt, matches) is False
