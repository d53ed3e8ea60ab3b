"""
Unit tests for the data models.
"""
import pytest
from core.models import Player, Logo


class TestPlayer:
    """Tests for the Player model."""

    def test_to_dict(self):
        """All fields are serialized."""
        player = Player("abc", "Efren", points=120, photo_url="data:image/png;base64,xx")
        assert player.to_dict() == {
            'id': 'abc',
            'name': 'Efren',
            'points': 120,
            'photo_url': 'data:image/png;base64,xx',
        }

    def test_from_dict_defaults(self):
        """Missing fields fall back to empty name, zero points and no photo."""
        player = Player.from_dict({'id': 'x'})
        assert player.name == ''
        assert player.points == 0
        assert player.photo_url == ''

    def test_from_dict_round_trip(self):
        """from_dict accepts what to_dict produces."""
        original = Player("p1", "Shane", points=7)
        assert Player.from_dict(original.to_dict()).to_dict() == original.to_dict()

    def test_repr(self):
        assert 'Shane' in repr(Player("p1", "Shane"))


class TestLogo:
    """Tests for the Logo model."""

    def test_to_dict(self):
        logo = Logo("l1", "Sponsor", "https://example.com/logo.png")
        assert logo.to_dict() == {'id': 'l1', 'name': 'Sponsor', 'logo_url': 'https://example.com/logo.png'}

    def test_from_dict_missing_url(self):
        """A logo without a URL gets an empty string."""
        assert Logo.from_dict({'id': 'l1', 'name': 'Sponsor'}).logo_url == ''
