class Player:
    def __init__(self, id, name, points=0, photo_url=''):
        self.id = id
        self.name = name
        self.points = points
        self.photo_url = photo_url  # inline data URL or link, stored as-is

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=data.get('id'),
            name=data.get('name') or '',
            points=data.get('points') or 0,
            photo_url=data.get('photo_url') or '',
        )

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'points': self.points,
            'photo_url': self.photo_url,
        }

    def __repr__(self):
        return f"Player(id={self.id}, name={self.name}, points={self.points})"


class Logo:
    def __init__(self, id, name, logo_url=''):
        self.id = id
        self.name = name
        self.logo_url = logo_url

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=data.get('id'),
            name=data.get('name') or '',
            logo_url=data.get('logo_url') or '',
        )

    def to_dict(self):
        return {'id': self.id, 'name': self.name, 'logo_url': self.logo_url}

    def __repr__(self):
        return f"Logo(id={self.id}, name={self.name})"
