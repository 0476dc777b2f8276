from dataclasses import dataclass, field
from typing import List, Optional


@dataclass(frozen=True)
class CatalogItem:
    id: int
    name: str
    sprite_url: str

    def to_dict(self):
        return {'id': self.id, 'name': self.name, 'spriteUrl': self.sprite_url}

    @classmethod
    def from_dict(cls, data):
        return cls(id=int(data['id']), name=str(data['name']), sprite_url=str(data['spriteUrl']))


@dataclass
class CatalogPage:
    """One window of the catalog.
    next_offset is set exactly when has_more is true.
    """

    items: List[CatalogItem] = field(default_factory=list)
    next_offset: Optional[int] = None
    has_more: bool = False
    total: int = 0

    @classmethod
    def build(cls, items, offset, total):
        end = offset + len(items)
        has_more = end < total
        return cls(items=list(items), next_offset=end if has_more else None, has_more=has_more, total=total)

    @classmethod
    def empty(cls, total=0):
        return cls(items=[], next_offset=None, has_more=False, total=total)

    def to_dict(self):
        return {
            'data': [item.to_dict() for item in self.items],
            'nextOffset': self.next_offset,
            'hasMore': self.has_more,
            'total': self.total,
        }
