"""Ruling (QA) entity."""

from dataclasses import dataclass, field
from typing import Any

from ygoresolve.models.search import Facet


@dataclass(slots=True)
class Ruling:
    """
    A resolved ruling from the YGOrg QA database.

    Attributes:
        id: QA id
        title: Locale -> title
        question: Locale -> question text
        answer: Locale -> answer text
        date: Locale -> date the translation was sourced
        cards: Database ids of cards the ruling references
        tags: Free-form tags from the source
    """

    id: int | None = None
    title: dict[str, str] = field(default_factory=dict)
    question: dict[str, str] = field(default_factory=dict)
    answer: dict[str, str] = field(default_factory=dict)
    date: dict[str, str] = field(default_factory=dict)
    cards: list[int] = field(default_factory=list)
    tags: list[Any] = field(default_factory=list)

    def satisfies(self, facet: Facet, locale: str) -> bool:
        """A ruling answers any facet for a locale it is fully translated into."""
        return locale in self.title and locale in self.question and locale in self.answer

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "question": self.question,
            "answer": self.answer,
            "date": self.date,
            "cards": self.cards,
            "tags": self.tags,
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "Ruling":
        return cls(**payload)

    def __str__(self) -> str:
        title = self.title.get("en") or next(iter(self.title.values()), "")
        return f"Q&A #{self.id}: {title}" if title else f"Q&A #{self.id}"
