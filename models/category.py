from __future__ import annotations

from enum import Enum


class Category(Enum):
    """Seven ordered bins of today's Tavg against the local climatology, coldest first."""

    BLOODY_COLD = ("bc", "Hell no!", "Are you kidding?! It's bloody cold")
    REALLY_COLD = ("rc", "No!", "It's actually really cold")
    COOL = ("c", "Nope", "It's actually kinda cool")
    AVERAGE = ("a", "Not really", "It's about average")
    WARM = ("h", "Yup", "It's warmer than average")
    REALLY_HOT = ("rh", "Yeah!", "It's really hot!")
    BLOODY_HOT = ("bh", "Hell yeah!", "It's bloody hot!")

    def __init__(self, code: str, answer: str, comment: str) -> None:
        self.code = code
        self.answer = answer
        self.comment = comment

    @classmethod
    def from_index(cls, index: int) -> Category:
        return list(cls)[index]

