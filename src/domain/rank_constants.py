"""Default rank ladders seeded into an empty catalog.

Two independent ladders coexist: ``agency`` and ``interview``. Both start at
zero messages, so every user who posts at least once holds a rank.
"""

from typing import Final

from src.domain.models import Rank

AGENCY_CATEGORY: Final[str] = "agency"
INTERVIEW_CATEGORY: Final[str] = "interview"

AGENCY_RANKS: Final[tuple[Rank, ...]] = (
    Rank(
        name="Rookie",
        category=AGENCY_CATEGORY,
        min_messages=0,
        description="Just starting out",
        emoji="🐣",
    ),
    Rank(
        name="Agent Trainee",
        category=AGENCY_CATEGORY,
        min_messages=10,
        description="Showed some potential",
        emoji="🎓",
    ),
    Rank(
        name="Junior Agent",
        category=AGENCY_CATEGORY,
        min_messages=50,
        description="Proved useful",
        emoji="🔫",
    ),
    Rank(
        name="Agent",
        category=AGENCY_CATEGORY,
        min_messages=100,
        description="Reliable member of the team",
        emoji="🕵️",
    ),
    Rank(
        name="Senior Agent",
        category=AGENCY_CATEGORY,
        min_messages=250,
        description="Seasoned professional",
        emoji="🎖️",
    ),
    Rank(
        name="Special Agent",
        category=AGENCY_CATEGORY,
        min_messages=500,
        description="Agency elite",
        emoji="⭐",
    ),
    Rank(
        name="Agency Legend",
        category=AGENCY_CATEGORY,
        min_messages=1000,
        description="A living legend",
        emoji="🏆",
    ),
)

INTERVIEW_RANKS: Final[tuple[Rank, ...]] = (
    Rank(
        name="Junior",
        category=INTERVIEW_CATEGORY,
        min_messages=0,
        description="Beginner developer",
        emoji="🌱",
    ),
    Rank(
        name="Middle",
        category=INTERVIEW_CATEGORY,
        min_messages=50,
        description="Experienced developer",
        emoji="💻",
    ),
    Rank(
        name="Senior",
        category=INTERVIEW_CATEGORY,
        min_messages=150,
        description="Lead developer",
        emoji="🚀",
    ),
    Rank(
        name="Tech Lead",
        category=INTERVIEW_CATEGORY,
        min_messages=300,
        description="Technical leader",
        emoji="👑",
    ),
    Rank(
        name="Architect",
        category=INTERVIEW_CATEGORY,
        min_messages=500,
        description="Solution architect",
        emoji="🏗️",
    ),
    Rank(
        name="CTO Material",
        category=INTERVIEW_CATEGORY,
        min_messages=1000,
        description="Future CTO",
        emoji="💎",
    ),
)

DEFAULT_RANKS: Final[tuple[Rank, ...]] = AGENCY_RANKS + INTERVIEW_RANKS

__all__ = [
    "AGENCY_CATEGORY",
    "AGENCY_RANKS",
    "DEFAULT_RANKS",
    "INTERVIEW_CATEGORY",
    "INTERVIEW_RANKS",
]
