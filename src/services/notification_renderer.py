"""Plain-text rendering of bot notifications."""

from src.domain.models import ChatUser, Joke, Rank


def render_rank_earned(user: ChatUser, rank: Rank) -> str:
    """Render the announcement for a new rank.

    Example:
        >>> render_rank_earned(ChatUser(user_id=1, username="neo"), rank)
        '🎖 @neo reached the rank Agent!'
    """
    prefix = f"{rank.emoji} " if rank.emoji else ""
    text = f"{prefix}{user.display_name()} reached the rank {rank.name}!"
    if rank.description:
        text += f"\n{rank.description}"
    return text


def render_joke(joke: Joke) -> str:
    return joke.content.strip()


__all__ = ["render_joke", "render_rank_earned"]
