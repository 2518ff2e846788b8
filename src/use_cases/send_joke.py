"""Send joke use case.

Picks a joke for a chat and announces it on the event channel. Delivery is
done by whoever listens for ``JokeSent``.
"""

from typing import Literal

from src.config.logging_config import get_logger
from src.domain.events import JokeSent
from src.domain.exceptions import NoJokesAvailableError
from src.domain.models import Joke
from src.domain.protocols import JokeStoreProtocol
from src.observability.metrics import JOKES_POSTED_TOTAL
from src.services.event_channel import EventChannel

logger = get_logger(__name__)

JokeTrigger = Literal["auto", "manual"]


def send_joke_use_case(
    jokes: JokeStoreProtocol,
    events: EventChannel,
    chat_id: int,
    thread_id: int | None = None,
    *,
    category: str | None = None,
    trigger: JokeTrigger = "manual",
) -> Joke:
    """Select a random joke, record its use and publish ``JokeSent``.

    Args:
        jokes: Joke store
        events: Channel receiving ``JokeSent``
        chat_id: Target chat
        thread_id: Target topic thread, if any
        category: Restrict selection to one joke category
        trigger: What caused the post (metrics label)

    Returns:
        The joke with its updated usage count

    Raises:
        NoJokesAvailableError: If the store has no matching joke
        RepositoryError: On storage errors
    """
    joke = jokes.get_random_joke(category)
    if joke is None or joke.id is None:
        raise NoJokesAvailableError()

    jokes.mark_joke_used(joke.id)
    jokes.record_joke_sent(joke.id, chat_id)
    sent = joke.model_copy(update={"used_count": joke.used_count + 1})

    JOKES_POSTED_TOTAL.labels(trigger=trigger).inc()
    logger.info(
        "joke_selected",
        joke_id=sent.id,
        chat_id=chat_id,
        thread_id=thread_id,
        trigger=trigger,
        used_count=sent.used_count,
    )
    events.publish(JokeSent(joke=sent, chat_id=chat_id, thread_id=thread_id))
    return sent
