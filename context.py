from dataclasses import dataclass
from typing import Optional

from ai_client import ReplyGenerator
from backend import MongoBackend
from constants import AI_USER_EMAIL
from logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class AppContext:
    """Process-wide collaborators for the socket layer.

    Built once in the app lifespan before connections are accepted and closed on
    shutdown. Nothing replaces it mid-session.
    """

    store: MongoBackend
    generator: ReplyGenerator
    ai_user_email: Optional[str] = None

    async def close(self):
        await self.generator.close()
        self.store.close()


async def build_context() -> AppContext:
    store = MongoBackend()
    # A dead database only breaks the AI path, chat fan-out keeps working
    await store.ping()
    generator = ReplyGenerator()
    if not AI_USER_EMAIL:
        logger.warning("AI_USER_EMAIL is not set, AI replies are disabled")
    return AppContext(store=store, generator=generator, ai_user_email=AI_USER_EMAIL)
