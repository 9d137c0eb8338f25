import asyncio
import logging

import config
from database import AccountStore, get_engine, get_sessionmaker, init_db
from integrations import GoogleCalendarClient, OpenAIComposer, TwilioTransport
from scheduler import DispatchOrchestrator, EventWindowFetcher, ReminderScheduler
from utils import JoinCodeRegistry, MessageComposer

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


class NotifierApp:
    """Builds every collaborator once and wires them together"""

    def __init__(self):
        self.engine = get_engine()
        self.store = AccountStore(get_sessionmaker(self.engine))
        self.join_codes = JoinCodeRegistry()

        ai_composer = None
        if config.is_ai_configured():
            ai_composer = OpenAIComposer()
        else:
            logger.info("AI composer disabled, using default message format")

        self.orchestrator = DispatchOrchestrator(
            store=self.store,
            fetcher=EventWindowFetcher(GoogleCalendarClient(), self.store),
            composer=MessageComposer(ai_composer),
            transport=TwilioTransport(),
        )
        self.reminder_scheduler = ReminderScheduler(
            self.store, self.orchestrator, join_codes=self.join_codes
        )

    async def start(self):
        logger.info("Initializing database...")
        await init_db(self.engine)

        logger.info("Starting reminder scheduler...")
        self.reminder_scheduler.start()
        logger.info(f"Next tick at {self.reminder_scheduler.next_run_time()}")

    async def close(self):
        """Cleanup when shutting down"""
        logger.info("Stopping reminder scheduler...")
        self.reminder_scheduler.stop()
        await self.engine.dispose()


async def main():
    if not config.is_twilio_configured():
        logger.error("Twilio credentials not set in environment")
        return
    if not config.ENCRYPTION_KEY:
        logger.error("ENCRYPTION_KEY not set in environment")
        return

    app = NotifierApp()

    try:
        await app.start()
        await asyncio.Event().wait()
    finally:
        await app.close()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt, shutting down...")
