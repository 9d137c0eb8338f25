import asyncio
import requests
import logging
from twilio.rest import Client as TwilioClient
from twilio.base.exceptions import TwilioException, TwilioRestException
import config
from utils.errors import TransportError

logger = logging.getLogger(__name__)


class TwilioTransport:
    """Sends SMS through Twilio; constructed once at startup and injected"""

    def __init__(
        self,
        account_sid: str = None,
        auth_token: str = None,
        from_number: str = None,
        timeout: float = config.SMS_TIMEOUT,
    ):
        account_sid = account_sid or config.TWILIO_ACCOUNT_SID
        auth_token = auth_token or config.TWILIO_AUTH_TOKEN
        self.from_number = from_number or config.TWILIO_PHONE_NUMBER
        if not (account_sid and auth_token and self.from_number):
            raise ValueError(
                "Missing Twilio credentials. Set TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN "
                "and TWILIO_PHONE_NUMBER in environment variables."
            )

        self.client = TwilioClient(account_sid, auth_token)
        self.timeout = timeout

    async def send(self, to: str, body: str) -> str:
        """Send an SMS and return the Twilio message SID"""
        try:
            message = await asyncio.wait_for(
                asyncio.to_thread(
                    self.client.messages.create, to=to, from_=self.from_number, body=body
                ),
                timeout=self.timeout,
            )
        except TwilioRestException as e:
            raise TransportError(to, f"Twilio rejected message ({e.status}): {e.msg}") from e
        except (TwilioException, requests.RequestException) as e:
            raise TransportError(to, str(e)) from e
        except asyncio.TimeoutError as e:
            raise TransportError(to, f"timed out after {self.timeout}s") from e

        logger.info(f"SMS sent to {to}, message SID {message.sid}")
        return message.sid
