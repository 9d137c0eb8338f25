from .google_calendar import GoogleCalendarClient
from .twilio_sms import TwilioTransport
from .openai_composer import OpenAIComposer

__all__ = ["GoogleCalendarClient", "TwilioTransport", "OpenAIComposer"]
