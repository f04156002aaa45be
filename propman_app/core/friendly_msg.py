from aiosmtplib import SMTPException
from httpx import HTTPError
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError

# first match wins, so subclasses go before their bases
FRIENDLY_MESSAGES = (
    (IntegrityError, "The change conflicts with existing records. Refresh and try again."),
    (OperationalError, "The database is busy right now. Please try again shortly."),
    (SQLAlchemyError, "Property records could not be read or saved. Please try again shortly."),
    ((SMTPException, HTTPError), "A notification service is unavailable. Please try again later."),
    ((ConnectionError, TimeoutError), "A required service did not respond. Please try again later."),
    ((ValueError, KeyError), "Some of the submitted information is invalid or missing."),
)


def get_friendly_message(error: Exception) -> str:
    for types, message in FRIENDLY_MESSAGES:
        if isinstance(error, types):
            return message
    return "Something went wrong on our end. Please try again."
