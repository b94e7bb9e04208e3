import logging
import re
from dataclasses import dataclass
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

TWILIO_MESSAGES_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"


@dataclass
class SMSResult:
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


def _digits(phone: str) -> str:
    return re.sub(r"\D", "", phone or "")


def normalize_phone_number(phone: str) -> str:
    """E.164-ish: 10 digits are assumed US (+1), anything longer keeps its country code."""
    digits = _digits(phone)
    if len(digits) < 10:
        raise ValueError("Invalid phone number")
    return f"+1{digits}" if len(digits) == 10 else f"+{digits}"


def is_valid_phone_number(phone: str) -> bool:
    return 10 <= len(_digits(phone)) <= 11


def format_phone_number(phone: str) -> str:
    digits = _digits(phone)
    if len(digits) == 10:
        return f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"
    if len(digits) == 11 and digits.startswith("1"):
        return f"({digits[1:4]}) {digits[4:7]}-{digits[7:]}"
    return phone


class TwilioSMSGateway:
    """
    One POST to the Twilio Messages endpoint per send, bounded by `timeout_seconds`.
    No retries: callers report the outcome instead.
    """

    def __init__(self, account_sid: Optional[str], auth_token: Optional[str], from_number: Optional[str],
                 timeout_seconds: float = 10.0):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.timeout_seconds = timeout_seconds

    @property
    def configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.from_number)

    def send(self, to: str, message: str) -> SMSResult:
        try:
            to_number = normalize_phone_number(to)
        except ValueError as e:
            return SMSResult(success=False, error=str(e))

        if not self.configured:
            logger.warning("SMS gateway not configured; dropping message to %s", to_number)
            return SMSResult(
                success=False,
                error="SMS gateway not configured (TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN, TWILIO_PHONE_NUMBER)",
            )

        url = TWILIO_MESSAGES_URL.format(sid=self.account_sid)
        payload = {"To": to_number, "From": self.from_number, "Body": message}
        try:
            with httpx.Client(timeout=self.timeout_seconds) as client:
                r = client.post(url, data=payload, auth=(self.account_sid, self.auth_token))
                r.raise_for_status()
                data = r.json()
        except httpx.HTTPStatusError as e:
            logger.warning("SMS to %s rejected (%s)", to_number, e.response.status_code)
            return SMSResult(success=False, error=_twilio_error(e.response))
        except httpx.HTTPError as e:
            logger.warning("SMS to %s failed (%s: %s)", to_number, type(e).__name__, e)
            return SMSResult(success=False, error=str(e) or "Failed to send SMS")

        logger.info("SMS sent to %s sid=%s status=%s", to_number, data.get("sid"), data.get("status"))
        return SMSResult(success=True, message_id=data.get("sid"))


def _twilio_error(response: httpx.Response) -> str:
    try:
        return response.json().get("message") or f"SMS gateway error {response.status_code}"
    except ValueError:
        return f"SMS gateway error {response.status_code}"
