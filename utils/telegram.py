import os

import requests
from dotenv import load_dotenv

from utils.logging import get_logger

load_dotenv()

logger = get_logger("utils.telegram")

MAX_MESSAGE_LENGTH = 4096


class TelegramError(Exception):
    """Raised when a Telegram message cannot be delivered."""


def send_telegram_message(message, protocol, disable_notification=False):
    logger.info("Sending telegram message:\n%s", message)
    if len(message) > MAX_MESSAGE_LENGTH:
        message = message[: MAX_MESSAGE_LENGTH - 3] + "..."

    bot_token = os.getenv(f"TELEGRAM_BOT_TOKEN_{protocol.upper()}")
    chat_id = os.getenv(f"TELEGRAM_CHAT_ID_{protocol.upper()}")
    if not bot_token or not chat_id:
        logger.warning("Missing Telegram credentials for %s", protocol)
        return

    url = f"https://api.telegram.org/bot{bot_token}/sendMessage"
    params = {
        "chat_id": chat_id,
        "text": message,
        "parse_mode": "Markdown",
        "disable_notification": disable_notification,
    }
    try:
        response = requests.get(url, params=params, timeout=30)
    except Exception as e:
        raise TelegramError(f"Failed to send telegram message: {e}") from e
    if response.status_code != 200:
        raise TelegramError(f"Failed to send telegram message: {response.status_code} - {response.text}")
