import json
import logging
import os
import re
from datetime import UTC, datetime

PLAIN_FORMAT = "%(levelname)-8s %(filename)s:%(lineno)d %(message)s"

# feed credentials show up in request URLs and header dumps
SECRET_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"api_key=([^&\s]+)", re.IGNORECASE),
    re.compile(r"x-api-key['\"]?\s*[:=]\s*['\"]?([^'\"\s,}]+)", re.IGNORECASE),
]

# chatty third-party loggers held at WARNING unless LTP_LOG_LEVEL is DEBUG
NOISY_LOGGERS = ("aiohttp.access", "asyncio", "tenacity")


def redact(text: str, mask: str = "[REDACTED]") -> str:
    for pattern in SECRET_PATTERNS:
        text = pattern.sub(lambda m: m.group(0).replace(m.group(1), mask), text)
    return text


class APIKeyFilter(logging.Filter):
    """Mask feed credentials in both the message template and its arguments."""

    def __init__(self, name: str = "", mask: str = "[REDACTED]") -> None:
        super().__init__(name)
        self.mask = mask

    def filter(self, record: logging.LogRecord) -> bool:
        if record.msg:
            record.msg = redact(str(record.msg), self.mask)
        if isinstance(record.args, tuple):
            record.args = tuple(
                redact(a, self.mask) if isinstance(a, str) else a for a in record.args
            )
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per line, for log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, object] = {
            "time": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "file": record.filename,
            "line": record.lineno,
        }
        if record.exc_info and record.exc_info[0] is not None:
            entry["exc_type"] = record.exc_info[0].__name__
            entry["stack"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def _resolve_level() -> int:
    name = os.getenv("LTP_LOG_LEVEL") or os.getenv("LOG_LEVEL") or "INFO"
    return logging.getLevelNamesMapping().get(name.upper(), logging.INFO)


def setup_logging() -> None:
    """Configure root logging for the learner and the API server.

    Calling it again only refreshes level, formatter and filters on the
    existing handlers.
    """
    root = logging.getLogger()
    level = _resolve_level()
    json_logs = os.getenv("LTP_LOG_JSON", "false").lower() == "true"

    if root.handlers:
        root.setLevel(level)
    else:
        logging.basicConfig(level=level, format=PLAIN_FORMAT)

    for handler in root.handlers:
        if json_logs:
            handler.setFormatter(JSONFormatter())
        if not any(isinstance(f, APIKeyFilter) for f in handler.filters):
            handler.addFilter(APIKeyFilter())

    if level > logging.DEBUG:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
