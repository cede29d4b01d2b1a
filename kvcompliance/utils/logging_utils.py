import json
import logging
import traceback
from typing import Optional

TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"


def exc_to_text(e: Exception) -> str:
    return f"{type(e).__name__}: {e}\n{traceback.format_exc()}"


class JsonLineFormatter(logging.Formatter):
    """One JSON object per record, for shipping narration to a structured sink."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in ("vault", "issue_id", "action"):
            value = getattr(record, key, None)
            if value is not None:
                payload[key] = value
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def configure_logging(level: str = "INFO", log_file: Optional[str] = None, fmt: str = "text") -> None:
    log_level = getattr(logging, level.upper(), logging.INFO)
    formatter = JsonLineFormatter() if fmt == "json" else logging.Formatter(TEXT_FORMAT)
    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    for handler in handlers:
        handler.setFormatter(formatter)
    logging.basicConfig(level=log_level, handlers=handlers, force=True)
    # azure-core logs every HTTP request at INFO
    logging.getLogger("azure").setLevel(max(log_level, logging.WARNING))
