"""Logging configuration helpers."""

import logging

CONTEXT_FIELDS = (
    "user_id",
    "chat_id",
    "template_id",
    "task_id",
    "pack_name",
    "stage",
    "attempt",
    "error_kind",
    "duration",
)


class ContextFormatter(logging.Formatter):
    """Append pipeline context passed via ``extra=`` to each line."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        context = " ".join(
            f"{name}={getattr(record, name)}"
            for name in CONTEXT_FIELDS
            if getattr(record, name, None) is not None
        )
        return f"{message} [{context}]" if context else message


def configure_logging(level: int = logging.INFO) -> None:
    """Configure the sticker_bot logger with a single stream handler."""
    logger = logging.getLogger("sticker_bot")
    logger.setLevel(level)
    if logger.handlers:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(ContextFormatter("%(levelname)s: %(name)s: %(message)s"))
    logger.addHandler(handler)
    logger.propagate = False
