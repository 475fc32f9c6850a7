"""
Logging configuration for the session store.

Session ids are bearer tokens: anyone holding one can act as that session.
The filter below keeps them out of log output, and a JSON formatter is
available for deployments that ship logs to an aggregator.
"""

import json
import logging
import logging.config
import re
import traceback
from datetime import datetime
from typing import Optional

from sqlsession.core.config import StoreSettings

# Long opaque tokens (signed cookies, random ids) look like this
_TOKEN_RE = re.compile(r"\b[A-Za-z0-9_\-+/=.]{16,}\b")


class SessionIdLogFilter(logging.Filter):
    """
    Mask session ids and other long tokens in log messages.

    The message is rendered with its arguments before masking so ids passed
    either inline or as ``%s`` arguments are both covered.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = self._sanitize_message(record.getMessage())
        record.args = None
        return True

    def _sanitize_message(self, message: str) -> str:
        return _TOKEN_RE.sub(self._mask, message)

    @staticmethod
    def _mask(match: "re.Match[str]") -> str:
        token = match.group()
        # Plain words and dotted module paths carry no digits
        if not any(ch.isdigit() for ch in token):
            return token
        return token[:4] + "****"


class StructuredFormatter(logging.Formatter):
    """
    Structured JSON log formatter.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            'timestamp': datetime.fromtimestamp(record.created).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }

        if record.exc_info:
            log_entry['exception'] = {
                'type': record.exc_info[0].__name__ if record.exc_info[0] else None,
                'message': str(record.exc_info[1]) if record.exc_info[1] else None,
                'traceback': traceback.format_exception(*record.exc_info)
            }

        return json.dumps(log_entry, default=str)


def build_logging_config(settings: Optional[StoreSettings] = None) -> dict:
    """Return a ``dictConfig`` mapping for the ``sqlsession`` logger tree"""
    settings = settings or StoreSettings()
    formatter = 'structured' if settings.structured_logging else 'standard'
    return {
        'version': 1,
        'disable_existing_loggers': False,
        'formatters': {
            'structured': {
                '()': StructuredFormatter,
            },
            'standard': {
                'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
                'datefmt': '%Y-%m-%d %H:%M:%S'
            }
        },
        'filters': {
            'session_id_filter': {
                '()': SessionIdLogFilter,
            }
        },
        'handlers': {
            'console': {
                'class': 'logging.StreamHandler',
                'stream': 'ext://sys.stderr',
                'level': settings.log_level,
                'formatter': formatter,
                'filters': ['session_id_filter'],
            },
        },
        'loggers': {
            'sqlsession': {
                'level': settings.log_level,
                'handlers': ['console'],
                'propagate': False,
            },
        }
    }


def setup_logging(settings: Optional[StoreSettings] = None) -> None:
    """
    Configure logging for the session store.

    Applications that already configure logging can skip this; the store
    only ever logs through ``logging.getLogger(__name__)``.

    Args:
        settings: Supplies ``log_level`` and ``structured_logging``
    """
    logging.config.dictConfig(build_logging_config(settings))
    logging.getLogger('sqlsession').debug("Session store logging configured")
