import logging
import sys
from pathlib import Path
from typing import Dict, Any, List, Optional
import json
from datetime import datetime, timezone

from cloudwatch_poller.ingestion.errors import ConfigurationError


# Poll context attached to records through logging's extra= argument
CONTEXT_FIELDS = ('cycle', 'group', 'stream')

LOG_OUTPUTS = ('file', 'stderr', 'stdout', 'both')


def pollContext(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        name: getattr(record, name)
        for name in CONTEXT_FIELDS
        if getattr(record, name, None) is not None
    }


class JSONFormatter(logging.Formatter):

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            'timestamp': datetime.fromtimestamp(record.created, timezone.utc).isoformat().replace('+00:00', 'Z'),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'thread': record.threadName,
        }
        log_data.update(pollContext(record))

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False)


class TextFormatter(logging.Formatter):

    def __init__(self):
        fmt = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        datefmt = '%Y-%m-%d %H:%M:%S'
        super().__init__(fmt=fmt, datefmt=datefmt)

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        context = pollContext(record)
        if not context:
            return text
        # Keep the traceback, if any, after the context suffix line
        head, sep, tail = text.partition('\n')
        suffix = ' '.join(f"{k}={v}" for k, v in context.items())
        return f"{head} [{suffix}]{sep}{tail}"


def _buildHandlers(output: str, filePath: str) -> List[logging.Handler]:
    handlers: List[logging.Handler] = []

    if output in ('file', 'both'):
        log_path = Path(filePath)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path))

    # Emitted records own stdout, so "both" pairs the file with stderr
    if output in ('stderr', 'both'):
        handlers.append(logging.StreamHandler(sys.stderr))

    if output == 'stdout':
        handlers.append(logging.StreamHandler(sys.stdout))

    return handlers


def setupLogging(config: Dict[str, Any], levelOverride: Optional[str] = None) -> None:
    """
    Configure the root logger from the logging section of the config.

    Keys: level, format (text or json), output (stderr, stdout, file or
    both) and file_path.

    Raises:
        ConfigurationError: On an unknown level or output
    """
    logging_config = config.get('logging') or {}

    log_level = str(levelOverride or logging_config.get('level', 'INFO')).upper()
    log_format = logging_config.get('format', 'text')
    log_output = logging_config.get('output', 'stderr')
    log_file_path = logging_config.get('file_path', 'logs/cloudwatch_poller.log')

    level = logging.getLevelName(log_level)
    if not isinstance(level, int):
        raise ConfigurationError(f"unknown log level {log_level!r}")
    if log_output not in LOG_OUTPUTS:
        raise ConfigurationError(f"unknown log output {log_output!r}, expected one of {', '.join(LOG_OUTPUTS)}")

    formatter = JSONFormatter() if log_format == 'json' else TextFormatter()

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = []

    for handler in _buildHandlers(log_output, log_file_path):
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    logging.getLogger('boto3').setLevel(logging.WARNING)
    logging.getLogger('botocore').setLevel(logging.WARNING)
    logging.getLogger('urllib3').setLevel(logging.WARNING)

    root_logger.debug(f"Logging configured (level={log_level}, format={log_format}, output={log_output})")
