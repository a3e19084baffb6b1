import sys

import structlog

# stdout is kept for command output (json summaries)
structlog.configure(logger_factory=structlog.PrintLoggerFactory(sys.stderr))

logger = structlog.get_logger("callprep")
