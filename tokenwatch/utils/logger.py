import os
import logging
import sys
from logging.handlers import RotatingFileHandler

class LoggerSetup:
    """
    Centralized logging configuration for the tokenwatch indexer.
    Console output for operators, rotating debug files for post-mortems.
    """
    _initialized = False
    _logs_dir = os.getenv('LOG_DIR', 'logs')

    @classmethod
    def _get_log_path(cls, name: str) -> str:
        """
        Build the log file path for a logger name.
        Module paths (``tokenwatch.clients.ledger``) log into their last segment,
        class names log into a file of the same name.

        Args:
            name: Logger name (module path or class name)
        Returns:
            str: Path for the log file
        """
        if '.' in name:
            filename = f"{name.split('.')[-1]}.log"
        else:
            filename = f"{name}.log"

        return os.path.join(cls._logs_dir, filename)

    @classmethod
    def setup(cls, name: str) -> logging.Logger:
        """
        Set up and return a logger.

        Args:
            name: Logger name (__name__ for modules or __class__.__name__ for classes)
        Returns:
            logging.Logger: Configured logger instance
        Example:
            logger = LoggerSetup.setup(__class__.__name__)
            # Creates IndexerService.log
        """
        logger = logging.getLogger(name)
        logger.setLevel(logging.DEBUG)

        # Avoid adding handlers multiple times
        if not logger.handlers:
            console_handler = logging.StreamHandler()
            console_handler.setLevel(logging.INFO)
            console_handler.setFormatter(logging.Formatter(
                '%(asctime)s - %(levelname)s - %(message)s'
            ))
            logger.addHandler(console_handler)

            # Only add file handler if not in test environment
            if "pytest" not in sys.modules:
                try:
                    debug_log_file = cls._get_log_path(name)
                    os.makedirs(os.path.dirname(debug_log_file) or '.', exist_ok=True)

                    file_handler = RotatingFileHandler(
                        debug_log_file,
                        maxBytes=10*1024*1024,  # 10MB per file
                        backupCount=5,
                        encoding='utf-8'
                    )
                    file_handler.setLevel(logging.DEBUG)
                    file_handler.setFormatter(logging.Formatter(
                        '%(asctime)s - %(threadName)s - %(levelname)s - [%(name)s] - %(message)s'
                    ))
                    logger.addHandler(file_handler)
                except (PermissionError, OSError) as e:
                    # Log to console if file logging fails
                    console_handler.setLevel(logging.DEBUG)
                    logger.warning(f"Could not set up file logging: {str(e)}")

        if not cls._initialized:
            # Quiet noisy loggers
            logging.getLogger('aiohttp').setLevel(logging.WARNING)
            logging.getLogger('sqlalchemy').setLevel(logging.WARNING)
            logging.getLogger('websockets').setLevel(logging.WARNING)
            cls._initialized = True

        return logger

