import copy
import logging
import os

from config import settings

# Define logging configuration
logging_config = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'standard': {
            'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            'datefmt': '%Y-%m-%d %H:%M:%S'
        },
    },
    'handlers': {
        'console': {
            'level': 'INFO',
            'class': 'logging.StreamHandler',
            'formatter': 'standard',
        },
        'file': {
            'level': 'DEBUG',
            'class': 'logging.handlers.RotatingFileHandler',
            'filename': settings.LOG_FILE,
            'maxBytes': 10485760,  # 10 MB
            'backupCount': 5,
            'formatter': 'standard',
        },
    },
    'loggers': {
        '': {  # root logger
            'handlers': ['console', 'file'],
            'level': 'INFO',
            'propagate': True
        },
        'flashdeck': {
            'handlers': ['console', 'file'],
            'level': 'DEBUG' if settings.DEBUG_MODE else 'INFO',
            'propagate': False
        },
    }
}

def setup_logging():
    """Configure logging for the application"""
    from logging.config import dictConfig

    # Ensure logs directory exists
    log_dir = os.path.dirname(settings.LOG_FILE)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)

    config = copy.deepcopy(logging_config)
    config['handlers']['file']['filename'] = settings.LOG_FILE
    dictConfig(config)
    logger = logging.getLogger('flashdeck')
    logger.info('Logging configured successfully')
    return logger
