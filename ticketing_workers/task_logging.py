"""
Logging helpers for ticketing workers.
"""

import logging
import sys
from typing import Optional, Dict, Any
from datetime import datetime


def setup_logging(level: str = "INFO", service_name: str = "worker") -> logging.Logger:
    """
    Setup standardized logging for workers.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
        service_name: Name of the service for log identification

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(service_name)
    logger.setLevel(getattr(logging, level.upper()))

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(getattr(logging, level.upper()))
    console_handler.setFormatter(logging.Formatter(
        f'[%(asctime)s] {service_name.upper()}: %(levelname)s - %(name)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    ))
    logger.addHandler(console_handler)

    return logger


def _task_logger(task_name: str) -> logging.Logger:
    return logging.getLogger(task_name.split('.')[0])


def log_task_start(task_name: str, task_id: Optional[str], recipient: Optional[str] = None) -> None:
    log_data = {
        'task': task_name,
        'task_id': task_id,
        'status': 'started',
        'timestamp': datetime.now().isoformat()
    }
    if recipient:
        log_data['recipient'] = recipient

    _task_logger(task_name).info(f"Task started: {log_data}")


def log_task_success(task_name: str, task_id: Optional[str], result: Dict[str, Any]) -> None:
    log_data = {
        'task': task_name,
        'task_id': task_id,
        'status': 'completed',
        'result': result,
        'timestamp': datetime.now().isoformat()
    }
    _task_logger(task_name).info(f"Task completed: {log_data}")


def log_task_error(task_name: str, task_id: Optional[str], error: str, retry_count: int = 0) -> None:
    log_data = {
        'task': task_name,
        'task_id': task_id,
        'status': 'failed',
        'error': error,
        'retry_count': retry_count,
        'timestamp': datetime.now().isoformat()
    }
    _task_logger(task_name).error(f"Task failed: {log_data}")


def log_email_sent(to_email: str, subject: str, task_name: str) -> None:
    log_data = {
        'action': 'email_sent',
        'to': to_email,
        'subject': subject,
        'task': task_name,
        'timestamp': datetime.now().isoformat()
    }
    logging.getLogger('email').info(f"Email sent: {log_data}")


def log_email_failed(to_email: str, subject: str, error: str, task_name: str) -> None:
    log_data = {
        'action': 'email_failed',
        'to': to_email,
        'subject': subject,
        'error': error,
        'task': task_name,
        'timestamp': datetime.now().isoformat()
    }
    logging.getLogger('email').error(f"Email failed: {log_data}")
