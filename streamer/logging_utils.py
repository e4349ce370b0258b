"""
Logging utility functions for structured logging
"""
import logging
import time
from contextlib import contextmanager

# Get loggers for different parts of the application
cdc_logger = logging.getLogger('streamer.cdc')
kafka_logger = logging.getLogger('streamer.kafka')
db_logger = logging.getLogger('streamer.database')


def log_with_context(logger, level, message, **context):
    """
    Log a message with additional context fields

    Args:
        logger: The logger instance to use
        level: Log level (INFO, ERROR, WARNING, etc.)
        message: The log message
        **context: Additional context fields (profile_id, connector_name, etc.)

    Example:
        log_with_context(
            cdc_logger,
            'INFO',
            'Capture connector registered',
            profile_id='5b0c...',
            connector_name='5b0c...',
            duration=2.5
        )
    """
    extra = {k: v for k, v in context.items() if v is not None}
    logger.log(getattr(logging, level.upper()), message, extra=extra)


@contextmanager
def log_operation(logger, operation_name, **context):
    """
    Context manager to log the start, end, and duration of an operation

    Example:
        with log_operation(cdc_logger, 'save_profile', profile_id=profile.pk):
            register()
    """
    start_time = time.time()

    log_with_context(
        logger,
        'INFO',
        f'{operation_name} started',
        operation=operation_name,
        **context
    )

    try:
        yield

        duration = time.time() - start_time
        log_with_context(
            logger,
            'INFO',
            f'{operation_name} completed successfully',
            operation=operation_name,
            duration=duration,
            status='success',
            **context
        )

    except Exception as e:
        duration = time.time() - start_time
        log_with_context(
            logger,
            'ERROR',
            f'{operation_name} failed: {str(e)}',
            operation=operation_name,
            duration=duration,
            status='failed',
            error_type=type(e).__name__,
            error_message=str(e),
            **context
        )
        raise


# ====================================
# CDC-SPECIFIC LOGGING FUNCTIONS
# ====================================

def log_connector_registered(profile_id, connector_name, action, duration=None):
    """Log capture connector create/update"""
    log_with_context(
        cdc_logger,
        'INFO',
        f'Debezium connector {action}',
        profile_id=str(profile_id),
        connector_name=connector_name,
        operation=f'connector_{action}',
        duration=duration
    )


def log_connector_deleted(profile_id, connector_name, duration=None):
    """Log capture connector deletion"""
    log_with_context(
        cdc_logger,
        'INFO',
        'Debezium connector deleted',
        profile_id=str(profile_id),
        connector_name=connector_name,
        operation='connector_delete',
        duration=duration
    )


def log_connector_error(profile_id, connector_name, error, operation='unknown'):
    """Log capture connector errors"""
    log_with_context(
        cdc_logger,
        'ERROR',
        f'Connector operation failed: {str(error)}',
        profile_id=str(profile_id),
        connector_name=connector_name,
        operation=operation,
        error_type=type(error).__name__,
        error_message=str(error)
    )


def log_validation_report(engine_type, host, report):
    """Log a readiness report, one line per failing or warning step"""
    level = 'INFO' if report.ready else 'WARNING'
    log_with_context(
        db_logger,
        level,
        f'Readiness validation {"passed" if report.ready else "failed"} for {engine_type}@{host}',
        database_type=engine_type,
        host=host,
        operation='readiness_validation',
        status='ready' if report.ready else 'not_ready',
        steps_count=len(report.steps),
    )
    for step in report.steps:
        if step.status != 'success':
            db_logger.debug(f'  {step.step} [{step.status}]: {step.message}')


def log_database_connection(database_type, host, status, duration=None, error=None):
    """Log database connection attempts"""
    level = 'INFO' if status == 'success' else 'ERROR'
    message = f'Database connection {status}'

    context = {
        'database_type': database_type,
        'host': host,
        'operation': 'db_connection_test',
        'status': status,
        'duration': duration
    }

    if error:
        context['error_type'] = type(error).__name__
        context['error_message'] = str(error)

    log_with_context(db_logger, level, message, **context)


def log_stream_opened(topic_prefix, consumer_group):
    """Log a relay session start"""
    log_with_context(
        kafka_logger,
        'INFO',
        f'Stream session opened for {topic_prefix}',
        topic_prefix=topic_prefix,
        consumer_group=consumer_group,
        operation='stream_open'
    )


def log_stream_closed(topic_prefix, consumer_group, delivered, duplicates, duration=None):
    """Log a relay session end"""
    log_with_context(
        kafka_logger,
        'INFO',
        f'Stream session closed for {topic_prefix} ({delivered} delivered, {duplicates} duplicates dropped)',
        topic_prefix=topic_prefix,
        consumer_group=consumer_group,
        operation='stream_close',
        event_count=delivered,
        duplicates=duplicates,
        duration=duration
    )
