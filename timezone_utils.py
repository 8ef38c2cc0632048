import os
from datetime import datetime
import pytz


def get_app_timezone():
    """Timezone used for timestamps stored by the application"""
    try:
        return pytz.timezone(os.environ.get('APP_TIMEZONE', 'UTC'))
    except pytz.UnknownTimeZoneError:
        return pytz.utc


def get_local_time_naive():
    """Get current application-local time as naive datetime for database storage"""
    return datetime.now(get_app_timezone()).replace(tzinfo=None)
