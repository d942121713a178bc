from datetime import datetime
import pytz

from quizdesk.config import settings

def local_timezone():
    """Timezone attempts are stamped in"""
    return pytz.timezone(settings.timezone)

def now():
    """Get current time in the configured timezone"""
    return datetime.now(local_timezone())

def format_duration(seconds: int) -> str:
    """Format a countdown as m:ss"""
    seconds = max(0, int(seconds))
    return f"{seconds // 60}:{seconds % 60:02d}"
