"""Activity recording package."""

from splitbook.activity.recorder import ACTIVITY_WARNING, ActivityRecorder

__all__ = ["ACTIVITY_WARNING", "ActivityRecorder"]
