from staffing.models.attendance import AttendanceRecord
from staffing.models.event import Event
from staffing.models.user import User

__all__ = ["Event", "AttendanceRecord", "User"]
