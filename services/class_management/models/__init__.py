from .classes import ClassSession, ClassSlot, ClassStudent, Weekday
from .attendance import AttendanceRecord, AttendanceEntry, AttendanceStatus
