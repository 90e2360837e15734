from importlib.metadata import PackageNotFoundError, version

try:
  __version__ = version("schedule-core")
except PackageNotFoundError:
  __version__ = "0.0.0+local"

from schedule_core.agenda import AgendaStore, InMemoryAgendaStore, project, remove_source
from schedule_core.conflicts import conflict_reason, find_conflicts
from schedule_core.occurrences import DateWindow, Occurrence, generate, is_active, make_window
from schedule_core.rules import RecurrenceRule, normalize_rule
from schedule_core.timetable import Course, TimeScheme, TimetableDirectory, TimetableSemester, expand_course

__all__ = [
  "AgendaStore",
  "Course",
  "DateWindow",
  "InMemoryAgendaStore",
  "Occurrence",
  "RecurrenceRule",
  "TimeScheme",
  "TimetableDirectory",
  "TimetableSemester",
  "conflict_reason",
  "expand_course",
  "find_conflicts",
  "generate",
  "is_active",
  "make_window",
  "normalize_rule",
  "project",
  "remove_source",
]
