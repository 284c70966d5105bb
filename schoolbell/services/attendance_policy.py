# services/attendance_policy.py
"""
Day-window classification of a scan.

Windows are in minutes since local midnight:

    [360, 450]              on time      06:00 - 07:30
    (450, 460]              late         07:31 - 07:40
    [480, 1440) or [0, 360) out of window (accepted, flagged as such)
    (460, 480)              rejected     attendance closed

Minutes from 480 on are both after the late cutoff and "out of window"; they are
accepted as out of window.
"""

from schoolbell.errors import InvalidInput
from schoolbell.models.attendance import AttendanceCategory

REJECTED = 'rejected'

ON_TIME_START = 360
ON_TIME_END = 450
LATE_END = 460
PROBE_START = 480
MINUTES_PER_DAY = 1440


def minutes_since_midnight(moment):
    """Whole minutes elapsed since local midnight for a datetime or time."""
    return moment.hour * 60 + moment.minute


def classify(minutes):
    """
    Map minutes since midnight to an attendance category.

    Returns one of AttendanceCategory.ON_TIME, LATE, OUT_OF_WINDOW or REJECTED.
    Raises InvalidInput for values outside 0-1439.
    """
    if isinstance(minutes, bool) or not isinstance(minutes, int):
        raise InvalidInput(f'Los minutos deben ser un entero, se recibió {minutes!r}')
    if minutes < 0 or minutes >= MINUTES_PER_DAY:
        raise InvalidInput(f'Minutos fuera de rango: {minutes}')

    if ON_TIME_START <= minutes <= ON_TIME_END:
        return AttendanceCategory.ON_TIME
    if ON_TIME_END < minutes <= LATE_END:
        return AttendanceCategory.LATE
    if minutes >= PROBE_START or minutes < ON_TIME_START:
        return AttendanceCategory.OUT_OF_WINDOW
    return REJECTED


def classify_moment(moment):
    return classify(minutes_since_midnight(moment))
