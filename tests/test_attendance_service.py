import threading
import time
from datetime import datetime

import pytest

from schoolbell import create_app
from schoolbell.config import TestingConfig
from schoolbell.errors import InvalidInput, NotFound, SubjectNotFound, WindowClosed
from schoolbell.extensions import db
from schoolbell.models import AttendanceCategory, AttendanceRecord, AttendanceStatus, Student
from schoolbell.services.attendance_policy import classify_moment
from schoolbell.services.attendance_service import AttendanceService, ScanOutcome, day_bounds, parse_timestamp

pytestmark = pytest.mark.integration


def at(day, minutes):
    return datetime(2025, 3, day, minutes // 60, minutes % 60)


def test_same_day_scans_update_one_record(enrolled):
    outcome, record, student = AttendanceService.record_scan('S1', now=at(10, 400))
    assert outcome == ScanOutcome.CREATED
    assert record.category == AttendanceCategory.ON_TIME
    assert record.status == AttendanceStatus.PRESENT
    assert record.full_name == 'Ana López'
    assert record.group == 'B'
    assert student.enrollment_id == 'S1'

    outcome, updated, _ = AttendanceService.record_scan('S1', now=at(10, 455))
    assert outcome == ScanOutcome.UPDATED
    assert updated.id == record.id
    assert updated.category == AttendanceCategory.LATE
    assert updated.timestamp == at(10, 455)

    with pytest.raises(WindowClosed):
        AttendanceService.record_scan('S1', now=at(10, 470))

    records = db.session.query(AttendanceRecord).all()
    assert len(records) == 1
    assert records[0].category == AttendanceCategory.LATE
    assert records[0].timestamp == at(10, 455)


def test_scans_on_different_days_create_two_records(enrolled):
    AttendanceService.record_scan('S1', now=at(10, 400))
    outcome, _, _ = AttendanceService.record_scan('S1', now=at(11, 400))

    assert outcome == ScanOutcome.CREATED
    assert db.session.query(AttendanceRecord).count() == 2


def test_midnight_starts_a_new_day(enrolled):
    AttendanceService.record_scan('S1', now=datetime(2025, 3, 10, 23, 59))
    outcome, _, _ = AttendanceService.record_scan('S1', now=datetime(2025, 3, 11, 0, 0))

    assert outcome == ScanOutcome.CREATED


def test_unknown_subject(app):
    with pytest.raises(SubjectNotFound):
        AttendanceService.record_scan('NOPE', now=at(10, 400))


def test_manual_entry_bypasses_classification(app):
    record = AttendanceService.record_manual({
        'nombre': 'Luis Pérez',
        'grado': '2',
        'grupo': 'A',
        'fecha': '2025-03-10T07:50:00',
        'status': 'J',
    })

    assert record.subject_id == 'N/A'
    assert record.status == AttendanceStatus.JUSTIFIED
    assert record.category == AttendanceCategory.MANUAL
    assert record.timestamp == datetime(2025, 3, 10, 7, 50)


def test_manual_entry_skips_day_uniqueness(enrolled):
    AttendanceService.record_scan('S1', now=at(10, 400))
    AttendanceService.record_manual({
        'matricula': 'S1',
        'full_name': 'Ana López',
        'grade': '3',
        'group': 'B',
        'timestamp': at(10, 600),
        'status': 'absent',
    })

    assert db.session.query(AttendanceRecord).filter_by(subject_id='S1').count() == 2


@pytest.mark.parametrize('fields', [
    {'nombre': 'Luis', 'grado': '2', 'grupo': 'A', 'fecha': '2025-03-10', 'status': 'late'},
    {'nombre': 'Luis', 'grado': '2', 'grupo': 'A', 'status': 'present'},
    {'nombre': 'Luis', 'grado': '2', 'grupo': 'A', 'fecha': 'ayer', 'status': 'present'},
])
def test_manual_entry_validation(app, fields):
    with pytest.raises(InvalidInput):
        AttendanceService.record_manual(fields)


def test_update_status(enrolled):
    _, record, _ = AttendanceService.record_scan('S1', now=at(10, 400))

    updated = AttendanceService.update_status(record.id, 'F')

    assert updated.status == AttendanceStatus.ABSENT
    assert updated.category == AttendanceCategory.ON_TIME


def test_update_status_errors(enrolled):
    _, record, _ = AttendanceService.record_scan('S1', now=at(10, 400))

    with pytest.raises(InvalidInput):
        AttendanceService.update_status(record.id, 'tardy')
    with pytest.raises(NotFound):
        AttendanceService.update_status('missing-id', 'present')


def test_list_records_newest_first(enrolled):
    AttendanceService.record_scan('S1', now=at(10, 400))
    AttendanceService.record_scan('S1', now=at(11, 400))

    records = AttendanceService.list_records()

    assert [r.timestamp for r in records] == [at(11, 400), at(10, 400)]


def test_day_bounds_and_timestamp_parsing():
    start, end = day_bounds(datetime(2025, 3, 10, 7, 30, 12))
    assert start == datetime(2025, 3, 10)
    assert end == datetime(2025, 3, 11)

    assert parse_timestamp('2025-03-10T07:30:00') == datetime(2025, 3, 10, 7, 30)
    assert parse_timestamp('2025-03-10T07:30:00Z').tzinfo is None


@pytest.fixture()
def file_app(tmp_path, monkeypatch):
    """Application on a file-backed SQLite database shared by several threads."""
    monkeypatch.setattr(TestingConfig, 'SQLALCHEMY_DATABASE_URI', f"sqlite:///{tmp_path / 'attendance.db'}")
    app = create_app('testing')
    with app.app_context():
        db.session.add(Student(enrollment_id='S1', full_name='Ana López', grade='3', group='B'))
        db.session.commit()
    yield app
    with app.app_context():
        db.drop_all()
        db.engine.dispose()


def test_concurrent_scans_keep_one_record(file_app, monkeypatch):
    def slow_classify(moment):
        time.sleep(0.2)
        return classify_moment(moment)

    monkeypatch.setattr('schoolbell.services.attendance_service.classify_moment', slow_classify)
    start = threading.Barrier(2)
    outcomes, errors = [], []

    def scan():
        start.wait(timeout=5)
        with file_app.app_context():
            try:
                outcome, _, _ = AttendanceService.record_scan('S1', now=at(10, 420))
                outcomes.append(outcome)
            except Exception as e:
                errors.append(e)

    threads = [threading.Thread(target=scan) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    assert errors == []
    assert sorted(outcomes) == [ScanOutcome.CREATED, ScanOutcome.UPDATED]
    with file_app.app_context():
        assert db.session.query(AttendanceRecord).filter_by(subject_id='S1').count() == 1
