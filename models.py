# This file contains the data models for the Leave Approval Portal
# Persistence is handled by storage.py; state changes live in leave_system.py

from datetime import datetime, date

# Roles an account can register with
ROLE_STUDENT = 'student'
ROLE_TEACHER = 'teacher'
ROLE_ADMIN = 'admin'
ROLES = (ROLE_STUDENT, ROLE_TEACHER, ROLE_ADMIN)

# Leave reasons offered on the request form
REASON_SICK = 'sick'
REASON_CASUAL = 'casual'
REASON_VACATION = 'vacation'
REASON_OTHER = 'other'
REASONS = (REASON_SICK, REASON_CASUAL, REASON_VACATION, REASON_OTHER)

# Leave statuses (matched by substring in the queue filters)
STATUS_PENDING = 'Pending'
STATUS_APPROVED_BY_TEACHER = 'Approved by Teacher'
STATUS_REJECTED_BY_TEACHER = 'Rejected by Teacher'
STATUS_APPROVED_BY_ADMIN = 'Approved by Admin'
STATUS_REJECTED_BY_ADMIN = 'Rejected by Admin'
STATUSES = (
    STATUS_PENDING,
    STATUS_APPROVED_BY_TEACHER,
    STATUS_REJECTED_BY_TEACHER,
    STATUS_APPROVED_BY_ADMIN,
    STATUS_REJECTED_BY_ADMIN,
)

DATE_FORMAT = '%Y-%m-%d'


def parse_date(value):
    """Return a date for a date/datetime/'YYYY-MM-DD' value, or None"""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value).strip(), DATE_FORMAT).date()
    except ValueError:
        return None


def days_between(start_date, end_date):
    """Inclusive number of leave days between two dates.

    Returns 0 when either date is missing or unparsable, or when the end
    date falls before the start date.
    """
    start = parse_date(start_date)
    end = parse_date(end_date)
    if start is None or end is None:
        return 0
    days = (end - start).days + 1
    return days if days > 0 else 0


def _require_str(data, key):
    value = data[key]
    if not isinstance(value, str):
        raise ValueError(f'{key} must be a string')
    return value


def _require_bool(data, key):
    value = data.get(key, False)
    if not isinstance(value, bool):
        raise ValueError(f'{key} must be true or false')
    return value


class Account:
    """Registered user: a student, teacher or admin"""
    def __init__(self, username, password, role):
        self.username = username
        self.password = password  # stored as entered
        self.role = role

    def matches_username(self, username):
        return self.username.lower() == (username or '').lower()

    def copy(self):
        return Account(self.username, self.password, self.role)

    def to_dict(self):
        return {'username': self.username, 'password': self.password, 'role': self.role}

    @classmethod
    def from_dict(cls, data):
        """Build an account from its stored shape, raising ValueError on bad values"""
        username = _require_str(data, 'username')
        password = _require_str(data, 'password')
        role = data['role']
        if role not in ROLES:
            raise ValueError(f'unknown role {role!r}')
        return cls(username, password, role)

    def __eq__(self, other):
        if not isinstance(other, Account):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self):
        return f'Account(username={self.username!r}, role={self.role!r})'


class LeaveRequest:
    """Leave request moving through the teacher and admin approval stages"""
    def __init__(self, id, user_name, user_role, reason, start_date, end_date,
                 status=STATUS_PENDING, teacher_approved=False, admin_approved=False,
                 requested_to_teacher=None):
        self.id = id
        self.user_name = user_name
        self.user_role = user_role
        self.reason = reason  # effective reason
        self.start_date = parse_date(start_date)
        self.end_date = parse_date(end_date)
        self.status = status
        self.teacher_approved = teacher_approved
        self.admin_approved = admin_approved
        self.requested_to_teacher = requested_to_teacher  # None for teacher requests

    @property
    def number_of_days(self):
        return days_between(self.start_date, self.end_date)

    def copy(self):
        return LeaveRequest.from_dict(self.to_dict())

    def to_dict(self):
        """Serialized shape used by the snapshot store and the JSON API"""
        return {
            'id': self.id,
            'userName': self.user_name,
            'userRole': self.user_role,
            'reason': self.reason,
            'startDate': self.start_date.strftime(DATE_FORMAT) if self.start_date else None,
            'endDate': self.end_date.strftime(DATE_FORMAT) if self.end_date else None,
            'numberOfDays': self.number_of_days,
            'status': self.status,
            'teacherApproved': self.teacher_approved,
            'adminApproved': self.admin_approved,
            'requestedToTeacher': self.requested_to_teacher,
        }

    @classmethod
    def from_dict(cls, data):
        # numberOfDays is derived from the dates, so the stored value is ignored
        leave_id = data['id']
        if isinstance(leave_id, bool) or not isinstance(leave_id, (str, int)):
            raise ValueError(f'bad leave id {leave_id!r}')
        user_role = data['userRole']
        if user_role not in ROLES:
            raise ValueError(f'unknown role {user_role!r}')
        status = data.get('status', STATUS_PENDING)
        if status not in STATUSES:
            raise ValueError(f'unknown status {status!r}')
        for key in ('startDate', 'endDate'):
            if data.get(key) is not None and not isinstance(data[key], str):
                raise ValueError(f'{key} must be a string')
        requested_to_teacher = data.get('requestedToTeacher')
        if requested_to_teacher is not None and not isinstance(requested_to_teacher, str):
            raise ValueError('requestedToTeacher must be a string')
        return cls(
            id=str(leave_id),
            user_name=_require_str(data, 'userName'),
            user_role=user_role,
            reason=_require_str(data, 'reason'),
            start_date=data.get('startDate'),
            end_date=data.get('endDate'),
            status=status,
            teacher_approved=_require_bool(data, 'teacherApproved'),
            admin_approved=_require_bool(data, 'adminApproved'),
            requested_to_teacher=requested_to_teacher,
        )

    def __eq__(self, other):
        if not isinstance(other, LeaveRequest):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self):
        return f'LeaveRequest(id={self.id!r}, user_name={self.user_name!r}, status={self.status!r})'
