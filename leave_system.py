"""
Application state for the Leave Approval Portal.

``LeaveSystem`` owns the three collections the portal works with (registered
accounts, the current session and the leave ledger) and mirrors each one to
a snapshot store after every change. It is constructed explicitly and passed
to whoever needs it; there is no module-level instance.

Persistence is fire-and-forget: a failed write is logged and the in-memory
change stands. Missing or corrupt snapshots load as empty defaults.
"""

import json
import logging
import threading
import time

from errors import (
    DuplicateUsernameError,
    InvalidCredentialsError,
    InvalidDateRangeError,
    MissingApproverError,
    MissingOtherReasonError,
    NotAuthenticatedError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from models import (
    REASON_OTHER,
    REASONS,
    ROLE_ADMIN,
    ROLE_STUDENT,
    ROLE_TEACHER,
    ROLES,
    STATUS_APPROVED_BY_ADMIN,
    STATUS_APPROVED_BY_TEACHER,
    STATUS_PENDING,
    STATUS_REJECTED_BY_ADMIN,
    STATUS_REJECTED_BY_TEACHER,
    Account,
    LeaveRequest,
    days_between,
    parse_date,
)

logger = logging.getLogger(__name__)

CURRENT_USER_KEY = 'currentUser'
USERS_KEY = 'users'
LEAVES_KEY = 'leaves'

ACTION_APPROVE = 'approve'
ACTION_REJECT = 'reject'
ACTIONS = (ACTION_APPROVE, ACTION_REJECT)
APPROVER_ROLES = (ROLE_TEACHER, ROLE_ADMIN)

LEAVE_FIELDS_MESSAGE = 'Please fill in all required leave request fields.'


def _check_text(values, message, title):
    """Reject submitted fields that are neither missing nor strings"""
    for value in values:
        if value is not None and not isinstance(value, str):
            raise ValidationError(message, title=title)


def apply_transition(leave, action, approver_role):
    """Apply an approve/reject decision to ``leave`` in place.

    Teacher and admin decisions only touch their own flag, except that a
    teacher rejection also clears the admin approval. There is no check on
    the current status.
    """
    approve = action == ACTION_APPROVE
    if approver_role == ROLE_TEACHER:
        leave.teacher_approved = approve
        if approve:
            leave.status = STATUS_APPROVED_BY_TEACHER
        else:
            leave.status = STATUS_REJECTED_BY_TEACHER
            leave.admin_approved = False
    elif approver_role == ROLE_ADMIN:
        leave.admin_approved = approve
        leave.status = STATUS_APPROVED_BY_ADMIN if approve else STATUS_REJECTED_BY_ADMIN
    return leave


def in_teacher_queue(leave, teacher_username):
    return (leave.user_role == ROLE_STUDENT
            and STATUS_PENDING in leave.status
            and leave.requested_to_teacher == teacher_username)


def in_admin_queue(leave):
    # Student requests nobody acted on yet stay out of the admin queue
    return (STATUS_APPROVED_BY_TEACHER in leave.status
            or (leave.user_role == ROLE_TEACHER and STATUS_PENDING in leave.status))


class LeaveSystem:
    """Accounts, session and leave ledger backed by a snapshot store"""

    def __init__(self, storage, clock=time.time):
        self.storage = storage
        self._clock = clock
        # One operation at a time, even when the web server uses threads
        self._lock = threading.Lock()
        self.current_user = self._load_current_user()
        self.users = self._load_users()
        self.leaves = self._load_leaves()
        logger.debug('Loaded %d users and %d leaves', len(self.users), len(self.leaves))

    # ------------------------------------------------------------------
    # Snapshot persistence
    # ------------------------------------------------------------------

    def _load(self, key, default):
        try:
            raw = self.storage.get(key)
        except StorageError as e:
            logger.warning('Falling back to default for %s: %s', key, e)
            return default
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except ValueError as e:
            logger.warning('Error parsing stored %s, using default: %s', key, e)
            return default

    def _load_current_user(self):
        data = self._load(CURRENT_USER_KEY, None)
        if data is None:
            return None
        try:
            return Account.from_dict(data)
        except (KeyError, TypeError, ValueError):
            logger.warning('Ignoring malformed stored session')
            return None

    def _load_users(self):
        users = []
        data = self._load(USERS_KEY, [])
        if not isinstance(data, list):
            logger.warning('Stored users is not a list, using empty directory')
            return users
        for item in data:
            try:
                users.append(Account.from_dict(item))
            except (KeyError, TypeError, ValueError):
                logger.warning('Skipping malformed stored user entry')
        return users

    def _load_leaves(self):
        leaves = []
        data = self._load(LEAVES_KEY, [])
        if not isinstance(data, list):
            logger.warning('Stored leaves is not a list, using empty ledger')
            return leaves
        for item in data:
            try:
                leaves.append(LeaveRequest.from_dict(item))
            except (KeyError, TypeError, ValueError):
                logger.warning('Skipping malformed stored leave entry')
        return leaves

    def _save(self, key, value):
        try:
            self.storage.set(key, json.dumps(value))
        except StorageError as e:
            logger.error('Error saving %s: %s', key, e)

    def save_current_user(self):
        self._save(CURRENT_USER_KEY, self.current_user.to_dict() if self.current_user else None)

    def save_users(self):
        self._save(USERS_KEY, [user.to_dict() for user in self.users])

    def save_leaves(self):
        self._save(LEAVES_KEY, [leave.to_dict() for leave in self.leaves])

    # ------------------------------------------------------------------
    # Account directory
    # ------------------------------------------------------------------

    def find_user(self, username):
        for user in self.users:
            if user.matches_username(username):
                return user
        return None

    def register(self, username, password, role):
        """Add a new account; usernames are unique ignoring case"""
        _check_text((username, password, role),
                    'Please enter username, password, and select a role.', 'Registration Error')
        if not username or not password or not role:
            raise ValidationError('Please enter username, password, and select a role.',
                                  title='Registration Error')
        if role not in ROLES:
            raise ValidationError(f'Unknown role "{role}".', title='Registration Error')
        with self._lock:
            if self.find_user(username):
                raise DuplicateUsernameError('Username already exists. Please choose a different one.')

            account = Account(username, password, role)
            self.users.append(account)
            self.save_users()
        logger.info('Registered %s as %s', username, role)
        return account.copy()

    def authenticate(self, username, password):
        """Return the account for a case-insensitive username and exact password"""
        _check_text((username, password),
                    'Please enter both username and password.', 'Login Error')
        if not username or not password:
            raise ValidationError('Please enter both username and password.', title='Login Error')
        for user in self.users:
            if user.matches_username(username) and user.password == password:
                return user.copy()
        raise InvalidCredentialsError('Invalid username or password.')

    def teachers(self):
        return [user.username for user in self.users if user.role == ROLE_TEACHER]

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    def login(self, username, password):
        account = self.authenticate(username, password)
        with self._lock:
            self.current_user = account
            self.save_current_user()
        logger.info('%s logged in', account.username)
        return account.copy()

    def logout(self):
        with self._lock:
            previous = self.current_user
            self.current_user = None
            self.save_current_user()
        if previous:
            logger.info('%s logged out', previous.username)
        return previous

    def require_current_user(self):
        if self.current_user is None:
            raise NotAuthenticatedError('Please log in first.')
        return self.current_user.copy()

    # ------------------------------------------------------------------
    # Leave submission
    # ------------------------------------------------------------------

    def _new_leave_id(self):
        candidate = int(self._clock() * 1000)
        taken = {leave.id for leave in self.leaves}
        while str(candidate) in taken:
            candidate += 1
        return str(candidate)

    def submit(self, current_user, reason, other_reason_text, start_date, end_date,
               teacher_username=None):
        """Validate and record a new Pending leave request for ``current_user``"""
        if current_user is None:
            raise NotAuthenticatedError('Please log in first.')
        _check_text((reason, other_reason_text, teacher_username),
                    LEAVE_FIELDS_MESSAGE, 'Leave Request Error')
        other_reason_text = (other_reason_text or '').strip()
        teacher_username = (teacher_username or '').strip()

        if not reason or reason not in REASONS:
            raise ValidationError(LEAVE_FIELDS_MESSAGE, title='Leave Request Error')

        start = parse_date(start_date)
        end = parse_date(end_date)
        if start is None or end is None:
            raise ValidationError(LEAVE_FIELDS_MESSAGE, title='Leave Request Error')

        with self._lock:
            is_student = current_user.role == ROLE_STUDENT
            if is_student and teacher_username not in self.teachers():
                raise MissingApproverError(LEAVE_FIELDS_MESSAGE)

            if reason == REASON_OTHER and not other_reason_text:
                raise MissingOtherReasonError('Please specify the "Other Reason".')

            if days_between(start, end) <= 0:
                raise InvalidDateRangeError('End date must be on or after the start date.')

            # id allocation and append happen under the same lock
            leave = LeaveRequest(
                id=self._new_leave_id(),
                user_name=current_user.username,
                user_role=current_user.role,
                reason=other_reason_text if reason == REASON_OTHER else reason,
                start_date=start,
                end_date=end,
                status=STATUS_PENDING,
                teacher_approved=current_user.role == ROLE_TEACHER,
                admin_approved=False,
                requested_to_teacher=teacher_username if is_student else None,
            )
            self.leaves.append(leave)
            self.save_leaves()
        logger.info('Leave %s submitted by %s for %d day(s)',
                    leave.id, leave.user_name, leave.number_of_days)
        return leave.copy()

    # ------------------------------------------------------------------
    # Approval state machine
    # ------------------------------------------------------------------

    def get_leave(self, leave_id):
        for leave in self.leaves:
            if leave.id == str(leave_id):
                return leave
        raise NotFoundError(f'Leave request {leave_id} was not found.')

    def transition(self, leave_id, action, approver_role):
        if action not in ACTIONS:
            raise ValidationError(f'Unknown action "{action}".')
        if approver_role not in APPROVER_ROLES:
            raise ValidationError(f'Role "{approver_role}" cannot approve leave requests.')
        with self._lock:
            leave = self.get_leave(leave_id)
            apply_transition(leave, action, approver_role)
            self.save_leaves()
            updated = leave.copy()
        logger.info('Leave %s: %s by %s -> %s', updated.id, action, approver_role, updated.status)
        return updated

    # ------------------------------------------------------------------
    # Queues
    # ------------------------------------------------------------------

    def teacher_queue(self, teacher_username):
        return [leave.copy() for leave in self.leaves if in_teacher_queue(leave, teacher_username)]

    def admin_queue(self):
        return [leave.copy() for leave in self.leaves if in_admin_queue(leave)]

    def own_leaves(self, username):
        return [leave.copy() for leave in self.leaves if leave.user_name == username]

    def actionable_queue(self, account):
        if account.role == ROLE_TEACHER:
            return self.teacher_queue(account.username)
        if account.role == ROLE_ADMIN:
            return self.admin_queue()
        return []
