import threading

import pytest

from errors import (
    DuplicateUsernameError,
    InvalidCredentialsError,
    InvalidDateRangeError,
    MissingApproverError,
    MissingOtherReasonError,
    NotAuthenticatedError,
    NotFoundError,
    ValidationError,
)
from leave_system import in_admin_queue
from models import Account


# --- Account directory ---------------------------------------------------

@pytest.mark.parametrize('username, password, role', [
    ('', 'pw', 'student'),
    ('dave', '', 'student'),
    ('dave', 'pw', ''),
    ('dave', 'pw', 'principal'),
])
def test_register_requires_all_fields(system, username, password, role):
    with pytest.raises(ValidationError):
        system.register(username, password, role)
    assert system.users == []


def test_register_rejects_case_insensitive_duplicate(system):
    system.register('Alice', 'one', 'student')
    with pytest.raises(DuplicateUsernameError):
        system.register('aLiCe', 'two', 'teacher')
    assert len(system.users) == 1


def test_authenticate_username_ignores_case_password_does_not(system, accounts):
    account = system.authenticate('ALICE', 'pw-alice')
    assert account == Account('alice', 'pw-alice', 'student')
    with pytest.raises(InvalidCredentialsError):
        system.authenticate('alice', 'PW-ALICE')
    with pytest.raises(InvalidCredentialsError):
        system.authenticate('nobody', 'pw-alice')


def test_authenticate_requires_both_fields(system, accounts):
    with pytest.raises(ValidationError):
        system.authenticate('alice', '')
    with pytest.raises(ValidationError):
        system.authenticate('', 'pw-alice')


def test_teachers_lists_teacher_usernames(system, accounts):
    system.register('dora', 'pw', 'teacher')
    assert system.teachers() == ['bob', 'dora']


# --- Session -------------------------------------------------------------

def test_login_and_logout(system, accounts):
    with pytest.raises(NotAuthenticatedError):
        system.require_current_user()
    system.login('Bob', 'pw-bob')
    assert system.require_current_user().username == 'bob'
    system.logout()
    assert system.current_user is None


def test_failed_login_keeps_previous_session(system, accounts):
    system.login('alice', 'pw-alice')
    with pytest.raises(InvalidCredentialsError):
        system.login('bob', 'wrong')
    assert system.current_user.username == 'alice'


# --- Submission ----------------------------------------------------------

def test_student_submission(system, accounts):
    leave = system.submit(accounts['alice'], 'sick', '', '2024-01-01', '2024-01-03', 'bob')
    assert leave.number_of_days == 3
    assert leave.status == 'Pending'
    assert leave.teacher_approved is False
    assert leave.admin_approved is False
    assert leave.requested_to_teacher == 'bob'
    assert leave.user_name == 'alice'
    assert leave.user_role == 'student'
    assert len(system.leaves) == 1


def test_teacher_submission_skips_teacher_stage(system, accounts):
    leave = system.submit(accounts['bob'], 'vacation', '', '2024-02-01', '2024-02-02', 'bob')
    assert leave.teacher_approved is True
    assert leave.requested_to_teacher is None
    assert [l.id for l in system.admin_queue()] == [leave.id]


def test_other_reason_text_becomes_reason(system, accounts):
    leave = system.submit(accounts['alice'], 'other', '  Wedding  ', '2024-01-01', '2024-01-01', 'bob')
    assert leave.reason == 'Wedding'


def test_other_reason_without_text(system, accounts):
    with pytest.raises(MissingOtherReasonError) as excinfo:
        system.submit(accounts['alice'], 'other', '   ', '2024-01-01', '2024-01-03', 'bob')
    assert excinfo.value.message == 'Please specify the "Other Reason".'
    assert system.leaves == []


@pytest.mark.parametrize('reason', ['', None, 'bored'])
def test_reason_must_be_known(system, accounts, reason):
    with pytest.raises(ValidationError):
        system.submit(accounts['alice'], reason, '', '2024-01-01', '2024-01-03', 'bob')


@pytest.mark.parametrize('start, end', [('', '2024-01-03'), ('2024-01-01', None), ('junk', '2024-01-03')])
def test_dates_must_be_present(system, accounts, start, end):
    with pytest.raises(ValidationError) as excinfo:
        system.submit(accounts['alice'], 'sick', '', start, end, 'bob')
    assert type(excinfo.value) is ValidationError


@pytest.mark.parametrize('teacher', ['', None, 'carol', 'ghost'])
def test_student_needs_registered_teacher(system, accounts, teacher):
    with pytest.raises(MissingApproverError):
        system.submit(accounts['alice'], 'sick', '', '2024-01-01', '2024-01-03', teacher)


def test_reversed_dates_rejected(system, accounts):
    with pytest.raises(InvalidDateRangeError):
        system.submit(accounts['alice'], 'sick', '', '2024-01-05', '2024-01-01', 'bob')


def test_validation_order_missing_teacher_before_other_reason(system, accounts):
    with pytest.raises(MissingApproverError):
        system.submit(accounts['alice'], 'other', '', '2024-01-05', '2024-01-01', '')


def test_validation_order_other_reason_before_date_range(system, accounts):
    with pytest.raises(MissingOtherReasonError):
        system.submit(accounts['alice'], 'other', '', '2024-01-05', '2024-01-01', 'bob')


def test_submit_requires_user(system, accounts):
    with pytest.raises(NotAuthenticatedError):
        system.submit(None, 'sick', '', '2024-01-01', '2024-01-03', 'bob')


def test_leave_ids_are_unique_within_same_millisecond(system, accounts):
    first = system.submit(accounts['alice'], 'sick', '', '2024-01-01', '2024-01-01', 'bob')
    second = system.submit(accounts['alice'], 'sick', '', '2024-01-02', '2024-01-02', 'bob')
    assert first.id == '1704067200000'
    assert second.id == '1704067200001'


# --- State machine -------------------------------------------------------

@pytest.fixture
def leave(system, accounts):
    return system.submit(accounts['alice'], 'sick', '', '2024-01-01', '2024-01-03', 'bob')


def test_transition_unknown_leave(system, accounts):
    with pytest.raises(NotFoundError):
        system.transition('missing', 'approve', 'teacher')


def test_transition_rejects_bad_action_or_role(system, leave):
    with pytest.raises(ValidationError):
        system.transition(leave.id, 'escalate', 'teacher')
    with pytest.raises(ValidationError):
        system.transition(leave.id, 'approve', 'student')
    assert system.get_leave(leave.id).status == 'Pending'


def test_teacher_approve(system, leave):
    updated = system.transition(leave.id, 'approve', 'teacher')
    assert updated.status == 'Approved by Teacher'
    assert updated.teacher_approved is True
    assert updated.admin_approved is False


def test_teacher_approve_is_idempotent(system, leave):
    once = system.transition(leave.id, 'approve', 'teacher')
    twice = system.transition(leave.id, 'approve', 'teacher')
    assert once == twice


def test_teacher_reject_forces_admin_flag_off(system, leave):
    system.transition(leave.id, 'approve', 'admin')
    assert system.get_leave(leave.id).admin_approved is True
    updated = system.transition(leave.id, 'reject', 'teacher')
    assert updated.status == 'Rejected by Teacher'
    assert updated.teacher_approved is False
    assert updated.admin_approved is False


def test_admin_approve_leaves_teacher_flag_alone(system, leave):
    updated = system.transition(leave.id, 'approve', 'admin')
    assert updated.status == 'Approved by Admin'
    assert updated.admin_approved is True
    assert updated.teacher_approved is False


def test_admin_reject_keeps_teacher_approval(system, leave):
    system.transition(leave.id, 'approve', 'teacher')
    updated = system.transition(leave.id, 'reject', 'admin')
    assert updated.status == 'Rejected by Admin'
    assert updated.teacher_approved is True
    assert updated.admin_approved is False


def test_transition_only_touches_matched_record(system, accounts, leave):
    other = system.submit(accounts['alice'], 'casual', '', '2024-02-01', '2024-02-01', 'bob')
    system.transition(leave.id, 'reject', 'teacher')
    assert system.get_leave(other.id) == other


def test_returned_leave_is_a_copy(system, leave):
    leave.status = 'Approved by Admin'
    assert system.get_leave(leave.id).status == 'Pending'


def test_alice_bob_scenario(system, accounts, leave):
    assert [l.id for l in system.teacher_queue('bob')] == [leave.id]
    assert system.admin_queue() == []

    system.transition(leave.id, 'approve', 'teacher')
    assert system.teacher_queue('bob') == []
    assert [l.id for l in system.admin_queue()] == [leave.id]

    final = system.transition(leave.id, 'reject', 'admin')
    assert final.status == 'Rejected by Admin'
    assert final.admin_approved is False
    assert system.admin_queue() == []


# --- Queues --------------------------------------------------------------

def test_teacher_queue_only_shows_own_students(system, accounts):
    system.register('dora', 'pw', 'teacher')
    for_bob = system.submit(accounts['alice'], 'sick', '', '2024-01-01', '2024-01-01', 'bob')
    system.submit(accounts['alice'], 'sick', '', '2024-01-02', '2024-01-02', 'dora')
    system.submit(accounts['bob'], 'sick', '', '2024-01-03', '2024-01-03')
    assert [l.id for l in system.teacher_queue('bob')] == [for_bob.id]


def test_admin_queue_does_not_show_untouched_student_requests(system, accounts, leave):
    assert not in_admin_queue(system.get_leave(leave.id))


def test_own_leaves_and_actionable_queue(system, accounts, leave):
    teacher_leave = system.submit(accounts['bob'], 'vacation', '', '2024-03-01', '2024-03-01')
    assert [l.id for l in system.own_leaves('alice')] == [leave.id]
    assert [l.id for l in system.own_leaves('bob')] == [teacher_leave.id]
    assert system.actionable_queue(accounts['alice']) == []
    assert [l.id for l in system.actionable_queue(accounts['bob'])] == [leave.id]
    assert [l.id for l in system.actionable_queue(accounts['carol'])] == [teacher_leave.id]


@pytest.mark.parametrize('username, password, role', [
    (123, 'pw', 'student'),
    ('dave', 42, 'student'),
    ('dave', 'pw', ['student']),
])
def test_register_rejects_non_text_fields(system, accounts, username, password, role):
    with pytest.raises(ValidationError):
        system.register(username, password, role)
    assert len(system.users) == 3


def test_authenticate_rejects_non_text_fields(system, accounts):
    with pytest.raises(ValidationError):
        system.authenticate(123, 'pw-alice')
    with pytest.raises(ValidationError):
        system.authenticate('alice', {'pw': 1})


@pytest.mark.parametrize('reason, other, teacher', [
    ('other', 5, 'bob'),
    ('sick', '', 9),
    (['sick'], '', 'bob'),
])
def test_submit_rejects_non_text_fields(system, accounts, reason, other, teacher):
    with pytest.raises(ValidationError):
        system.submit(accounts['alice'], reason, other, '2024-01-01', '2024-01-03', teacher)
    assert system.leaves == []


def test_concurrent_submissions_get_distinct_ids(system, accounts):
    def submit_one(day):
        system.submit(accounts['alice'], 'sick', '', f'2024-01-{day:02d}', f'2024-01-{day:02d}', 'bob')

    threads = [threading.Thread(target=submit_one, args=(day,)) for day in range(1, 21)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    ids = [leave.id for leave in system.leaves]
    assert len(ids) == 20
    assert len(set(ids)) == 20
