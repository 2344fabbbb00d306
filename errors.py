# Error taxonomy for the Leave Approval Portal
# Each error carries the title/message pair shown to the user


class LeaveError(Exception):
    """Base class for recoverable errors raised by portal operations"""
    title = 'Error'
    status_code = 400

    def __init__(self, message, title=None):
        super().__init__(message)
        self.message = message
        if title is not None:
            self.title = title

    def to_dict(self):
        return {'title': self.title, 'message': self.message}


class ValidationError(LeaveError):
    """A required field is missing or empty"""


class MissingApproverError(ValidationError):
    """Student submission without a registered teacher to approve it"""
    title = 'Leave Request Error'


class MissingOtherReasonError(ValidationError):
    """Reason 'other' chosen without the accompanying text"""
    title = 'Leave Request Error'


class InvalidDateRangeError(ValidationError):
    """End date falls before the start date"""
    title = 'Leave Request Error'


class NotAuthenticatedError(ValidationError):
    title = 'Login Error'
    status_code = 401


class DuplicateUsernameError(LeaveError):
    title = 'Registration Error'
    status_code = 409


class InvalidCredentialsError(LeaveError):
    title = 'Login Error'
    status_code = 401


class NotFoundError(LeaveError):
    """Transition referencing a leave id that is not in the ledger"""
    title = 'Not Found'
    status_code = 404


class PermissionDeniedError(LeaveError):
    title = 'Access Denied'
    status_code = 403


class StorageError(Exception):
    """Raised by storage backends when a snapshot cannot be read or written"""
