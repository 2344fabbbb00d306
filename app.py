import os
import logging
from flask import Flask, request, jsonify

from errors import LeaveError, PermissionDeniedError
from leave_system import LeaveSystem
from models import ROLE_STUDENT, days_between
from storage import get_storage

logger = logging.getLogger(__name__)


def notify(title, message, status_code=200, **data):
    """Build the title/message response shown to the user"""
    body = {'title': title, 'message': message}
    body.update(data)
    return jsonify(body), status_code


def form_data():
    """Accept either a JSON body or regular form fields"""
    payload = request.get_json(silent=True)
    if isinstance(payload, dict):
        return payload
    return request.form


def create_app(state=None, config=None):
    """Create the Flask app around an explicit LeaveSystem"""
    app = Flask(__name__)
    app.secret_key = os.environ.get('SESSION_SECRET', 'your-secret-key-change-this')
    app.config['DATABASE_URL'] = os.environ.get('DATABASE_URL')
    app.config['LEAVE_DATA_DIR'] = os.environ.get('LEAVE_DATA_DIR')
    if config:
        app.config.update(config)

    if state is None:
        storage = get_storage(app.config['DATABASE_URL'], app.config['LEAVE_DATA_DIR'])
        if hasattr(storage, 'init_db'):
            storage.init_db()
        state = LeaveSystem(storage)
    app.extensions['leave_system'] = state

    @app.errorhandler(LeaveError)
    def handle_leave_error(e):
        """Turn operation errors into a notification"""
        logger.debug('%s: %s', type(e).__name__, e.message)
        return notify(e.title, e.message, e.status_code)

    @app.route('/register', methods=['POST'])
    def register():
        """User registration"""
        data = form_data()
        account = state.register(data.get('username'), data.get('password'), data.get('role'))
        return notify(
            'Success',
            f'User "{account.username}" registered as a {account.role}. You can now log in.',
            201,
            user={'username': account.username, 'role': account.role},
        )

    @app.route('/login', methods=['POST'])
    def login():
        """User login"""
        data = form_data()
        account = state.login(data.get('username'), data.get('password'))
        return notify(
            'Success',
            f'Logged in as {account.username} ({account.role}).',
            user={'username': account.username, 'role': account.role},
        )

    @app.route('/logout', methods=['POST'])
    def logout():
        """User logout"""
        state.logout()
        return notify('Logged Out', 'You have been successfully logged out.')

    @app.route('/session')
    def current_session():
        """Currently logged in user, if any"""
        user = state.current_user
        data = {'username': user.username, 'role': user.role} if user else None
        return jsonify({'user': data})

    @app.route('/teachers')
    def teachers():
        """Teachers a student can ask for approval"""
        return jsonify({'teachers': state.teachers()})

    @app.route('/leave-days')
    def leave_days():
        """Live day count for the dates currently entered on the form"""
        number_of_days = days_between(request.args.get('start_date'), request.args.get('end_date'))
        return jsonify({'numberOfDays': number_of_days})

    @app.route('/leaves', methods=['POST'])
    def apply_leave():
        """Apply for leave"""
        user = state.require_current_user()
        data = form_data()
        leave = state.submit(
            user,
            data.get('reason'),
            data.get('other_reason'),
            data.get('start_date'),
            data.get('end_date'),
            data.get('teacher'),
        )
        return notify('Success', 'Leave request submitted successfully!', 201, leave=leave.to_dict())

    @app.route('/leaves/mine')
    def leave_history():
        """View own leave history"""
        user = state.require_current_user()
        return jsonify({'leaves': [leave.to_dict() for leave in state.own_leaves(user.username)]})

    @app.route('/leaves/queue')
    def leave_queue():
        """Leave requests the current user may approve or reject"""
        user = state.require_current_user()
        return jsonify({'leaves': [leave.to_dict() for leave in state.actionable_queue(user)]})

    @app.route('/leaves/<leave_id>/<action>', methods=['POST'])
    def update_leave(leave_id, action):
        """Approve or reject a leave request as the current user's role"""
        user = state.require_current_user()
        if user.role == ROLE_STUDENT:
            raise PermissionDeniedError('Students cannot approve or reject leave requests.')
        leave = state.transition(leave_id, action, user.role)
        verb = 'approved' if action == 'approve' else 'rejected'
        return notify('Status Updated', f'Leave request {verb}.', leave=leave.to_dict())

    return app


if __name__ == '__main__':
    logging.basicConfig(level=os.environ.get('LOG_LEVEL', 'DEBUG').upper())
    port = int(os.environ.get('PORT', 5000))
    create_app().run(debug=False, host='0.0.0.0', port=port, threaded=False)
