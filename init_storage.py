import os
import logging

from errors import StorageError
from leave_system import LeaveSystem
from storage import get_storage


def init_storage(database_url=None, data_dir=None):
    """Reset the snapshot store and fill it with demo accounts and leaves"""
    storage = get_storage(database_url, data_dir)

    if hasattr(storage, 'init_db'):
        storage.init_db()

    # Drop existing snapshots
    storage.clear()

    state = LeaveSystem(storage)

    admin = state.register('admin', 'admin123', 'admin')
    teacher = state.register('teacher1', 'teacher123', 'teacher')
    student1 = state.register('student1', 'student123', 'student')
    student2 = state.register('student2', 'student123', 'student')

    # One leave at each stage of the approval chain
    approved = state.submit(student1, 'sick', '', '2024-01-15', '2024-01-17', teacher.username)
    state.transition(approved.id, 'approve', teacher.role)
    state.transition(approved.id, 'approve', admin.role)

    rejected = state.submit(student1, 'other', 'Family emergency', '2024-01-20', '2024-01-22',
                            teacher.username)
    state.transition(rejected.id, 'reject', teacher.role)

    state.submit(student2, 'casual', '', '2024-01-25', '2024-01-27', teacher.username)
    state.submit(teacher, 'vacation', '', '2024-02-01', '2024-02-05')

    return state


if __name__ == '__main__':
    logging.basicConfig(level=os.environ.get('LOG_LEVEL', 'INFO').upper())
    try:
        init_storage(os.environ.get('DATABASE_URL'), os.environ.get('LEAVE_DATA_DIR'))
    except StorageError as e:
        print(f"Error: {e}")
        raise SystemExit(1)

    print("Leave storage initialized successfully!")
    print("Admin credentials - Username: admin, Password: admin123")
    print("Teacher credentials - Username: teacher1, Password: teacher123")
    print("Student credentials - Username: student1, Password: student123")
    print("Student credentials - Username: student2, Password: student123")
    print("Sample leave applications have been created.")
