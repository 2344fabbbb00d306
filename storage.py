"""
Snapshot storage for the Leave Approval Portal.

Each backend is a tiny key-value store holding serialized JSON strings under
the keys ``currentUser``, ``users`` and ``leaves``. Values are rewritten in
full on every change; there is no incremental patching.

Several processes pointed at the same store do not coordinate: the last
writer of a key wins.
"""

import logging
import os
import tempfile

import psycopg2

from errors import StorageError

logger = logging.getLogger(__name__)


class MemoryStorage:
    """Keeps snapshots in a dict; nothing survives the process"""

    def __init__(self, initial=None):
        self._data = dict(initial or {})

    def get(self, key):
        return self._data.get(key)

    def set(self, key, value):
        self._data[key] = value

    def clear(self):
        self._data.clear()


class JsonFileStorage:
    """One ``<key>.json`` file per key inside ``directory``.

    Writes go through a temp file + os.replace so readers never observe a
    half-written snapshot.
    """

    def __init__(self, directory):
        self.directory = directory

    def _path(self, key):
        return os.path.join(self.directory, f'{key}.json')

    def get(self, key):
        try:
            with open(self._path(key), 'r', encoding='utf-8') as f:
                return f.read()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(f'Could not read {key}: {e}') from e

    def set(self, key, value):
        path = self._path(key)
        try:
            os.makedirs(self.directory, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self.directory, prefix=f'.{key}-', suffix='.json')
        except OSError as e:
            raise StorageError(f'Could not write {key}: {e}') from e
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                f.write(value)
            os.replace(tmp, path)
        except OSError as e:
            raise StorageError(f'Could not write {key}: {e}') from e
        finally:
            # Temp file only survives when something failed before the replace
            if os.path.exists(tmp):
                try:
                    os.remove(tmp)
                except OSError:
                    logger.warning('Could not remove temp file %s', tmp)

    def clear(self):
        for key in ('currentUser', 'users', 'leaves'):
            try:
                os.remove(self._path(key))
            except FileNotFoundError:
                continue
            except OSError as e:
                raise StorageError(f'Could not remove {key}: {e}') from e


class PostgresStorage:
    """Stores snapshots in the ``app_state`` table of a PostgreSQL database"""

    def __init__(self, database_url):
        self.database_url = database_url

    def get_db_connection(self):
        """Open an autocommit connection for a single snapshot read or write"""
        conn = psycopg2.connect(self.database_url)
        conn.autocommit = True
        return conn

    def init_db(self):
        """Create the snapshot table if it does not exist"""
        try:
            conn = self.get_db_connection()
            try:
                cursor = conn.cursor()
                cursor.execute('''
                    CREATE TABLE IF NOT EXISTS app_state (
                        key VARCHAR(64) PRIMARY KEY,
                        value TEXT NOT NULL,
                        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                    )
                ''')
            finally:
                conn.close()
        except psycopg2.Error as e:
            raise StorageError(f'Could not initialize app_state: {e}') from e

    def get(self, key):
        try:
            conn = self.get_db_connection()
            try:
                cursor = conn.cursor()
                cursor.execute('SELECT value FROM app_state WHERE key = %s', (key,))
                row = cursor.fetchone()
            finally:
                conn.close()
        except psycopg2.Error as e:
            raise StorageError(f'Could not read {key}: {e}') from e
        return row[0] if row else None

    def set(self, key, value):
        try:
            conn = self.get_db_connection()
            try:
                cursor = conn.cursor()
                cursor.execute('''
                    INSERT INTO app_state (key, value) VALUES (%s, %s)
                    ON CONFLICT (key) DO UPDATE
                    SET value = EXCLUDED.value, updated_at = CURRENT_TIMESTAMP
                ''', (key, value))
            finally:
                conn.close()
        except psycopg2.Error as e:
            raise StorageError(f'Could not write {key}: {e}') from e

    def clear(self):
        try:
            conn = self.get_db_connection()
            try:
                cursor = conn.cursor()
                cursor.execute('DELETE FROM app_state')
            finally:
                conn.close()
        except psycopg2.Error as e:
            raise StorageError(f'Could not clear app_state: {e}') from e


def get_storage(database_url=None, data_dir=None):
    """Pick PostgreSQL when a database URL is configured, JSON files otherwise"""
    if database_url:
        logger.info('Using PostgreSQL snapshot storage')
        return PostgresStorage(database_url)
    data_dir = data_dir or os.path.join(os.path.dirname(os.path.abspath(__file__)), 'data')
    logger.info('Using JSON file snapshot storage in %s', data_dir)
    return JsonFileStorage(data_dir)
