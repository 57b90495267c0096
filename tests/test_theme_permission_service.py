#!/usr/bin/env python3
"""
Tests for ThemePermissionService against an in-memory database.

Run with:
    python -m pytest tests/test_theme_permission_service.py
"""
import os
import sys
import unittest
from unittest.mock import MagicMock, patch

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import database
from campus.errors import DecodeError, NotFoundError, StorageError, ValidationError
from campus.services import BATCH_SIZE, ThemePermissionService
from campus.theme_data import ThemePermissionData
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker


# ---------------------------------------------------------------------------
# In-memory DB helpers
# ---------------------------------------------------------------------------

def _make_session():
    engine = create_engine('sqlite:///:memory:', connect_args={"check_same_thread": False})
    database.Base.metadata.create_all(engine)
    return sessionmaker(bind=engine)()


def _create_users(db, *student_ids):
    db.add_all([database.User(student_id=sid, username=sid) for sid in student_ids])
    db.commit()


def _create_permission(db, student_id, theme_ids, current=None):
    permission = database.ThemePermission(
        student_id=student_id,
        current_theme_id=current if current is not None else theme_ids[0],
    )
    permission.set_data(ThemePermissionData(theme_ids))
    db.add(permission)
    db.commit()
    return permission


def _create_theme(db, name, theme_type='all'):
    theme = database.Theme(name=name, type=theme_type)
    db.add(theme)
    db.commit()
    return theme


def _permission(db, student_id):
    return db.query(database.ThemePermission).filter_by(student_id=student_id).first()


class ServiceTestCase(unittest.TestCase):

    def setUp(self):
        self.db = _make_session()
        self.service = ThemePermissionService(database)

    def tearDown(self):
        self.db.close()


# ===========================================================================
# add_theme_permission
# ===========================================================================

class TestAddThemePermission(ServiceTestCase):

    def test_unknown_student_reported_and_no_row_created(self):
        invalid = self.service.add_theme_permission(self.db, 7, ['NOBODY'])
        self.assertEqual(invalid, ['NOBODY'])
        self.assertIsNone(_permission(self.db, 'NOBODY'))

    def test_new_row_gets_singleton_payload_and_current_theme(self):
        _create_users(self.db, 'S1')
        self.assertEqual(self.service.add_theme_permission(self.db, 7, ['S1']), [])
        row = _permission(self.db, 'S1')
        self.assertEqual(row.get_data().theme_ids, [7])
        self.assertEqual(row.current_theme_id, 7)

    def test_granting_twice_keeps_single_entry(self):
        _create_users(self.db, 'S1')
        self.service.add_theme_permission(self.db, 7, ['S1'])
        self.service.add_theme_permission(self.db, 7, ['S1'])
        self.assertEqual(_permission(self.db, 'S1').get_data().theme_ids, [7])
        self.assertEqual(self.db.query(database.ThemePermission).count(), 1)

    def test_mixed_roster_scenario(self):
        _create_users(self.db, 'S1', 'S2')
        _create_permission(self.db, 'S1', [5])
        invalid = self.service.add_theme_permission(self.db, 7, ['S1', 'S2', 'BAD'])
        self.assertEqual(invalid, ['BAD'])

        s1 = _permission(self.db, 'S1')
        self.assertEqual(s1.get_data().theme_ids, [5, 7])
        self.assertEqual(s1.current_theme_id, 5)

        s2 = _permission(self.db, 'S2')
        self.assertEqual(s2.get_data().theme_ids, [7])
        self.assertEqual(s2.current_theme_id, 7)

    def test_invalid_ids_keep_request_order(self):
        _create_users(self.db, 'S1')
        invalid = self.service.add_theme_permission(self.db, 3, ['Z', 'S1', 'A'])
        self.assertEqual(invalid, ['Z', 'A'])

    def test_empty_roster_grants_every_student(self):
        _create_users(self.db, 'S1', 'S2', 'S3')
        _create_permission(self.db, 'S2', [1])
        invalid = self.service.add_theme_permission(self.db, 4, [])
        self.assertEqual(invalid, [])
        self.assertEqual(_permission(self.db, 'S1').get_data().theme_ids, [4])
        self.assertEqual(_permission(self.db, 'S2').get_data().theme_ids, [1, 4])
        self.assertEqual(_permission(self.db, 'S3').get_data().theme_ids, [4])

    def test_none_roster_behaves_like_empty(self):
        _create_users(self.db, 'S1')
        self.assertEqual(self.service.add_theme_permission(self.db, 4, None), [])
        self.assertIsNotNone(_permission(self.db, 'S1'))

    def test_duplicate_roster_entries_create_one_row(self):
        _create_users(self.db, 'S1')
        self.service.add_theme_permission(self.db, 9, ['S1', 'S1'])
        self.assertEqual(self.db.query(database.ThemePermission).count(), 1)

    def test_existing_current_theme_untouched(self):
        _create_users(self.db, 'S1')
        _create_permission(self.db, 'S1', [1, 2], current=2)
        self.service.add_theme_permission(self.db, 3, ['S1'])
        row = _permission(self.db, 'S1')
        self.assertEqual(row.current_theme_id, 2)
        self.assertEqual(row.get_data().theme_ids, [1, 2, 3])

    def test_malformed_payload_aborts_with_decode_error(self):
        _create_users(self.db, 'S1')
        self.db.add(database.ThemePermission(
            student_id='S1', current_theme_id=1, theme_permission='not json'))
        self.db.commit()
        with patch.object(database, 'save_theme_permissions') as save:
            with self.assertRaises(DecodeError):
                self.service.add_theme_permission(self.db, 2, ['S1'])
        save.assert_not_called()


class TestBatchPersistence(ServiceTestCase):

    def setUp(self):
        super().setUp()
        _create_users(self.db, *[f'S{i:03d}' for i in range(250)])
        self.batches = []
        self.dirty_per_write = []
        self._real_save = database.save_theme_permissions

    def _recording_save(self, fail_on=None):
        def save(db, permissions):
            self.batches.append(len(permissions))
            self.dirty_per_write.append(len(db.dirty))
            if len(self.batches) == fail_on:
                db.rollback()
                raise StorageError('disk full')
            self._real_save(db, permissions)
        return save

    def _grant_existing_rows(self):
        for i in range(250):
            row = database.ThemePermission(student_id=f'S{i:03d}', current_theme_id=1)
            row.set_data(ThemePermissionData([1]))
            self.db.add(row)
        self.db.commit()

    def _granted(self, theme_id):
        self.db.expire_all()
        return sorted(p.student_id for p in self.db.query(database.ThemePermission).all()
                      if p.get_data().contains(theme_id))

    def test_batch_size_is_one_hundred(self):
        self.assertEqual(BATCH_SIZE, 100)

    def test_250_students_written_in_three_batches(self):
        with patch.object(database, 'save_theme_permissions',
                          side_effect=self._recording_save()):
            self.service.add_theme_permission(self.db, 1, [])
        self.assertEqual(self.batches, [100, 100, 50])
        self.assertEqual(self.db.query(database.ThemePermission).count(), 250)

    def test_failed_second_batch_leaves_first_committed(self):
        with patch.object(database, 'save_theme_permissions',
                          side_effect=self._recording_save(fail_on=2)):
            with self.assertRaises(StorageError):
                self.service.add_theme_permission(self.db, 1, [])
        self.assertEqual(self.batches, [100, 100])
        self.assertEqual(self.db.query(database.ThemePermission).count(), 100)
        self.assertIsNotNone(_permission(self.db, 'S000'))
        self.assertIsNone(_permission(self.db, 'S100'))

    def test_existing_rows_merged_one_batch_per_write(self):
        self._grant_existing_rows()
        with patch.object(database, 'save_theme_permissions',
                          side_effect=self._recording_save()):
            self.service.add_theme_permission(self.db, 2, [])
        self.assertEqual(self.batches, [100, 100, 50])
        self.assertEqual(self.dirty_per_write, [100, 100, 50])
        self.assertEqual(len(self._granted(2)), 250)

    def test_failed_second_batch_of_existing_rows_keeps_first_hundred(self):
        self._grant_existing_rows()
        with patch.object(database, 'save_theme_permissions',
                          side_effect=self._recording_save(fail_on=2)):
            with self.assertRaises(StorageError):
                self.service.add_theme_permission(self.db, 2, [])
        self.assertEqual(self.batches, [100, 100])
        self.assertEqual(self._granted(2), [f'S{i:03d}' for i in range(100)])
        self.assertEqual(len(self._granted(1)), 250)

    def test_custom_batch_size(self):
        service = ThemePermissionService(database, batch_size=120)
        with patch.object(database, 'save_theme_permissions',
                          side_effect=self._recording_save()):
            service.add_theme_permission(self.db, 1, [])
        self.assertEqual(self.batches, [120, 120, 10])

    def test_rejects_non_positive_batch_size(self):
        with self.assertRaises(ValueError):
            ThemePermissionService(database, batch_size=0)


# ===========================================================================
# update_current_theme / delete / lookups
# ===========================================================================

class TestUpdateCurrentTheme(ServiceTestCase):

    def setUp(self):
        super().setUp()
        _create_permission(self.db, 'S1', [1, 2], current=1)

    def test_select_granted_theme(self):
        self.service.update_current_theme(self.db, 2, 'S1')
        self.db.expire_all()
        self.assertEqual(_permission(self.db, 'S1').current_theme_id, 2)

    def test_select_ungranted_theme_rejected(self):
        with self.assertRaises(ValidationError):
            self.service.update_current_theme(self.db, 9, 'S1')
        self.db.expire_all()
        self.assertEqual(_permission(self.db, 'S1').current_theme_id, 1)

    def test_missing_row_raises_not_found(self):
        with self.assertRaises(NotFoundError):
            self.service.update_current_theme(self.db, 1, 'NOBODY')

    def test_payload_untouched(self):
        self.service.update_current_theme(self.db, 2, 'S1')
        self.db.expire_all()
        self.assertEqual(_permission(self.db, 'S1').get_data().theme_ids, [1, 2])


class TestDeleteAndLookup(ServiceTestCase):

    def test_delete_existing_row(self):
        _create_permission(self.db, 'S1', [1])
        self.service.delete_theme_permission(self.db, 'S1')
        with self.assertRaises(NotFoundError):
            self.service.get_theme_permission(self.db, 'S1')

    def test_delete_missing_row_succeeds(self):
        self.service.delete_theme_permission(self.db, 'NOBODY')

    def test_get_missing_row_raises_not_found(self):
        with self.assertRaises(NotFoundError):
            self.service.get_theme_permission(self.db, 'NOBODY')

    def test_theme_names_and_records(self):
        dark = _create_theme(self.db, 'Dark')
        light = _create_theme(self.db, 'Light', 'vip')
        _create_theme(self.db, 'Unused')
        permission = _create_permission(self.db, 'S1', [light.id, dark.id])
        self.assertEqual(self.service.get_theme_names(self.db, permission), ['Dark', 'Light'])
        themes = self.service.get_themes(self.db, permission)
        self.assertEqual([t.id for t in themes], [dark.id, light.id])

    def test_theme_names_decode_error(self):
        permission = database.ThemePermission(
            student_id='S1', current_theme_id=1, theme_permission='[1, 2]')
        with self.assertRaises(DecodeError):
            self.service.get_theme_names(self.db, permission)


# ===========================================================================
# add_default_theme_permission
# ===========================================================================

class TestAddDefaultThemePermission(ServiceTestCase):

    def test_no_default_themes_is_a_validation_error(self):
        _create_theme(self.db, 'VIP only', 'vip')
        with self.assertRaises(ValidationError):
            self.service.add_default_theme_permission(self.db, 'S1')
        self.assertIsNone(_permission(self.db, 'S1'))

    def test_creates_row_from_default_themes(self):
        first = _create_theme(self.db, 'Classic')
        _create_theme(self.db, 'VIP', 'vip')
        second = _create_theme(self.db, 'Night')
        self.service.add_default_theme_permission(self.db, 'S1')
        row = _permission(self.db, 'S1')
        self.assertEqual(row.get_data().theme_ids, [first.id, second.id])
        self.assertEqual(row.current_theme_id, first.id)

    def test_second_call_is_a_no_op(self):
        _create_theme(self.db, 'Classic')
        night = _create_theme(self.db, 'Night')
        self.service.add_default_theme_permission(self.db, 'S1')
        self.service.update_current_theme(self.db, night.id, 'S1')
        _create_theme(self.db, 'Later')
        self.service.add_default_theme_permission(self.db, 'S1')
        self.db.expire_all()
        row = _permission(self.db, 'S1')
        self.assertEqual(row.current_theme_id, night.id)
        self.assertEqual(len(row.get_data().theme_ids), 2)


# ===========================================================================
# Injected collaborator
# ===========================================================================

class TestWithMockDatabase(unittest.TestCase):
    """The service only talks to storage through the injected module."""

    def setUp(self):
        self.db_module = MagicMock()
        self.db_module.ThemePermission = database.ThemePermission
        self.db_module.DEFAULT_THEME_TYPE = database.DEFAULT_THEME_TYPE
        self.service = ThemePermissionService(self.db_module)

    def test_empty_roster_lists_all_students(self):
        self.db_module.get_all_student_ids.return_value = ['S1']
        self.db_module.get_theme_permissions.return_value = []
        self.service.add_theme_permission('session', 3, [])
        self.db_module.find_existing_student_ids.assert_not_called()
        saved = self.db_module.save_theme_permissions.call_args[0][1]
        self.assertEqual([p.student_id for p in saved], ['S1'])

    def test_no_valid_students_writes_nothing(self):
        self.db_module.find_existing_student_ids.return_value = set()
        self.db_module.get_theme_permissions.return_value = []
        self.assertEqual(self.service.add_theme_permission('session', 3, ['X']), ['X'])
        self.db_module.save_theme_permissions.assert_not_called()

    def test_storage_error_propagates(self):
        self.db_module.get_theme_permission.side_effect = StorageError('gone')
        with self.assertRaises(StorageError):
            self.service.update_current_theme('session', 1, 'S1')

    def test_default_bootstrap_skips_catalog_when_row_exists(self):
        self.db_module.get_theme_permissions.return_value = [MagicMock()]
        self.service.add_default_theme_permission('session', 'S1')
        self.db_module.get_themes_by_type.assert_not_called()
        self.db_module.create_theme_permission.assert_not_called()


if __name__ == '__main__':
    unittest.main()
