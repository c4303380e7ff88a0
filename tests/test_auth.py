from __future__ import annotations

import unittest

from fieldops.auth import Principal, Role, authorize, ensure_authorized, parse_role
from fieldops.errors import ForbiddenError
from fieldops.models import PrincipalRole


class RoleOrderingTests(unittest.TestCase):
    def test_roles_are_totally_ordered(self) -> None:
        self.assertTrue(authorize(Role.USER, Role.USER))
        self.assertTrue(authorize(Role.USER, Role.ADMIN))
        self.assertTrue(authorize(Role.MODERATOR, Role.ADMIN))
        self.assertTrue(authorize(Role.MODERATOR, Role.MODERATOR))
        self.assertFalse(authorize(Role.MODERATOR, Role.USER))
        self.assertFalse(authorize(Role.ADMIN, Role.MODERATOR))

    def test_ensure_authorized_rejects_low_role(self) -> None:
        viewer = Principal(id=1, username='viewer', role=Role.USER, active=True)
        with self.assertRaises(ForbiddenError):
            ensure_authorized(viewer, Role.MODERATOR)
        ensure_authorized(viewer, Role.USER)

    def test_inactive_principal_is_rejected_even_as_admin(self) -> None:
        admin = Principal(id=2, username='admin', role=Role.ADMIN, active=False)
        with self.assertRaises(ForbiddenError):
            ensure_authorized(admin, Role.USER)

    def test_parse_role_accepts_model_enum_and_text(self) -> None:
        self.assertEqual(parse_role(PrincipalRole.MODERATOR), Role.MODERATOR)
        self.assertEqual(parse_role(' Admin '), Role.ADMIN)
        with self.assertRaises(ValueError):
            parse_role('owner')


if __name__ == '__main__':
    unittest.main()
