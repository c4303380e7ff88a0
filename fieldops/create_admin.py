from __future__ import annotations

import argparse
import getpass

from sqlalchemy import select

from fieldops.db import SessionLocal, engine
from fieldops.models import Base, Principal, PrincipalRole
from fieldops.security.passwords import hash_password


def create_principal(username: str, password: str, role: PrincipalRole, *, full_name: str | None = None) -> bool:
    """Create the account, or reset its password and role if it exists. Returns True when created."""
    with SessionLocal() as db:
        principal = db.execute(select(Principal).where(Principal.username == username)).scalar_one_or_none()
        created = principal is None
        if created:
            principal = Principal(username=username, full_name=full_name, role=role, active=True, password_hash='')
            db.add(principal)
        principal.password_hash = hash_password(password)
        principal.role = role
        principal.active = True
        db.commit()
    return created


def main() -> None:
    parser = argparse.ArgumentParser(description='Create or reset a login account.')
    parser.add_argument('username')
    parser.add_argument('--role', choices=[role.value for role in PrincipalRole], default=PrincipalRole.ADMIN.value)
    parser.add_argument('--full-name', default=None)
    parser.add_argument('--password', default=None, help='Prompted for when omitted.')
    parser.add_argument('--create-tables', action='store_true', help='Create missing tables first.')
    args = parser.parse_args()

    if args.create_tables:
        Base.metadata.create_all(engine)
    password = args.password or getpass.getpass('Password: ')
    if len(password) < 8:
        parser.error('password must be at least 8 characters')

    created = create_principal(args.username, password, PrincipalRole(args.role), full_name=args.full_name)
    print(f"{'Created' if created else 'Updated'} {args.role} account {args.username}")


if __name__ == '__main__':
    main()
