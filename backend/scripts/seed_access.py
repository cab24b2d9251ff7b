#!/usr/bin/env python
"""Idempotent seed script for the permission catalog, role presets and the first administrator.

Usage:
    python backend/scripts/seed_access.py               # seed normally
    python backend/scripts/seed_access.py --show-roles  # print role -> permission counts (after ensuring seed)
    python backend/scripts/seed_access.py --dry-run     # run logic then rollback (no DB changes)
    python backend/scripts/seed_access.py --validate    # exit 2 when stored rows disagree with the closed sets
"""
from __future__ import annotations
import os, sys, argparse, textwrap, json, hashlib
from sqlalchemy import select, text
from sqlalchemy.exc import SQLAlchemyError

# Allow running from repo root
sys.path.append(os.path.abspath('backend'))

from repairdesk import create_app, get_db  # type: ignore
from repairdesk.constants.permissions import PERMISSION_CATALOG, ROLE_PRESETS, ALL_PERMISSION_KEYS
from repairdesk.constants.roles import AppRole, TOP_ROLE
from repairdesk.models.authz import Base, Permission, RolePermission, Profile, UserRole


def ensure_catalog(session):
    existing = {p.key: p for p in session.execute(select(Permission)).scalars().all()}
    created = 0
    for entry in PERMISSION_CATALOG:
        row = existing.get(entry.key)
        if row is None:
            session.add(Permission(key=entry.key, description=entry.description, category=entry.category))
            created += 1
        elif (row.description, row.category) != (entry.description, entry.category):
            row.description = entry.description
            row.category = entry.category
    session.flush()
    return created


def ensure_role_presets(session):
    """Install preset grants that are missing. Never removes rows an administrator added."""
    current = {(rp.role, rp.permission_key) for rp in session.execute(select(RolePermission)).scalars().all()}
    known = set(ALL_PERMISSION_KEYS)
    created = 0
    for role_name, keys in ROLE_PRESETS.items():
        if role_name == TOP_ROLE.value:
            print(f"[WARN] Skipping preset for {role_name}: its permissions are implicit")
            continue
        for key in keys:
            if key not in known:
                print(f"[WARN] Missing permission referenced by role {role_name}: {key}")
                continue
            if (role_name, key) not in current:
                session.add(RolePermission(role=role_name, permission_key=key))
                created += 1
    session.flush()
    return created


def ensure_initial_admin(session):
    admin_email = os.getenv('SEED_ADMIN_EMAIL', 'admin@example.com')
    admin_name = os.getenv('SEED_ADMIN_NAME', 'Administrator')
    user = session.execute(select(Profile).where(Profile.email == admin_email)).scalar_one_or_none()
    if not user:
        user = Profile(name=admin_name, email=admin_email, is_active=True)
        session.add(user)
        session.flush()
        print(f"[INFO] Created initial administrator profile {admin_email}.")
    has_top = session.execute(
        select(UserRole.id).where(UserRole.user_id == user.id, UserRole.role == TOP_ROLE.value)
    ).scalar_one_or_none()
    if not has_top:
        session.add(UserRole(user_id=user.id, role=TOP_ROLE.value))
        session.flush()
    return user


def build_role_permission_map(session):
    mapping = {}
    for rp in session.execute(select(RolePermission)).scalars().all():
        mapping.setdefault(rp.role, []).append(rp.permission_key)
    return {role: sorted(keys) for role, keys in mapping.items()}


def validate(session):
    problems = []
    known_roles = {r.value for r in AppRole}
    known_keys = set(ALL_PERMISSION_KEYS)
    for key in session.execute(select(Permission.key)).scalars().all():
        if key not in known_keys:
            problems.append(f"Cataloged key not in the closed set: {key}")
    for role, keys in build_role_permission_map(session).items():
        if role == TOP_ROLE.value:
            problems.append(f"Stored grant rows for {role} (must be implicit)")
        elif role not in known_roles:
            problems.append(f"Unknown role in role_permissions: {role}")
        for key in keys:
            if key not in known_keys:
                problems.append(f"Role '{role}' references unknown permission key: {key}")
    for role in session.execute(select(UserRole.role).distinct()).scalars().all():
        if role not in known_roles:
            problems.append(f"Unknown role assigned to users: {role}")
    return problems


def print_role_summary(session):
    rows = [(role, len(keys), keys[:8]) for role, keys in sorted(build_role_permission_map(session).items())]
    if not rows:
        print("[INFO] No role grants present.")
        return
    name_w = max(len(r[0]) for r in rows)
    print(f"{'Role'.ljust(name_w)} | Count | Sample (up to 8)")
    print('-' * (name_w + 40))
    for name, cnt, sample in rows:
        print(f"{name.ljust(name_w)} | {str(cnt).rjust(5)} | {', '.join(sample)}")


def parse_args(argv=None):
    p = argparse.ArgumentParser(
        description="Seed the permission catalog, role presets and initial administrator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""Examples:\n  seed normally: seed_access.py\n  dry run: seed_access.py --dry-run\n  show roles: seed_access.py --show-roles\n""")
    )
    p.add_argument('--show-roles', action='store_true', help='Print role permission counts after seeding')
    p.add_argument('--dry-run', action='store_true', help='Rollback after operations (no commit)')
    p.add_argument('--export-json', nargs='?', const='-', metavar='FILE', help='Export role->permissions JSON (to FILE or stdout if omitted)')
    p.add_argument('--validate', action='store_true', help='Validate stored roles & permission keys; exits non-zero on problems')
    return p.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    app = create_app()
    with app.app_context():
        session = get_db()
        try:
            session.execute(text('SELECT 1 FROM permissions LIMIT 1'))
        except SQLAlchemyError:
            # Auto-create schema for bootstrap; in real env prefer alembic upgrade
            session.rollback()
            import repairdesk.models.audit  # noqa: F401
            Base.metadata.create_all(session.get_bind())
        finally:
            session.commit()

        try:
            created_p = ensure_catalog(session)
            created_g = ensure_role_presets(session)
            ensure_initial_admin(session)
            if args.validate:
                problems = validate(session)
                if problems:
                    print('\n[VALIDATION] FAIL:')
                    for problem in problems:
                        print(' -', problem)
                    session.rollback()
                    sys.exit(2)
                print('[VALIDATION] OK: All stored roles & permission keys valid.')
            if args.dry_run:
                session.rollback()
                print(f"[DRY-RUN] (rolled back) Permissions would create: {created_p}, Grants would create: {created_g}")
            else:
                session.commit()
                print(f"[DONE] Permissions created: {created_p}, Grants created: {created_g}")
            if args.show_roles:
                print('\nRole Permission Summary:')
                print_role_summary(session)
            if args.export_json is not None:
                role_perm_map = build_role_permission_map(session)
                canonical = json.dumps(role_perm_map, sort_keys=True, separators=(',', ':'))
                payload = {
                    'roles': role_perm_map,
                    'meta': {
                        'roles_checksum_sha256': hashlib.sha256(canonical.encode('utf-8')).hexdigest(),
                        'dry_run': args.dry_run,
                    }
                }
                if args.export_json == '-':
                    print(json.dumps(payload, indent=2, sort_keys=True))
                else:
                    with open(args.export_json, 'w', encoding='utf-8') as f:
                        json.dump(payload, f, indent=2, sort_keys=True)
                    print(f"[INFO] Exported JSON to {args.export_json}")
        except SQLAlchemyError:
            session.rollback()
            raise
        finally:
            session.close()


if __name__ == '__main__':
    main()
