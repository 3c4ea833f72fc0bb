#!/usr/bin/env python
"""Idempotent seed script for the permission catalog, role presets and first admin.

Usage:
    python backend/scripts/seed_rbac.py               # seed normally
    python backend/scripts/seed_rbac.py --show-roles  # print role -> permission counts (after ensuring seed)
    python backend/scripts/seed_rbac.py --dry-run     # run logic then rollback (no DB changes)
    python backend/scripts/seed_rbac.py --validate    # integrity report; exits 2 on problems
"""
from __future__ import annotations
import os, sys, argparse, textwrap

# Allow running from repo root or from backend/
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from backoffice import create_app, get_db  # noqa: E402
from backoffice.models.authz import Base  # noqa: E402
from backoffice.services.bootstrap import ensure_permissions, ensure_roles, ensure_initial_admin  # noqa: E402
from backoffice.services.policy import load_role_permissions, validate_rbac_integrity, rbac_stats  # noqa: E402
import backoffice.models.catalog  # noqa: F401,E402
import backoffice.models.audit  # noqa: F401,E402


def print_role_summary(session, roles):
    if not roles:
        print("[INFO] No roles present.")
        return
    perms = load_role_permissions(session, [r.id for r in roles.values()])
    rows = sorted(roles.values(), key=lambda r: -r.level)
    name_w = max(len(r.slug) for r in rows)
    print(f"{'Role'.ljust(name_w)} | Level | Count | Sample (up to 6)")
    print('-' * (name_w + 50))
    for role in rows:
        slugs = sorted(p.slug for p in perms.get(role.id, []))
        print(f"{role.slug.ljust(name_w)} | {str(role.level).rjust(5)} | {str(len(slugs)).rjust(5)} | {', '.join(slugs[:6])}")


def parse_args(argv=None):
    p = argparse.ArgumentParser(
        description="Seed RBAC permissions, roles and the initial super-admin",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""Examples:\n  seed normally: seed_rbac.py\n  dry run: seed_rbac.py --dry-run\n  show roles: seed_rbac.py --show-roles\n"""),
    )
    p.add_argument('--show-roles', action='store_true', help='Print role permission counts after seeding')
    p.add_argument('--dry-run', action='store_true', help='Rollback after operations (no commit)')
    p.add_argument('--validate', action='store_true', help='Report RBAC integrity; exits non-zero on problems')
    return p.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    app = create_app()
    with app.app_context():
        session = get_db()
        # lightweight fallback when migrations have not been run yet
        Base.metadata.create_all(session.get_bind())
        permissions = ensure_permissions(session)
        roles = ensure_roles(session, permissions)
        admin = ensure_initial_admin(
            session, app.config.get('SEED_ADMIN_EMAIL'), app.config.get('SEED_ADMIN_PASSWORD'), roles
        )
        session.flush()
        if args.show_roles:
            print_role_summary(session, roles)
        exit_code = 0
        if args.validate:
            report = validate_rbac_integrity(session)
            stats = rbac_stats(session)
            print(f"[VALIDATION] counts: {report['counts']}")
            for module, count in stats['permissions_by_module'].items():
                print(f"  {module}: {count} permission(s)")
            if report['dangling_role_refs'] or report['dangling_permission_refs']:
                print(f"[VALIDATION] dangling refs: roles={report['dangling_role_refs']} "
                      f"permissions={report['dangling_permission_refs']}")
            if report['valid']:
                print('[VALIDATION] OK')
            else:
                print('[VALIDATION] FAIL: ' + ', '.join(report['problems']))
                exit_code = 2
        if args.dry_run:
            session.rollback()
            print(f"[DRY-RUN] (rolled back) permissions={len(permissions)} roles={len(roles)}")
        else:
            session.commit()
            print(f"[DONE] permissions={len(permissions)} roles={len(roles)} admin={admin.email if admin else '-'}")
    return exit_code


if __name__ == '__main__':
    sys.exit(main())
