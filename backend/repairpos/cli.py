# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py.
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init [--admin-username admin] [--admin-password ...]
#   Idempotent: creates tables, permissions, default roles and the first admin user.
# - python -m flask system init-permissions
#   Refresh permission rows and default role assignments.
#
# Users:
# - python -m flask users list
# - python -m flask users create --username tech1 --password "Password123!" --role TECHNICIAN
# - python -m flask users deactivate tech1
#
# Permissions:
# - python -m flask perms list [--role CASHIER] [--category SALES]
# - python -m flask perms check tech1 COMPLETE_REPAIR
# - python -m flask perms grant CASHIER VOID_SALE
# - python -m flask perms revoke CASHIER VOID_SALE
#
# Maintenance:
# - python -m flask warranties expire
#   Write EXPIRED into warranties past their end date (safe to re-run).
# - python -m flask inventory verify-ledger [--product-id 5]
#   Check adjustment chains against stock records.

import click
from flask.cli import with_appcontext

from .errors import ServiceError
from .extensions import db
from .models import Product, Role, User
from .permissions import PERMISSION_DEFINITIONS, ADMIN, get_permissions_by_category
from .services import auth_service, permission_service, stock_service, warranty_service


# =============================================================================
# SYSTEM
# =============================================================================

@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@click.option('--admin-username', default='admin', help='Username of the first administrator')
@click.option('--admin-password', default='Password123!', help='Password of the first administrator')
@click.option('--admin-email', default='admin@repairpos.local', help='Email of the first administrator')
@with_appcontext
def init_system(admin_username, admin_password, admin_email):
    """
    Initialize tables, permissions, default roles and an admin user.

    Safe to run repeatedly; existing rows are kept.
    """
    click.echo("START Initializing system...")
    db.create_all()

    role_count = auth_service.create_default_roles()
    perm_count = permission_service.initialize_permissions()
    assignment_count = permission_service.assign_default_role_permissions()
    click.echo(f"PASS {role_count} roles, {perm_count} permissions, {assignment_count} role assignments created")

    existing = db.session.query(User).filter_by(username=admin_username).first()
    if existing:
        click.echo(f"WARN  User '{admin_username}' already exists, skipping...")
    else:
        try:
            auth_service.create_user(
                username=admin_username,
                password=admin_password,
                role_names=[ADMIN],
                email=admin_email,
                is_super_admin=True,
            )
            click.echo(f"PASS Created super admin '{admin_username}'")
        except ServiceError as e:
            raise click.ClickException(f"Failed to create admin user: {e.message}")

    click.echo("DONE System initialized. Change the admin password before going live.")


@system_group.command('init-permissions')
@with_appcontext
def init_permissions():
    """Create permission rows and link default roles to their permissions."""
    perm_count = permission_service.initialize_permissions()
    assignment_count = permission_service.assign_default_role_permissions()
    click.echo(f"PASS Created {perm_count} permissions, {assignment_count} role assignments")


# =============================================================================
# USERS
# =============================================================================

@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('list')
@with_appcontext
def list_users():
    users = db.session.query(User).order_by(User.username).all()
    if not users:
        click.echo("No users found.")
        return

    click.echo(f"{'ID':<5} {'Username':<20} {'Active':<7} {'Super':<6} Roles")
    for user in users:
        roles = ", ".join(sorted(ur.role.name for ur in user.user_roles))
        click.echo(
            f"{user.id:<5} {user.username:<20} {'Yes' if user.is_active else 'No':<7} "
            f"{'Yes' if user.is_super_admin else 'No':<6} {roles}"
        )


@users_group.command('create')
@click.option('--username', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@click.option('--role', 'roles', multiple=True, required=True, help='Role name; repeat for several')
@click.option('--email', default=None)
@click.option('--super-admin', is_flag=True, default=False)
@with_appcontext
def create_user_cli(username, password, roles, email, super_admin):
    try:
        user = auth_service.create_user(
            username=username,
            password=password,
            role_names=list(roles),
            email=email,
            is_super_admin=super_admin,
        )
    except ServiceError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Created user '{user.username}' (ID: {user.id})")


@users_group.command('deactivate')
@click.argument('username')
@with_appcontext
def deactivate_user_cli(username):
    user = db.session.query(User).filter_by(username=username).first()
    if not user:
        raise click.ClickException(f"User '{username}' not found")
    try:
        auth_service.deactivate_user(user.id)
    except ServiceError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Deactivated '{username}' and revoked their sessions")


# =============================================================================
# PERMISSIONS
# =============================================================================

@click.group('perms')
def perms_group():
    """Permission inspection and repair commands."""


@perms_group.command('list')
@click.option('--role', 'role_name', default=None, help='Only permissions held by this role')
@click.option('--category', default=None, help='Only permissions in this category')
@with_appcontext
def list_permissions(role_name, category):
    held = None
    if role_name:
        role = db.session.query(Role).filter_by(name=role_name.upper()).first()
        if not role:
            raise click.ClickException(f"Role '{role_name}' not found")
        held = set(role.permission_codes())

    definitions = get_permissions_by_category(category.upper()) if category else PERMISSION_DEFINITIONS
    for code, name, _description, perm_category in definitions:
        if held is not None and code.value not in held:
            continue
        click.echo(f"{perm_category:<12} {code.value:<28} {name}")


@perms_group.command('check')
@click.argument('username')
@click.argument('permission_code')
@with_appcontext
def check_permission(username, permission_code):
    user = db.session.query(User).filter_by(username=username).first()
    if not user:
        raise click.ClickException(f"User '{username}' not found")
    try:
        allowed = permission_service.check_permissions(user, [permission_code.upper()]).allowed
    except ServiceError as e:
        raise click.ClickException(e.message)
    click.echo(f"{'PASS' if allowed else 'FAIL'} {username} {'has' if allowed else 'lacks'} {permission_code.upper()}")


@perms_group.command('grant')
@click.argument('role_name')
@click.argument('permission_code')
@with_appcontext
def grant_permission(role_name, permission_code):
    try:
        permission_service.grant_permission_to_role(role_name, permission_code.upper())
    except ServiceError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Granted {permission_code.upper()} to {role_name.upper()}")


@perms_group.command('revoke')
@click.argument('role_name')
@click.argument('permission_code')
@with_appcontext
def revoke_permission(role_name, permission_code):
    try:
        removed = permission_service.revoke_permission_from_role(role_name, permission_code.upper())
    except ServiceError as e:
        raise click.ClickException(e.message)
    if removed:
        click.echo(f"PASS Revoked {permission_code.upper()} from {role_name.upper()}")
    else:
        click.echo(f"WARN  {role_name.upper()} did not have {permission_code.upper()}")


# =============================================================================
# MAINTENANCE
# =============================================================================

@click.group('warranties')
def warranties_group():
    """Warranty maintenance commands."""


@warranties_group.command('expire')
@with_appcontext
def expire_warranties_cli():
    count = warranty_service.expire_warranties()
    click.echo(f"PASS Marked {count} warranty(ies) EXPIRED")


@click.group('inventory')
def inventory_group():
    """Stock ledger maintenance commands."""


@inventory_group.command('verify-ledger')
@click.option('--product-id', type=int, default=None)
@with_appcontext
def verify_ledger(product_id):
    """Report adjustment chains that do not add up to the stock record."""
    if product_id is not None:
        product_ids = [product_id]
    else:
        product_ids = [pid for (pid,) in db.session.query(Product.id).order_by(Product.id).all()]

    broken = 0
    for pid in product_ids:
        problems = stock_service.verify_adjustment_chain(pid)
        for problem in problems:
            click.echo(f"FAIL product {pid}: {problem}")
        broken += bool(problems)

    if broken:
        raise click.ClickException(f"{broken} product(s) with ledger problems")
    click.echo(f"PASS {len(product_ids)} product(s) verified")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(perms_group)
    app.cli.add_command(warranties_group)
    app.cli.add_command(inventory_group)
