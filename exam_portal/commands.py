# exam_portal/commands.py
import click
from flask.cli import with_appcontext

from exam_portal.database import db
from exam_portal.models import ROLE_ADMIN, User
from exam_portal.utils.generate_id import generate_id
from exam_portal.utils.passwords import (
    is_valid_email,
    normalize_email,
    password_errors,
    secret_errors,
)


@click.command("init-db")
@with_appcontext
def init_db_command():
    """Create any missing tables."""
    db.create_all()
    click.echo("✅ Database tables are in place")


@click.command("create-admin")
@with_appcontext
@click.argument("email")
@click.argument("name")
@click.option("--password", prompt=True, hide_input=True, confirmation_prompt=True)
@click.option("--secret", prompt=True, hide_input=True, help="6-digit admin login secret.")
def create_admin_command(email, name, password, secret):
    """Create a confirmed admin, or promote an existing account."""
    email = normalize_email(email)
    if not is_valid_email(email):
        raise click.BadParameter("invalid email address", param_hint="EMAIL")

    problems = secret_errors(secret)
    if problems:
        raise click.BadParameter("; ".join(problems), param_hint="--secret")

    user = db.session.execute(
        db.select(User).where(User.email == email)
    ).scalar_one_or_none()

    if user is None:
        problems = password_errors(password)
        if problems:
            raise click.BadParameter("; ".join(problems), param_hint="--password")

        user_id = generate_id(9)
        while db.session.get(User, user_id) is not None:
            user_id = generate_id(9)
        user = User(id=user_id, name=name.strip(), email=email)
        user.set_password(password)
        db.session.add(user)
        action = "Created"
    else:
        action = "Promoted"

    user.role = ROLE_ADMIN
    user.confirmed = True
    user.set_secret(secret)
    db.session.commit()

    click.echo(f"✅ {action} admin {email}")


def register_commands(app):
    app.cli.add_command(init_db_command)
    app.cli.add_command(create_admin_command)
