"""
Flask CLI commands:

    flask events dispatch [--limit N]
    flask users seed-roles
    flask users create --email a@b.com --name "Ana" --password ... --role manager --role admin
"""
import click
from flask import Flask
from flask.cli import AppGroup
from marshmallow import ValidationError

from prorentals.schemas.auth_schemas import UserCreateSchema
from prorentals.services import event_service, user_service
from prorentals.utils.errors import ApiError

events_cli = AppGroup("events", help="Domain event outbox.")
users_cli = AppGroup("users", help="Back-office staff accounts.")


@events_cli.command("dispatch")
@click.option("--limit", default=500, show_default=True, help="Maximum events to deliver in this run.")
def dispatch_events(limit: int):
    result = event_service.dispatch_pending(limit=limit)
    click.echo(f"delivered={result['delivered']} retrying={result['retrying']} failed={result['failed']}")


@users_cli.command("seed-roles")
def seed_roles():
    created = user_service.seed_roles()
    click.echo(f"roles created: {', '.join(created) if created else 'none'}")


@users_cli.command("create")
@click.option("--email", required=True)
@click.option("--name", required=True)
@click.option("--password", required=True, prompt=True, hide_input=True)
@click.option("--role", "roles", multiple=True, help="Repeat for several roles.")
def create_user(email: str, name: str, password: str, roles: tuple):
    body = {"email": email, "name": name, "password": password}
    if roles:
        body["roles"] = list(roles)
    try:
        user = user_service.create_user(UserCreateSchema().load(body))
    except ValidationError as e:
        raise click.ClickException(str(e.messages))
    except ApiError as e:
        raise click.ClickException(e.message)
    click.echo(f"user {user.id} created with roles {', '.join(user.role_names())}")


def register_cli(app: Flask) -> None:
    app.cli.add_command(events_cli)
    app.cli.add_command(users_cli)
