"""Accademia CLI tool (accademiactl)."""

import typer

app = typer.Typer(name="accademiactl", help="Accademia access-control CLI")
db_app = typer.Typer(help="Database management commands")
matrix_app = typer.Typer(help="Role matrix commands")
app.add_typer(db_app, name="db")
app.add_typer(matrix_app, name="matrix")


def _matrix_store():
    from accademia.db.session import SessionLocal
    from accademia.services.matrix_service import RoleMatrixStore, SqlMatrixBackend

    store = RoleMatrixStore(SqlMatrixBackend(SessionLocal))
    store.load()
    if not store.is_available:
        typer.echo("❌ Role matrix unavailable (see logs)")
        raise typer.Exit(code=1)
    return store


@db_app.command("create")
def db_create():
    """Create the MySQL database if it doesn't exist."""
    import pymysql
    from sqlalchemy.engine import make_url
    from accademia.core.config import settings

    url = make_url(settings.DATABASE_URL)
    conn = pymysql.connect(
        host=url.host or "localhost",
        port=url.port or 3306,
        user=url.username,
        password=url.password or "",
    )
    try:
        cursor = conn.cursor()
        cursor.execute(
            f"CREATE DATABASE IF NOT EXISTS `{url.database}` "
            "CHARACTER SET utf8mb4 COLLATE utf8mb4_unicode_ci"
        )
        conn.commit()
        typer.echo(f"✅ Database '{url.database}' created (or already exists)")
    finally:
        conn.close()


@db_app.command("init")
def db_init():
    """Create all tables."""
    import accademia.models  # noqa: F401
    from accademia.db.base import Base
    from accademia.db.session import engine

    Base.metadata.create_all(bind=engine)
    typer.echo("✅ Tables created")


@db_app.command("seed")
def db_seed():
    """Seed roles, permission catalogue, sections, matrix and the super admin."""
    from accademia.db.session import SessionLocal
    from accademia.db.seeds.seed_roles import seed_roles
    from accademia.db.seeds.seed_super_admin import seed_super_admin

    db = SessionLocal()
    try:
        seed_roles(db)
        seed_super_admin(db)
    finally:
        db.close()
    typer.echo("✅ All seeds applied")


@matrix_app.command("show")
def matrix_show(role: str = typer.Argument(None, help="Only this role")):
    """Print the role matrix."""
    store = _matrix_store()
    for entry_role, entry in sorted(store.snapshot().items(), key=lambda kv: kv[0].value):
        if role and entry_role.value != role:
            continue
        typer.echo(f"[{entry_role.value}] v{entry.version}")
        typer.echo(f"  permissions: {', '.join(sorted(entry.permissions)) or '-'}")
        typer.echo(f"  sections:    {', '.join(sorted(entry.sections)) or '-'}")


def _toggle(kind: str, role: str, name: str, enabled: bool):
    store = _matrix_store()
    if kind == "permission":
        ok = store.update_role_permission(role, name, enabled)
    else:
        ok = store.update_role_section(role, name, enabled)
    if not ok:
        typer.echo(f"❌ {kind} '{name}' for role '{role}' not saved")
        raise typer.Exit(code=1)
    typer.echo(f"✅ {kind} '{name}' {'enabled' if enabled else 'disabled'} for '{role}'")


@matrix_app.command("grant")
def matrix_grant(role: str, permission: str):
    """Grant a permission to a role."""
    _toggle("permission", role, permission, True)


@matrix_app.command("revoke")
def matrix_revoke(role: str, permission: str):
    """Revoke a permission from a role."""
    _toggle("permission", role, permission, False)


@matrix_app.command("show-section")
def matrix_show_section(role: str, section: str):
    """Make a navigation section visible to a role."""
    _toggle("section", role, section, True)


@matrix_app.command("hide-section")
def matrix_hide_section(role: str, section: str):
    """Hide a navigation section from a role."""
    _toggle("section", role, section, False)


@app.command("whoami")
def whoami(
    token: str = typer.Argument(..., help="Session token"),
    api_url: str = typer.Option("http://localhost:8000", help="API base URL"),
):
    """Show the user, sections and permissions behind a session token."""
    import httpx
    resp = httpx.get(
        f"{api_url}/api/auth/me",
        headers={"Authorization": f"Bearer {token}"},
        timeout=10,
    )
    typer.echo(resp.json())


@app.command("serve")
def serve(
    host: str = typer.Option("0.0.0.0", help="Host"),
    port: int = typer.Option(8000, help="Port"),
    reload: bool = typer.Option(True, help="Auto-reload"),
):
    """Start the FastAPI development server."""
    import uvicorn
    uvicorn.run("accademia.main:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    app()
