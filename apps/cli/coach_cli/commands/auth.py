"""login / logout / whoami."""
from rich.prompt import Prompt


def cmd_login(args, ctx) -> int:
    console = ctx.console
    email = args.email or Prompt.ask("Email", console=console)
    password = Prompt.ask("Password", password=True, console=console)

    console.print(f"Logging in as {email}...")
    user = ctx.api.login(email, password)
    console.print("[green]✓ Login successful![/green]")
    console.print(f"Welcome, {user.get('display_name') or user.get('email', email)} ({user.get('role', 'athlete')})")
    return 0


def cmd_logout(args, ctx) -> int:
    if ctx.store.get_tokens() is None:
        ctx.console.print("You are not logged in.")
        return 0
    if ctx.offline:
        ctx.store.clear_tokens()
        ctx.console.print("[yellow]Offline: local session cleared, server token not revoked[/yellow]")
        return 0

    if not ctx.api.logout():
        ctx.console.print("[yellow]⚠ Could not invalidate token on server[/yellow]")
    ctx.console.print("[green]✓ Logged out successfully![/green]")
    return 0


def cmd_whoami(args, ctx) -> int:
    console = ctx.console
    tokens = ctx.store.get_tokens()
    if tokens is None:
        console.print("You are not logged in.\n\nUse 'ai-coach login' to authenticate.")
        return 0
    if ctx.offline:
        console.print(f"Logged in as {tokens.email or 'unknown'} (offline, not verified)")
        return 0

    profile = ctx.api.profile()
    console.print("[green]✓ Authenticated as:[/green]")
    console.print(f"  Email:    {profile['email']}")
    console.print(f"  Name:     {profile.get('display_name') or '-'}")
    console.print(f"  Role:     {profile['role']}")
    console.print(f"  User ID:  {profile['id']}")
    return 0


def register(subparsers) -> None:
    login = subparsers.add_parser("login", help="Log in to AI Coach")
    login.add_argument("--email", help="account email (prompted if omitted)")
    login.set_defaults(func=cmd_login)

    logout = subparsers.add_parser("logout", help="Log out and forget stored tokens")
    logout.set_defaults(func=cmd_logout)

    whoami = subparsers.add_parser("whoami", help="Show the logged-in user")
    whoami.set_defaults(func=cmd_whoami)
