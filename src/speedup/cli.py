import os
import sys
from datetime import datetime, timedelta, timezone
import jwt
import typer
from speedup.config import get_settings
from speedup.logging import logger, get_run_id, configure_logging

app = typer.Typer(no_args_is_help=True)

@app.callback()
def main():
    """
    Upload timing server CLI.
    """
    configure_logging(get_settings().LOG_LEVEL)

@app.command(name="doctor")
def doctor():
    """
    Check configuration before serving.
    """
    logger.info("Running doctor check...")
    settings = get_settings()

    failures: list[str] = []
    passed = 0

    print("\n🩺 Upload Server Doctor\n")

    # ── Check 1: Environment / Interpreter ──────────────────────────────────
    print("[Environment]")
    print(f"  Python: {sys.version.split()[0]}")
    print(f"  Run ID: {get_run_id()}")
    passed += 1

    # ── Check 2: Credentials ────────────────────────────────────────────────
    print("\n[Auth]")
    print(f"  API_KEY:        {'✅ Set' if settings.api_key else '— not set'}")
    print(f"  JWT_SECRET:     {'✅ Set' if settings.signing_secret else '— not set'}")
    print(f"  AUTH_REQUIRED:  {settings.AUTH_REQUIRED}")
    if settings.api_key or settings.signing_secret:
        passed += 1
    elif settings.AUTH_REQUIRED:
        failures.append("Neither API_KEY nor JWT_SECRET is set — every upload will get 401")
    else:
        print("  ⚠️  Auth disabled (AUTH_REQUIRED=false, no credentials)")
        passed += 1

    # ── Check 3: Limits ─────────────────────────────────────────────────────
    print("\n[Limits]")
    print(f"  MAX_FILE_BYTES: {settings.MAX_FILE_BYTES}")
    print(f"  MAX_LOG_BYTES:  {settings.MAX_LOG_BYTES}")
    if settings.MAX_FILE_BYTES > 0:
        passed += 1
    else:
        failures.append("MAX_FILE_BYTES is 0 — only empty files will be accepted")

    # ── Check 4: Port ───────────────────────────────────────────────────────
    print("\n[Server]")
    print(f"  HOST: {settings.HOST}")
    print(f"  PORT: {settings.PORT}")
    if 0 < settings.PORT < 65536:
        passed += 1
    else:
        failures.append(f"PORT {settings.PORT} is out of range")

    # ── Summary ──────────────────────────────────────────────────────────────
    total = passed + len(failures)
    print(f"\n{'─' * 50}")
    if failures:
        print(f"Result: {passed}/{total} checks passed\n")
        for msg in failures:
            print(f"  ❌ {msg}")
        print()
        raise typer.Exit(code=1)
    else:
        print(f"Result: {passed}/{total} checks passed — all good ✅")
        print()

@app.command(name="serve")
def serve(
    host: str | None = typer.Option(None, help="Bind address (defaults to HOST)"),
    port: int | None = typer.Option(None, help="Listen port (defaults to PORT)"),
):
    """Run the upload timing server."""
    import uvicorn
    from speedup.api.app import create_app

    settings = get_settings()
    if port is not None:
        settings = settings.model_copy(update={"PORT": port})
    uvicorn.run(create_app(settings), host=host or settings.HOST, port=settings.PORT)

@app.command(name="token")
def token(
    subject: str = typer.Option("speedtest", help="Token subject claim"),
    expires_in: int = typer.Option(3600, help="Lifetime in seconds"),
):
    """Mint a signed test token with JWT_SECRET."""
    secret = get_settings().signing_secret
    if not secret:
        print("❌ JWT_SECRET is not set")
        raise typer.Exit(code=1)
    now = datetime.now(timezone.utc)
    claims = {"sub": subject, "iat": now, "exp": now + timedelta(seconds=expires_in)}
    print(jwt.encode(claims, secret, algorithm="HS256"))

@app.command(name="probe")
def probe(
    url: str = typer.Argument("http://127.0.0.1:3000", help="Server base URL"),
    size: int = typer.Option(1024 * 1024, help="Synthetic file size in bytes"),
    api_key: str | None = typer.Option(None, envvar="API_KEY", help="x-api-key to send"),
    token: str | None = typer.Option(None, help="Bearer token to send"),
):
    """Upload a synthetic file and report server vs client timing."""
    from speedup.client import SpeedupClient, APIError

    content = os.urandom(size)
    try:
        with SpeedupClient(url, api_key=api_key, token=token) as client:
            result = client.upload("probe.bin", content)
    except APIError as e:
        logger.error(f"Probe failed: {e}")
        print(f"❌ Failed: {e}")
        raise typer.Exit(code=1)

    up = result.upload
    print(f"✅ Uploaded {up.size} bytes")
    print(f"  Round trip:         {result.round_trip_ms} ms")
    print(f"  Server processing:  {up.server_processing_ms} ms")
    print(f"  Network (approx):   {result.network_ms} ms")

if __name__ == "__main__":
    app()
