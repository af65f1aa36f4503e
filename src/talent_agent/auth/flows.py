"""Interactive login flows.

Prompts go to stderr so stdout stays usable for piping.
"""

import re
from datetime import datetime, timezone

import typer
from rich.console import Console

from talent_agent.auth.client import AuthClient
from talent_agent.auth.models import AuthMethod, Credentials
from talent_agent.auth.store import CredentialStore
from talent_agent.errors import TalentAgentError

err_console = Console(stderr=True)

ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")
SIWE_DOMAIN = "talent-agent"
SIWE_URI = "https://cli.talent.app"
SIWE_CHAIN_ID = 1


class LoginError(TalentAgentError):
    pass


async def run_email_flow(client: AuthClient, store: CredentialStore) -> Credentials:
    email = typer.prompt("Email", err=True).strip()
    if "@" not in email or "." not in email:
        raise LoginError("Invalid email format.")

    err_console.print(f"Sending verification code to {email}...")
    await client.email_request_code(email)
    err_console.print("Code sent! Check your inbox.")

    code = typer.prompt("Enter the 6-digit code", err=True).strip()
    if len(code) != 6:
        raise LoginError("A 6-digit code is required.")

    response = await client.email_verify_code(email, code)
    creds = Credentials(
        token=response.auth.token,
        expires_at=response.auth.expires_at,
        auth_method=AuthMethod.EMAIL,
        email=email,
    )
    store.save(creds)
    err_console.print(f"[green]Authenticated as {email}[/green]")
    return creds


def build_siwe_message(address: str, nonce: str, issued_at: datetime | None = None) -> str:
    issued_at = issued_at or datetime.now(timezone.utc)
    return "\n".join(
        [
            f"{SIWE_DOMAIN} wants you to sign in with your Ethereum account:",
            address,
            "",
            "Sign in to Talent Agent",
            "",
            f"URI: {SIWE_URI}",
            "Version: 1",
            f"Chain ID: {SIWE_CHAIN_ID}",
            f"Nonce: {nonce}",
            f"Issued At: {issued_at.isoformat().replace('+00:00', 'Z')}",
        ]
    )


async def run_wallet_flow(client: AuthClient, store: CredentialStore) -> Credentials:
    """Sign-In with Ethereum; the user signs the message in their own wallet."""
    address = typer.prompt("Wallet address (0x...)", err=True).strip()
    if not ADDRESS_RE.match(address):
        raise LoginError("A valid Ethereum address is required (0x... 40 hex chars).")

    nonce = await client.create_nonce(address)
    message = build_siwe_message(address, nonce)

    err_console.print("\nSign this message with your wallet:\n")
    err_console.rule()
    err_console.print(message, markup=False, highlight=False)
    err_console.rule()

    signature = typer.prompt("Paste your signature", err=True).strip()
    if not signature:
        raise LoginError("Signature is required.")

    response = await client.create_auth_token(address, signature, SIWE_CHAIN_ID, message)
    creds = Credentials(
        token=response.auth.token,
        expires_at=response.auth.expires_at,
        auth_method=AuthMethod.WALLET,
        address=address,
    )
    store.save(creds)
    err_console.print(f"[green]Authenticated as {address}[/green]")
    return creds


async def run_login(
    method: AuthMethod, client: AuthClient, store: CredentialStore
) -> Credentials:
    if method is AuthMethod.EMAIL:
        return await run_email_flow(client, store)
    if method is AuthMethod.WALLET:
        return await run_wallet_flow(client, store)
    raise LoginError(
        "Google sign-in needs the browser flow, which this client does not provide. "
        "Use --method email or --method wallet."
    )
