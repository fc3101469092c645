"""
Command-line client for the currency converter.

Runs the API server and the interactive terminal client.
"""

import sys
from datetime import datetime
from typing import Callable, Dict, List, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from app.main import run as run_server
from converter.api_client import HistoryApiClient
from converter.errors import ApiError, ConfigurationError, IdentityProviderError, UpstreamUnavailable
from converter.identity import IdentityProviderClient, SessionEventKind
from converter.models import ConversionRecord, HistoryEntry, VerifiedIdentity
from converter.rates import RateLookupClient, flag_for

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

AUTH_CHOICES = ["login", "google", "register", "quit"]
APP_CHOICES = ["convert", "swap", "history", "profile", "logout", "quit"]


def _format_amount(value: float) -> str:
    return f"{value:g}"


def _format_timestamp(millis: int) -> str:
    return datetime.fromtimestamp(millis / 1000).strftime("%Y-%m-%d %H:%M:%S")


def history_table(records: List[ConversionRecord]) -> Table:
    table = Table(title="Conversion History")
    table.add_column("Conversion")
    table.add_column("When", style="dim")
    for record in records:
        table.add_row(
            f"{_format_amount(record.amount)} {record.from_currency} → "
            f"{_format_amount(record.result)} {record.to_currency}",
            _format_timestamp(record.timestamp),
        )
    return table


def currencies_table(currencies: Dict[str, str]) -> Table:
    table = Table(title="Currencies")
    table.add_column("Flag")
    table.add_column("Code", style="cyan")
    table.add_column("Name")
    for code, name in currencies.items():
        table.add_row(flag_for(code), code, name)
    return table


class ConverterUI:
    """Two-state terminal client: sign-in view or converter view.

    The view is chosen from session events, never from local flags.
    """

    def __init__(
        self,
        identity: IdentityProviderClient,
        rates: RateLookupClient,
        api: HistoryApiClient,
        out: Optional[Console] = None,
        ask: Callable[..., str] = Prompt.ask,
    ):
        self.identity = identity
        self.rates = rates
        self.api = api
        self.console = out or console
        self.ask = ask
        self.from_currency = "USD"
        self.to_currency = "EUR"
        self.currencies: Dict[str, str] = {}
        self.history: List[ConversionRecord] = []

    def _ask(self, prompt: str, **kwargs) -> str:
        return self.ask(prompt, console=self.console, **kwargs)

    def alert(self, message: str) -> None:
        self.console.print(f"[red]Error:[/] {escape(message)}")

    def run(self) -> None:
        subscription = self.identity.subscribe()
        try:
            while True:
                event = subscription.next_event()
                if event.kind is SessionEventKind.SIGNED_IN:
                    keep_going = self.app_view(event.identity)
                else:
                    keep_going = self.auth_view()
                if not keep_going:
                    return
        finally:
            subscription.close()

    # Signed-out view

    def auth_view(self) -> bool:
        """Prompt until a sign-in succeeds. False means the user quit."""
        self.console.print(Panel("Login or register to continue", title="Currency Converter"))
        while self.identity.current is None:
            choice = self._ask("Choose", choices=AUTH_CHOICES, default="login")
            if choice == "quit":
                return False
            if choice == "google":
                token = self._ask("Google ID token", password=True)
                self.login_with_provider("google.com", token)
                continue
            email = self._ask("Email")
            password = self._ask("Password", password=True)
            if choice == "register":
                self.register(email, password)
            else:
                self.login(email, password)
        return True

    def _confirm_session(self) -> None:
        token = self.identity.get_id_token()
        if token:
            self.api.confirm(token)

    def login(self, email: str, password: str) -> bool:
        try:
            self.identity.sign_in(email, password)
            self._confirm_session()
        except (IdentityProviderError, ApiError, ConfigurationError) as exc:
            self.alert(str(exc))
            return False
        return True

    def login_with_provider(self, provider_id: str, id_token: str) -> bool:
        try:
            self.identity.sign_in_with_idp(provider_id, id_token)
            self._confirm_session()
        except (IdentityProviderError, ApiError, ConfigurationError) as exc:
            self.alert(str(exc))
            return False
        return True

    def register(self, email: str, password: str) -> bool:
        try:
            self.identity.register(email, password)
        except (IdentityProviderError, ConfigurationError) as exc:
            self.alert(str(exc))
            return False
        self.console.print("[green]✓[/] Registered successfully! Please login.")
        return True

    # Signed-in view

    def app_view(self, user: VerifiedIdentity) -> bool:
        """Converter menu until sign-out (True) or quit (False)."""
        self.console.print(Panel(f"Signed in as {user.email}", title="Currency Converter"))
        self.load_currencies()
        self.load_history()
        while self.identity.current is not None:
            choice = self._ask("Action", choices=APP_CHOICES, default="convert")
            if choice == "quit":
                return False
            if choice == "convert":
                amount = self._ask("Amount", default="")
                from_currency = self._ask("From", default=self.from_currency).upper()
                to_currency = self._ask("To", default=self.to_currency).upper()
                self.convert(amount, from_currency, to_currency)
            elif choice == "swap":
                self.swap()
            elif choice == "history":
                self.console.print(self.render_history())
            elif choice == "profile":
                self.console.print(Panel(f"Email: {user.email}", title="Your Profile"))
            elif choice == "logout":
                self.identity.sign_out()
        return True

    def load_currencies(self) -> None:
        try:
            self.currencies = self.rates.currencies()
        except UpstreamUnavailable as exc:
            self.alert(str(exc))

    def load_history(self) -> None:
        try:
            token = self.identity.get_id_token()
            if token:
                self.history = self.api.history(token)
        except (ApiError, IdentityProviderError) as exc:
            self.alert(f"Could not load history: {exc}")

    def render_history(self):
        if not self.history:
            return "No history found."
        return history_table(self.history)

    def swap(self) -> None:
        self.from_currency, self.to_currency = self.to_currency, self.from_currency
        self.console.print(f"{self.from_currency} ⇆ {self.to_currency}")

    def convert(self, amount_text: str, from_currency: str, to_currency: str) -> Optional[float]:
        """Convert, show the result and record it. Nothing is saved if the lookup fails."""
        if not amount_text or not amount_text.strip():
            self.alert("Enter amount")
            return None
        try:
            amount = float(amount_text)
        except ValueError:
            self.alert(f"Invalid amount: {amount_text}")
            return None

        unknown = [code for code in (from_currency, to_currency) if self.currencies and code not in self.currencies]
        if unknown:
            self.alert(f"Unknown currency: {', '.join(unknown)}")
            return None

        self.from_currency, self.to_currency = from_currency, to_currency
        try:
            converted = self.rates.convert(amount, from_currency, to_currency)
        except UpstreamUnavailable as exc:
            self.alert(str(exc))
            return None

        self.console.print(
            f"[bold]{_format_amount(amount)} {flag_for(from_currency)} {from_currency} = "
            f"{_format_amount(converted)} {flag_for(to_currency)} {to_currency}[/]"
        )

        entry = HistoryEntry(
            from_currency=from_currency,
            to_currency=to_currency,
            amount=amount,
            rate=converted,
            result=converted,
        )
        try:
            token = self.identity.get_id_token()
            if token:
                self.api.save(token, entry)
                self.history = self.api.history(token)
        except (ApiError, IdentityProviderError) as exc:
            self.alert(f"Could not save history: {exc}")
        return converted


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context):
    """Currency converter CLI."""
    if ctx.invoked_subcommand is None:
        console.print("Currency Converter - Use --help to see available commands")


@app.command()
def serve():
    """Run the converter API server."""
    run_server()


@app.command()
def currencies():
    """List supported currencies."""
    try:
        available = RateLookupClient().currencies()
    except UpstreamUnavailable as e:
        console.print(f"[red]Error loading currencies:[/] {e.message}")
        sys.exit(EXIT_CODE_FAIL)
    console.print(currencies_table(available))


@app.command()
def ui():
    """Interactive converter client."""
    try:
        ConverterUI(IdentityProviderClient(), RateLookupClient(), HistoryApiClient()).run()
    except (KeyboardInterrupt, EOFError):
        console.print()
    sys.exit(EXIT_CODE_PASS)


if __name__ == "__main__":
    app()
