#!/usr/bin/env python3
"""
midatopay: operator CLI for MidatoPay
Manage the local merchant wallet, quote payments and run the chain watcher.

Usage:
    midatopay wallet create --email you@shop.com [--user-id ID]
    midatopay wallet show|export|import|clear|verify
    midatopay quote 5000 USDT [--json]
    midatopay balance [address]
    midatopay watch [--once]
"""

import argparse
import asyncio
import getpass
import json as json_lib
import sys
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from midatopay.api.services import build_services
from midatopay.chain.rpc import StarknetRPC
from midatopay.config import configure_logging, get_config
from midatopay.errors import MidatoPayError
from midatopay.oracle.service import StarknetOracle
from midatopay.payments.builder import PaymentRequestBuilder
from midatopay.wallet.store import WalletStore

console = Console()


def prompt_password(confirm: bool = False) -> str:
    password = getpass.getpass("Wallet password: ")
    if confirm and getpass.getpass("Repeat password: ") != password:
        console.print("[red]Passwords do not match[/red]")
        sys.exit(1)
    return password


class MidatoPayCLI:
    """CLI wrapper around the wallet store, builder, oracle and watcher"""

    def __init__(self, json_output: bool = False):
        self.config = get_config()
        self.json_output = json_output
        self.wallets = WalletStore.from_config(self.config)

    def _output(self, data: dict, human_message: str = None):
        """Output data in JSON or human-readable format"""
        if self.json_output:
            print(json_lib.dumps(data, indent=2, default=str))
        elif human_message:
            console.print(human_message)

    # ===== WALLET =====

    async def wallet_create(self, email: str, user_id: Optional[str] = None, force: bool = False):
        if self.wallets.has_wallet() and not force:
            self._output(
                {"error": "Wallet already exists"},
                "[yellow]A wallet already exists. Use --force to replace it.[/yellow]"
            )
            return

        password = prompt_password(confirm=True)
        wallet = self.wallets.generate_wallet(email, password)

        if user_id and self.config.database_configured:
            from midatopay.database.client import get_db_client
            self.wallets.db = get_db_client()
        await self.wallets.save_wallet(wallet, user_id=user_id)

        self._output(
            {"email": wallet.email, "address": wallet.address, "public_key": wallet.public_key},
            Panel(
                f"[bold]Email:[/bold] {wallet.email}\n"
                f"[bold]Address:[/bold] {wallet.address}\n"
                f"[bold]Public key:[/bold] {wallet.public_key}",
                title="Wallet created",
                border_style="green"
            )
        )

    def wallet_show(self):
        wallet = self.wallets.load_wallet()
        if wallet is None:
            self._output({"error": "No wallet"}, "[yellow]No wallet stored[/yellow]")
            return

        self._output(
            {
                "email": wallet.email,
                "address": wallet.address,
                "public_key": wallet.public_key,
                "created_at": wallet.created_at.isoformat(),
            },
            Panel(
                f"[bold]Email:[/bold] {wallet.email}\n"
                f"[bold]Address:[/bold] {wallet.address}\n"
                f"[bold]Public key:[/bold] {wallet.public_key}\n"
                f"[bold]Created:[/bold] {wallet.created_at:%Y-%m-%d %H:%M}",
                title="Merchant wallet",
                border_style="yellow"
            )
        )

    def wallet_export(self, output: Optional[str] = None):
        exported = self.wallets.export_wallet()
        if exported is None:
            self._output({"error": "No wallet"}, "[yellow]No wallet stored[/yellow]")
            return
        if output:
            Path(output).write_text(exported, encoding="utf-8")
            self._output({"exported": output}, f"[green]Wallet exported to {output}[/green]")
        else:
            print(exported)

    def wallet_import(self, path: str):
        try:
            wallet = self.wallets.import_wallet(Path(path).read_text(encoding="utf-8"))
        except (OSError, MidatoPayError) as e:
            self._output({"error": str(e)}, f"[red]Import failed: {e}[/red]")
            return
        self._output(
            {"email": wallet.email, "address": wallet.address},
            f"[green]Imported wallet {wallet.address} ({wallet.email})[/green]"
        )

    def wallet_clear(self, yes: bool = False):
        if not yes and console.input("Delete the stored wallet? [y/N] ").strip().lower() != "y":
            return
        self.wallets.clear_wallet()
        self._output({"status": "cleared"}, "[green]Wallet deleted[/green]")

    def wallet_verify(self, email: str):
        ok = self.wallets.verify_credentials(email, prompt_password())
        self._output(
            {"valid": ok},
            "[green]Credentials valid[/green]" if ok else "[red]Invalid email or password[/red]"
        )
        if not ok:
            sys.exit(1)

    # ===== PAYMENTS =====

    def quote(self, amount: str, currency: str):
        builder = PaymentRequestBuilder.from_config(self.config)
        try:
            token_amount = builder.quote_token_amount(amount, currency)
            rate = builder.rate_for(currency)
        except (MidatoPayError, ValueError) as e:
            self._output({"error": str(e)}, f"[red]{e}[/red]")
            sys.exit(1)

        symbol = currency.upper()
        if self.json_output:
            self._output({
                "amount": amount,
                "fiat_currency": self.config.fiat_currency,
                "currency": symbol,
                "rate": str(rate),
                "token_amount": str(token_amount),
            })
            return

        table = Table(title="Payment quote", show_header=True, header_style="bold yellow")
        table.add_column(self.config.fiat_currency, justify="right")
        table.add_column("Rate", justify="right")
        table.add_column(f"{symbol} (base units)", justify="right", style="green")
        table.add_row(amount, str(rate), str(token_amount))
        console.print(table)

    async def balance(self, address: Optional[str] = None):
        if address is None:
            wallet = self.wallets.load_wallet()
            if wallet is None:
                self._output({"error": "No address"}, "[yellow]No wallet stored; pass an address[/yellow]")
                return
            address = wallet.address

        rpc = StarknetRPC(self.config.starknet_rpc_url, timeout=self.config.rpc_timeout_seconds)
        try:
            balance = await StarknetOracle.from_config(self.config, rpc).get_usdt_balance(address)
        except MidatoPayError as e:
            self._output({"error": str(e)}, f"[red]Failed to get balance: {e}[/red]")
            return
        finally:
            await rpc.aclose()

        self._output(
            balance.model_dump(mode="json"),
            Panel(
                f"[bold]Address:[/bold] {balance.account_address}\n"
                f"[bold]Network:[/bold] {self.config.network}\n"
                f"[bold]USDT Balance:[/bold] [green]{balance.balance}[/green]",
                title="Balance",
                border_style="yellow"
            )
        )

    # ===== WATCHER =====

    async def watch(self, once: bool = False):
        configure_logging(self.config)
        services = build_services(self.config)
        if services.watcher is None:
            self._output(
                {"error": "Database not configured"},
                "[red]SUPABASE_URL and SUPABASE_KEY are required to run the watcher[/red]"
            )
            await services.aclose()
            return

        try:
            if once:
                processed = await services.watcher.poll_for_new_events()
                self._output({"processed": processed}, f"Processed {processed} event(s)")
            else:
                console.print(
                    f"[bold]Watching[/bold] {self.config.payment_gateway_address} "
                    f"every {self.config.poll_interval_seconds}s (Ctrl+C to stop)"
                )
                await services.watcher.run()
        finally:
            await services.aclose()


def main():
    parser = argparse.ArgumentParser(
        prog="midatopay",
        description="MidatoPay operator CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  midatopay wallet create --email shop@example.com
  midatopay wallet export --output backup.json
  midatopay quote 5000 USDT
  midatopay watch --once
        """
    )

    parser.add_argument("--json", "-j", action="store_true", help="Output in JSON format")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Wallet commands
    wallet_parser = subparsers.add_parser("wallet", help="Manage the local merchant wallet")
    wallet_sub = wallet_parser.add_subparsers(dest="wallet_command")

    create_parser = wallet_sub.add_parser("create", help="Generate and store a new wallet")
    create_parser.add_argument("--email", "-e", required=True)
    create_parser.add_argument("--user-id", help="Also mirror the encrypted wallet for this user")
    create_parser.add_argument("--force", action="store_true", help="Replace an existing wallet")

    wallet_sub.add_parser("show", help="Show the stored wallet")

    export_parser = wallet_sub.add_parser("export", help="Export the wallet as JSON")
    export_parser.add_argument("--output", "-o", help="Write to file instead of stdout")

    import_parser = wallet_sub.add_parser("import", help="Import an exported wallet")
    import_parser.add_argument("path")

    clear_parser = wallet_sub.add_parser("clear", help="Delete the stored wallet")
    clear_parser.add_argument("--yes", "-y", action="store_true")

    verify_parser = wallet_sub.add_parser("verify", help="Check email and password")
    verify_parser.add_argument("--email", "-e", required=True)

    # Quote command
    quote_parser = subparsers.add_parser("quote", help="Size a fiat amount in token base units")
    quote_parser.add_argument("amount")
    quote_parser.add_argument("currency", nargs="?", default="USDT")

    # Balance command
    balance_parser = subparsers.add_parser("balance", help="USDT balance of an address")
    balance_parser.add_argument("address", nargs="?")

    # Watch command
    watch_parser = subparsers.add_parser("watch", help="Run the chain watcher in the foreground")
    watch_parser.add_argument("--once", action="store_true", help="Single polling pass")

    args = parser.parse_args()

    if not args.command or (args.command == "wallet" and not args.wallet_command):
        parser.print_help()
        sys.exit(1)

    cli = MidatoPayCLI(json_output=args.json)

    if args.command == "wallet":
        if args.wallet_command == "create":
            asyncio.run(cli.wallet_create(args.email, user_id=args.user_id, force=args.force))
        elif args.wallet_command == "show":
            cli.wallet_show()
        elif args.wallet_command == "export":
            cli.wallet_export(args.output)
        elif args.wallet_command == "import":
            cli.wallet_import(args.path)
        elif args.wallet_command == "clear":
            cli.wallet_clear(yes=args.yes)
        elif args.wallet_command == "verify":
            cli.wallet_verify(args.email)
    elif args.command == "quote":
        cli.quote(args.amount, args.currency)
    elif args.command == "balance":
        asyncio.run(cli.balance(args.address))
    elif args.command == "watch":
        try:
            asyncio.run(cli.watch(once=args.once))
        except KeyboardInterrupt:
            console.print("\n[dim]Watcher stopped[/dim]")


if __name__ == "__main__":
    main()
