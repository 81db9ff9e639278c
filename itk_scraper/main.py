"""
Command line runner for the Insurance Toolkits quote scraper
"""

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, List

from .config import load_settings
from .data_handler import DataHandler
from .error_handler import setup_logging
from .models import FormVariant, is_error_record
from .quoter import InsuranceToolkitsQuoter


def read_requests(path: str) -> List[Dict[str, Any]]:
    """A JSON file holding one request object or a list of them"""
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)
    return data if isinstance(data, list) else [data]


class QuoteApp:
    """Runs one or more quote requests on a single browser session"""

    def __init__(self, args: argparse.Namespace):
        self.args = args
        settings = load_settings(args.env_file)
        if args.output:
            settings = replace(settings, output_folder=args.output)
        if args.headed:
            settings = replace(settings, headless=False)
        self.settings = settings
        self.quoter = None
        self.data_handler = None

    async def run_quotes(self, requests: List[Dict[str, Any]]) -> int:
        if not self.settings.enabled:
            print("✗ Insurance Toolkits integration is disabled (set INSURANCE_TOOLKITS_ENABLED=true)")
            return 1

        variant = FormVariant(self.args.variant)
        self.quoter = InsuranceToolkitsQuoter(self.settings)
        if not self.args.no_save:
            self.data_handler = DataHandler(self.settings.output_folder)

        self.quoter.install_signal_handlers()
        self.quoter.start_heartbeat()

        failures = 0
        try:
            for index, request in enumerate(requests, start=1):
                if self.quoter.shutting_down:
                    print(f"\n⚠️  Shutdown requested, skipping {len(requests) - index + 1} remaining request(s)")
                    break
                print(f"[{index}/{len(requests)}] Requesting {variant.value} quote...")
                if variant == FormVariant.QUICK:
                    quotes = await self.quoter.get_quick_quote(request)
                else:
                    quotes = await self.quoter.get_detailed_quote(request)

                quotes = quotes or []
                if any(is_error_record(q) for q in quotes):
                    failures += 1
                    print(f"✗ {quotes[0]['errorMessage']}")
                else:
                    print(f"✓ {len(quotes)} quote(s) received")

                print(json.dumps(quotes, indent=2))
                if self.data_handler is not None:
                    self.data_handler.save_to_json(self.data_handler.build_entry(variant.value, request, quotes))

            if self.data_handler is not None:
                df = self.data_handler.save_to_csv()
                if df is not None:
                    print(json.dumps(self.data_handler.summary(df), indent=2))
        finally:
            await self.quoter.close_browser()

        if self.quoter.shutting_down:
            return 130
        return 1 if failures else 0

    def status(self) -> int:
        sessions_status = InsuranceToolkitsQuoter(self.settings).get_session_status()
        print(json.dumps({
            'enabled': self.settings.enabled,
            'credentialsConfigured': bool(self.settings.credentials and self.settings.credentials.complete),
            'loginUrl': self.settings.login_url,
            'quoteUrl': self.settings.quote_url,
            'quickQuoteUrl': self.settings.quick_quote_url,
            'sessionTtlHours': self.settings.session_ttl_seconds / 3600,
            'session': sessions_status,
        }, indent=2))
        return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="itk-quote",
        description="Fetch final expense quotes from Insurance Toolkits",
    )
    parser.add_argument('--env-file', default=None, help='Path to a .env file')
    parser.add_argument('--output', default=None, help='Output folder (default: INSURANCE_TOOLKITS_OUTPUT_FOLDER)')
    parser.add_argument('--headed', action='store_true', help='Show the browser window')
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')

    sub = parser.add_subparsers(dest='command', required=True)

    quote = sub.add_parser('quote', help='Run a single quote request')
    quote.add_argument('--variant', choices=[v.value for v in FormVariant], default=FormVariant.DETAILED.value)
    quote.add_argument('--request', required=True, help='JSON file with one quote request')
    quote.add_argument('--no-save', action='store_true', help='Do not write JSON/CSV output')

    batch = sub.add_parser('batch', help='Run a list of quote requests on one session')
    batch.add_argument('--variant', choices=[v.value for v in FormVariant], default=FormVariant.DETAILED.value)
    batch.add_argument('--requests', required=True, help='JSON file with a list of quote requests')
    batch.add_argument('--no-save', action='store_true', help='Do not write JSON/CSV output')

    sub.add_parser('status', help='Show configuration and session status')
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    app = QuoteApp(args)
    setup_logging(app.settings.output_folder, logging.DEBUG if args.verbose else logging.INFO)

    if args.command == 'status':
        return app.status()

    path = args.request if args.command == 'quote' else args.requests
    if not Path(path).exists():
        print(f"✗ Request file not found: {path}")
        return 1
    try:
        requests = read_requests(path)
    except json.JSONDecodeError as e:
        print(f"✗ Could not parse {path}: {e}")
        return 1
    if args.command == 'quote':
        requests = requests[:1]

    try:
        return asyncio.run(app.run_quotes(requests))
    except KeyboardInterrupt:
        print("\n⚠️  Interrupted by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())
