"""
Command line entry points for manual scrapes, account syncing and the scheduler.
"""
from __future__ import annotations

import json
import logging
import sys

import click
from dotenv import load_dotenv

from timeline.models import SourceAccount, Summary


def _pipeline():
    from timeline.pipeline import TimelinePipeline

    return TimelinePipeline()


def _echo_summary(summary: Summary, as_json: bool) -> None:
    if as_json:
        click.echo(json.dumps(summary.to_dict(), ensure_ascii=False))
    else:
        click.echo(summary.message)
    if not summary.success:
        sys.exit(1)


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Debug logging.")
def cli(verbose: bool):
    load_dotenv()
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@cli.command("run-all")
@click.option("--json", "as_json", is_flag=True)
def run_all(as_json: bool):
    _echo_summary(_pipeline().run_all(), as_json)


@cli.command("run-one")
@click.argument("account_id")
@click.option("--json", "as_json", is_flag=True)
def run_one(account_id: str, as_json: bool):
    _echo_summary(_pipeline().run_one(account_id), as_json)


@cli.command("run-entity")
@click.argument("entity_id")
@click.option("--json", "as_json", is_flag=True)
def run_entity(entity_id: str, as_json: bool):
    _echo_summary(_pipeline().run_for_entity(entity_id), as_json)


@cli.command()
@click.argument("kind", type=click.Choice(["news", "team", "events", "all"]))
@click.option("--json", "as_json", is_flag=True)
def official(kind: str, as_json: bool):
    pipeline = _pipeline()
    kinds = ("news", "team", "events") if kind == "all" else (kind,)
    failed = False
    for item in kinds:
        summary = pipeline.run_official(item)
        click.echo(json.dumps(summary.to_dict(), ensure_ascii=False) if as_json else summary.message)
        failed = failed or not summary.success
    if failed:
        sys.exit(1)


@cli.command()
@click.option("--platform", required=True)
@click.option("--account-url", default="")
@click.option("--rss-url", default=None)
@click.option("--rss-feed-id", default=None)
@click.option("--scraping-url", default=None)
@click.option("--limit", default=5, show_default=True)
def fetch(platform: str, account_url: str, rss_url, rss_feed_id, scraping_url, limit: int):
    """Dry run: fetch one ad-hoc account and print posts as JSON lines without storing them."""
    account = SourceAccount(
        id="adhoc",
        platform=platform,
        account_url=account_url,
        rss_url=rss_url,
        rss_feed_id=rss_feed_id,
        scraping_url=scraping_url,
    )
    adapter = _pipeline().registry.resolve(account)
    if adapter is None:
        raise click.UsageError(f"No adapter can handle {account.platform} with the given URLs")
    for post in adapter.fetch(account)[:limit]:
        click.echo(json.dumps(post.model_dump(mode="json"), ensure_ascii=False))


@cli.command("sync-accounts")
@click.option("--path", "path", default=None, help="Accounts YAML (defaults to TIMELINE_ACCOUNTS_PATH).")
def sync_accounts(path):
    from timeline.config_loader import load_accounts

    pipeline = _pipeline()
    accounts = load_accounts(path or pipeline.settings.accounts_path)
    for account in accounts:
        pipeline.store.upsert_account(account.to_record())
    click.echo(f"{len(accounts)} account(s) synced")


@cli.command()
def status():
    from timeline.status import build_status

    click.echo(json.dumps(build_status(_pipeline()), ensure_ascii=False, indent=2))


@cli.command()
def schedule():
    from timeline.scheduler import run_scheduler

    run_scheduler(_pipeline())


if __name__ == "__main__":  # pragma: no cover
    cli()
