"""
CLI for pushing the next alarm to Home Assistant
"""

import click
import json
import logging
import signal
import sys
import threading
from datetime import datetime
from typing import Optional

from .config import HassConfig, SyncSettings
from .exceptions import ConfigError
from .hass_client import HassClient
from .host import AlarmSource, StaticAlarmSource, ScheduleFileAlarmSource
from .models import JobHandle, JobOutcome, JobReply, mask_secret
from .request_builder import build, format_alarm_time
from .runner import SyncJobRunner
from .service import SyncService, JOB_ID
from .logging_utils import setup_logging

logger = logging.getLogger(__name__)

EXIT_CODES = {
    JobOutcome.SUCCEEDED: 0,
    JobOutcome.FAILED_FATAL: 1,
    JobOutcome.FAILED_RETRY: 2,
}
_AT_FORMATS = ["%Y-%m-%d %H:%M", "%Y-%m-%dT%H:%M", "%Y-%m-%d %H:%M:%S"]


class OneShotScheduler:
    """Scheduler stand-in that waits for a single outcome"""

    def __init__(self):
        self.outcome: Optional[JobOutcome] = None
        self._done = threading.Event()

    def register_for_trigger(self, job_id: int) -> None:
        pass

    def report_outcome(self, handle: JobHandle, outcome: JobOutcome) -> None:
        self.outcome = outcome
        self._done.set()

    def wait(self, timeout: Optional[float] = None) -> Optional[JobOutcome]:
        self._done.wait(timeout)
        return self.outcome


def _alarm_source(settings: SyncSettings, at: Optional[datetime], no_alarm: bool) -> AlarmSource:
    if no_alarm:
        return StaticAlarmSource(None)
    if at is not None:
        return StaticAlarmSource(int(at.timestamp() * 1000))
    return ScheduleFileAlarmSource(settings.alarms_file, timezone=settings.timezone)


@click.group()
@click.option('--host', help='Home Assistant host (overrides HASS_HOST)')
@click.option('--credential', help='API key or long-lived token (overrides HASS_API_KEY)')
@click.option('--token/--api-key', 'is_token', default=None,
              help='Send the credential as a Bearer token or as x-ha-access')
@click.option('--entity-id', help='Entity to update (overrides HASS_ENTITY_ID)')
@click.option('--log-level', default=None, help='Log level')
@click.option('--log-format', default=None, type=click.Choice(['text', 'json']), help='Log format')
@click.pass_context
def cli(ctx, host, credential, is_token, entity_id, log_level, log_format):
    """Hass Alarm - push the next wake alarm to Home Assistant"""
    settings = SyncSettings.from_env()
    setup_logging(log_level=log_level or settings.log_level, log_format=log_format or settings.log_format)

    config = HassConfig.from_env()
    overrides = {
        'host': host,
        'credential': credential,
        'credential_is_long_lived_token': is_token,
        'entity_id': entity_id,
    }
    config = config.model_copy(update={k: v for k, v in overrides.items() if v is not None})

    ctx.ensure_object(dict)
    ctx.obj['settings'] = settings
    ctx.obj['config'] = config


at_option = click.option('--at', type=click.DateTime(formats=_AT_FORMATS),
                         help='Use this alarm time (local) instead of the alarms file')
no_alarm_option = click.option('--no-alarm', is_flag=True, help='Report that no alarm is scheduled')


@cli.command()
@click.pass_context
def status(ctx):
    """Show configuration and the next alarm"""
    settings: SyncSettings = ctx.obj['settings']
    config: HassConfig = ctx.obj['config']

    click.echo("Hass Alarm Status:")
    click.echo(f"  Host: {config.host or '(not set)'}")
    click.echo(f"  Credential: {mask_secret(config.credential) or '(none)'}")
    click.echo(f"  Auth: {'long-lived token' if config.credential_is_long_lived_token else 'API key'}")
    click.echo(f"  Entity: {config.entity_id or '(default)'}")
    click.echo(f"  Alarms file: {settings.alarms_file}")

    snapshot = ScheduleFileAlarmSource(settings.alarms_file, timezone=settings.timezone).query_next_alarm()
    click.echo(f"  Next alarm: {format_alarm_time(snapshot) or '(none)'}")


@cli.command()
@at_option
@no_alarm_option
@click.pass_context
def preview(ctx, at, no_alarm):
    """Build the state update without sending it"""
    settings: SyncSettings = ctx.obj['settings']
    snapshot = _alarm_source(settings, at, no_alarm).query_next_alarm()

    try:
        request = build(ctx.obj['config'], snapshot)
    except ConfigError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(EXIT_CODES[JobOutcome.FAILED_FATAL])

    click.echo(json.dumps(request.to_dict(), indent=2))


@cli.command()
@at_option
@no_alarm_option
@click.option('--timeout', '-t', default=30.0, help='Seconds to wait for the server')
@click.pass_context
def push(ctx, at, no_alarm, timeout):
    """Send the next alarm once and report the outcome"""
    settings: SyncSettings = ctx.obj['settings']
    scheduler = OneShotScheduler()
    client = HassClient(settings)
    runner = SyncJobRunner(_alarm_source(settings, at, no_alarm), ctx.obj['config'], client, scheduler)

    handle = JobHandle(JOB_ID)
    try:
        reply = runner.on_trigger(handle)
        if reply is not JobReply.STILL_RUNNING:
            outcome = runner.last_outcome
        else:
            outcome = scheduler.wait(timeout)
            if outcome is None:
                runner.on_cancel(handle)
                click.echo(f"No response within {timeout}s", err=True)
                outcome = JobOutcome.FAILED_RETRY
    finally:
        client.close()

    click.echo(f"Outcome: {outcome.value}")
    sys.exit(EXIT_CODES[outcome])


@cli.command()
@click.pass_context
def run(ctx):
    """Keep the entity in sync until interrupted"""
    config: HassConfig = ctx.obj['config']
    service = SyncService(ctx.obj['settings'], config_provider=lambda: config)

    stop_event = threading.Event()
    signal.signal(signal.SIGTERM, lambda *_: stop_event.set())

    service.start()
    click.echo("Syncing next alarm, press Ctrl-C to stop")
    try:
        while not stop_event.wait(1.0):
            pass
    except KeyboardInterrupt:
        pass
    finally:
        service.stop()


if __name__ == '__main__':
    cli()
