"""
Main CLI entry point for Capacity Orchestrator

Provides command-line interface for job management, processing,
capacity inspection and system monitoring.
"""

import asyncio
import json
import sys
from datetime import timedelta
from typing import Any, Awaitable, Callable, Dict, Optional

import click

from ..core.config import OrchestratorConfig
from ..core.exceptions import CapacityOrchestratorError
from ..core.orchestrator import CapacityOrchestrator
from ..models.job import Job, JobStatus
from ..utils.logger import setup_logger

JOB_STATUSES = [status.value for status in JobStatus]


@click.group()
@click.option('--config', '-c', type=click.Path(exists=True), help='Configuration file path (YAML or JSON)')
@click.option('--database-url', '-d', help='Database connection URL; jobs are kept in memory without one')
@click.option('--backend', '-b', type=click.Choice(['simulated', 'lambda']), help='Capacity backend')
@click.option('--log-level', '-l', help='Log level')
@click.option('--verbose', '-v', is_flag=True, help='Verbose output')
@click.pass_context
def cli(ctx, config, database_url, backend, log_level, verbose):
    """Capacity Orchestrator CLI"""

    # Ensure context object exists
    ctx.ensure_object(dict)

    try:
        if config:
            settings = OrchestratorConfig.from_env(base=OrchestratorConfig.from_file(config).model_dump())
        else:
            settings = OrchestratorConfig.from_env()
        settings = settings.with_overrides(
            database_url=database_url,
            capacity_backend=backend,
            log_level=log_level
        )
    except CapacityOrchestratorError as e:
        click.echo(f"Error loading configuration: {e.message}", err=True)
        sys.exit(1)

    # Set up logging
    logger = setup_logger("capacity_orchestrator", level=settings.log_level,
                          structured=settings.structured_logs and not verbose)
    ctx.obj['logger'] = logger

    # Store configuration
    ctx.obj['config'] = settings
    ctx.obj['verbose'] = verbose
    ctx.obj.setdefault('orchestrator_factory', CapacityOrchestrator)


@cli.group()
@click.pass_context
def job(ctx):
    """Job management commands"""
    pass


@cli.group()
@click.pass_context
def capacity(ctx):
    """Capacity inspection and control commands"""
    pass


@cli.group()
@click.pass_context
def monitor(ctx):
    """Monitoring and status commands"""
    pass


# Job Commands
@job.command('submit')
@click.argument('job_name')
@click.option('--pool', help='Compute pool to run on')
@click.option('--config-file', type=click.Path(exists=True), help='Job configuration file (JSON)')
@click.option('--config-json', help='Job configuration as JSON string')
@click.option('--process', is_flag=True, help='Request processing right away and wait for the outcome')
@click.pass_context
def submit_job(ctx, job_name, pool, config_file, config_json, process):
    """Submit a new job"""

    async def _submit(orchestrator: CapacityOrchestrator):
        config: Dict[str, Any] = {}
        if config_file:
            with open(config_file, 'r') as f:
                config = json.load(f)
        elif config_json:
            config = json.loads(config_json)

        job = await orchestrator.submit_job(job_name, pool_id=pool, config=config)

        click.echo("Job submitted successfully!")
        click.echo(f"Job ID: {job.job_id}")
        click.echo(f"Job Name: {job.job_name}")
        click.echo(f"Pool: {job.pool_id}")

        if ctx.obj['verbose']:
            click.echo(f"Configuration: {json.dumps(config, indent=2)}")

        if process:
            outcome = await orchestrator.process_job(job.job_id)
            _display_outcome(outcome, ctx.obj['verbose'])
            return outcome

    outcome = _run(ctx, _submit, "submitting job")
    if outcome and outcome['status'] != 'succeeded':
        sys.exit(2)


@job.command('status')
@click.argument('job_id', required=False)
@click.option('--status', 'status_filter', type=click.Choice(JOB_STATUSES), help='Show only jobs in this status')
@click.pass_context
def job_status(ctx, job_id, status_filter):
    """Get job status and details"""

    async def _status(orchestrator: CapacityOrchestrator):
        if job_id:
            _display_job_details(await orchestrator.get_job(job_id), ctx.obj['verbose'])
        else:
            jobs = await orchestrator.list_jobs(status_filter)
            _display_jobs_table(jobs, ctx.obj['verbose'])

    _run(ctx, _status, "getting job status")


@job.command('process')
@click.argument('job_id')
@click.option('--timeout', type=float, help='Seconds to wait for the outcome')
@click.pass_context
def process_job(ctx, job_id, timeout):
    """Scale up, run a submitted job and scale down again"""

    async def _process(orchestrator: CapacityOrchestrator):
        outcome = await orchestrator.process_job(job_id, timeout=timeout)
        _display_outcome(outcome, ctx.obj['verbose'])
        return outcome

    outcome = _run(ctx, _process, "processing job")
    if outcome['status'] != 'succeeded':
        sys.exit(2)


@job.command('retry')
@click.argument('job_id')
@click.option('--process', is_flag=True, help='Request processing of the new job and wait for the outcome')
@click.pass_context
def retry_job(ctx, job_id, process):
    """Submit a failed job again as a new job"""

    async def _retry(orchestrator: CapacityOrchestrator):
        retry = await orchestrator.retry_job(job_id)
        click.echo(f"Job {job_id} resubmitted as {retry.job_id}")

        if process:
            outcome = await orchestrator.process_job(retry.job_id)
            _display_outcome(outcome, ctx.obj['verbose'])

    _run(ctx, _retry, "retrying job")


# Capacity Commands
@capacity.command('get')
@click.argument('pool', required=False)
@click.pass_context
def get_capacity(ctx, pool):
    """Show the applied capacity of a pool"""

    async def _get(orchestrator: CapacityOrchestrator):
        info = await orchestrator.get_capacity(pool)
        applied = info['applied']
        click.echo(f"Pool: {info['pool_id']}")
        click.echo(f"Applied: min={applied['min_units']} max={applied['max_units']}")
        click.echo(f"Ready: {'yes' if info['ready'] else 'no'}")

    _run(ctx, _get, "getting capacity")


@capacity.command('set')
@click.argument('pool')
@click.argument('min_units', type=int)
@click.argument('max_units', type=int)
@click.pass_context
def set_capacity(ctx, pool, min_units, max_units):
    """Request a capacity target for a pool"""

    async def _set(orchestrator: CapacityOrchestrator):
        await orchestrator.set_capacity(pool, min_units, max_units)
        click.echo(f"Requested capacity for {pool}: min={min_units} max={max_units}")

    _run(ctx, _set, "setting capacity")


# Monitoring Commands
@monitor.command('health')
@click.pass_context
def system_health(ctx):
    """Show system health status"""

    async def _health(orchestrator: CapacityOrchestrator):
        health = await orchestrator.get_system_health()
        _display_system_health(health, ctx.obj['verbose'])

    _run(ctx, _health, "getting system health")


# Demo
@cli.command('demo')
@click.option('--stage-seconds', type=float, default=0.5, help='Duration of each simulated stage')
@click.option('--provisioning-delay', type=float, default=2.0, help='Seconds before requested capacity is applied')
@click.option('--fail-at-stage', type=click.Choice(['thumbnail', 'transcoding', 'analysis', 'subtitles']),
              help='Make the processed job fail in this stage')
@click.pass_context
def demo(ctx, stage_seconds, provisioning_delay, fail_at_stage):
    """Run an end-to-end demo on the simulated capacity backend"""
    ctx.obj['config'] = ctx.obj['config'].with_overrides(
        capacity_backend='simulated',
        simulated_provisioning_delay_seconds=provisioning_delay,
        stage_durations={stage: stage_seconds for stage in ('thumbnail', 'transcoding', 'analysis', 'subtitles')}
    )

    async def _demo(orchestrator: CapacityOrchestrator):
        pool_id = orchestrator.config.default_pool_id

        click.echo("Capacity Orchestrator Demo")
        click.echo("==========================")
        click.echo()

        click.echo("1. Health check...")
        health = await orchestrator.get_system_health()
        click.echo(f"   Overall status: {health['overall_status']}")
        click.echo()

        click.echo("2. Submitting jobs...")
        first_config: Dict[str, Any] = {
            "source_url": "s3://demo-bucket/videos/summer-vacation.mp4",
            "description": "Beach and mountain adventures"
        }
        if fail_at_stage:
            first_config["fail_at_stage"] = fail_at_stage
        first = await orchestrator.submit_job("Summer Vacation 2024", config=first_config)
        second = await orchestrator.submit_job("Product Demo", config={
            "source_url": "s3://demo-bucket/videos/product-demo.mp4",
            "description": "New product features walkthrough"
        })
        click.echo(f"   Created job 1: {first.job_id}")
        click.echo(f"   Created job 2: {second.job_id}")
        click.echo()

        click.echo("3. Listing all jobs...")
        _display_jobs_table(await orchestrator.list_jobs(), verbose=False)
        click.echo()

        click.echo("4. Requesting processing...")
        click.echo(f"   Scales {pool_id} up to {orchestrator.config.high_target(pool_id)}, runs the job")
        click.echo("   and scales it back to idle")
        execution_id = await orchestrator.request_processing(first.job_id)
        click.echo(f"   Execution: {execution_id}")
        click.echo()

        click.echo("5. Monitoring processing status...")
        check = 0
        while True:
            check += 1
            try:
                outcome = await orchestrator.wait_for_execution(execution_id, timeout=1.0)
                break
            except asyncio.TimeoutError:
                current = await orchestrator.get_job(first.job_id)
                click.echo(f"   Check #{check}: {current.status.value}")
        click.echo()
        _display_outcome(outcome, ctx.obj['verbose'])
        click.echo()

        click.echo("6. Capacity after processing...")
        info = await orchestrator.get_capacity(pool_id)
        click.echo(f"   Applied: min={info['applied']['min_units']} max={info['applied']['max_units']}")
        click.echo()

        click.echo("7. Filtering jobs by status...")
        for status in (JobStatus.COMPLETED, JobStatus.FAILED):
            for finished in await orchestrator.list_jobs(status):
                click.echo(f"   {finished.job_id} {finished.job_name} {status.value}")
        click.echo()

        click.echo("Demo complete!")
        return outcome

    _run(ctx, _demo, "running demo")


# Helper Functions
def _run(ctx, action: Callable[[CapacityOrchestrator], Awaitable[Any]], description: str) -> Any:
    """Start an orchestrator, run `action` against it and stop it again."""

    async def _runner():
        orchestrator = ctx.obj['orchestrator_factory'](ctx.obj['config'])
        try:
            await orchestrator.start()
            return await action(orchestrator)
        finally:
            await orchestrator.stop()

    try:
        return asyncio.run(_runner())
    except Exception as e:
        click.echo(f"Error {description}: {str(e)}", err=True)
        sys.exit(1)


def _display_job_details(job: Job, verbose: bool):
    """Display detailed job information"""
    click.echo(f"Job ID: {job.job_id}")
    click.echo(f"Name: {job.job_name}")
    click.echo(f"Pool: {job.pool_id}")
    click.echo(f"Status: {job.status.value}")
    click.echo(f"Created: {job.created_at.isoformat()}")

    if job.retry_of:
        click.echo(f"Retry of: {job.retry_of}")

    if job.started_at:
        click.echo(f"Started: {job.started_at.isoformat()}")

    if job.completed_at:
        click.echo(f"Completed: {job.completed_at.isoformat()}")

    if job.failed_at:
        click.echo(f"Failed: {job.failed_at.isoformat()}")

    if job.error:
        click.echo(f"Error: {job.error}")

    if verbose and job.config:
        click.echo("Configuration:")
        click.echo(json.dumps(job.config, indent=2))

    if verbose and job.result:
        click.echo("Result:")
        click.echo(json.dumps(job.result, indent=2))


def _display_jobs_table(jobs: list, verbose: bool):
    """Display jobs in table format"""
    if not jobs:
        click.echo("No jobs found")
        return

    # Header
    if verbose:
        click.echo(f"{'Job ID':<30} {'Name':<25} {'Status':<12} {'Pool':<20} {'Created':<20}")
        click.echo("-" * 110)
    else:
        click.echo(f"{'Job ID':<30} {'Name':<25} {'Status':<12}")
        click.echo("-" * 68)

    # Rows
    for job in jobs:
        if verbose:
            created = job.created_at.isoformat()[:19]
            click.echo(f"{job.job_id:<30} {job.job_name:<25} {job.status.value:<12} "
                       f"{job.pool_id:<20} {created:<20}")
        else:
            click.echo(f"{job.job_id:<30} {job.job_name:<25} {job.status.value:<12}")


def _display_outcome(outcome: Dict[str, Any], verbose: bool):
    """Display the outcome of an execution"""
    click.echo(f"Execution: {outcome['execution_id']}")
    click.echo(f"Outcome: {outcome['status']}")

    if outcome.get('error'):
        click.echo(f"Error: {outcome['error']}")

    result: Optional[Dict[str, Any]] = outcome.get('result')
    if result:
        if 'processing_time_ms' in result:
            click.echo(f"Processing time: {result['processing_time_ms']} ms")
        if verbose:
            click.echo(json.dumps(result, indent=2))


def _display_system_health(health: Dict[str, Any], verbose: bool):
    """Display system health information"""
    click.echo(f"Overall Status: {health['overall_status'].upper()}")

    if 'error' in health:
        click.echo(f"Error: {health['error']}")
        return

    click.echo(f"Uptime: {timedelta(seconds=int(health['uptime_seconds']))}")
    click.echo()

    click.echo("Job Store:")
    click.echo(f"  Type: {health['job_store']['type']}")
    click.echo(f"  Healthy: {health['job_store']['healthy']}")
    click.echo()

    click.echo("Jobs:")
    for status, count in health['jobs'].items():
        click.echo(f"  {status.replace('_', ' ').title()}: {count}")
    click.echo(f"  Running Executions: {health['running_executions']}")
    click.echo()

    click.echo(f"Capacity Backend: {health['capacity_backend']}")
    click.echo(f"Alarms: {len(health['alarms'])}")

    if verbose:
        for alarm in health['alarms']:
            click.echo(f"  [{alarm['alarm_type']}] {alarm['message']}")
        click.echo(f"Errors: {health['errors']['total_errors']}")


def main():
    """Main CLI entry point"""
    cli()


if __name__ == '__main__':
    main()
