"""
Run the Escalation Scheduler

Escalates overdue approval stages and expires requests whose escalated
stage also ran out of time.

Usage:
    python manage.py run_escalation_scheduler            # loop forever
    python manage.py run_escalation_scheduler --once     # single sweep (cron)
    python manage.py run_escalation_scheduler --interval 30

Each request is handled in its own transaction, so the command is safe to
run again after a crash.
"""

from django.core.management.base import BaseCommand

from core.approval.escalation import EscalationScheduler


class Command(BaseCommand):
    help = 'Escalate overdue approval stages and expire lapsed requests'

    def add_arguments(self, parser):
        parser.add_argument('--once', action='store_true', help='Run a single sweep and exit')
        parser.add_argument(
            '--interval',
            type=int,
            default=None,
            help='Seconds between sweeps (default: APPROVAL_ENGINE SCHEDULER_INTERVAL_SECONDS)',
        )

    def handle(self, *args, **options):
        scheduler = EscalationScheduler()

        if options['once']:
            report = scheduler.sweep()
            self.stdout.write(self.style.SUCCESS(
                f"✓ Escalated: {len(report.escalated)}, expired: {len(report.expired)}, "
                f"failed: {len(report.failed)}, warned: {len(report.warned)}"
            ))
            return

        self.stdout.write('Starting escalation scheduler (Ctrl+C to stop)...')
        try:
            scheduler.run_forever(interval=options['interval'])
        except KeyboardInterrupt:
            self.stdout.write(self.style.WARNING('\nScheduler stopped'))
