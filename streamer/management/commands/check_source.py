"""
Management command to run readiness checks for a stored connection profile
"""

from django.core.management.base import BaseCommand, CommandError

from streamer.exceptions import ProfileNotFound
from streamer.handlers import StepStatus
from streamer.replication.lifecycle import ConnectorLifecycleManager


class Command(BaseCommand):
    help = 'Validate (and optionally fix) a source database for CDC'

    def add_arguments(self, parser):
        parser.add_argument('profile_id', help='Connection profile id')
        parser.add_argument(
            '--fix',
            action='store_true',
            help='Apply corrective settings for failing checks, then re-validate',
        )

    def get_manager(self):
        return ConnectorLifecycleManager()

    def handle(self, *args, **options):
        manager = self.get_manager()
        try:
            profile = manager.get_profile(options['profile_id'])
        except ProfileNotFound as e:
            raise CommandError(f'❌ {e}')

        self.stdout.write(f'Profile: {self.style.WARNING(profile.name)} ({profile.engine_type} {profile.host}:{profile.port}/{profile.database})')

        if options['fix']:
            report = manager.fix_profile(profile)
        else:
            report = manager.validate_profile(profile)

        styles = {
            StepStatus.SUCCESS: self.style.SUCCESS,
            StepStatus.WARNING: self.style.WARNING,
            StepStatus.ERROR: self.style.ERROR,
        }
        for step in report.steps:
            self.stdout.write(styles[step.status](f'  [{step.status.upper():7}] {step.step}: {step.message}'))
            if step.remediation and step.status != StepStatus.SUCCESS:
                self.stdout.write(f'            {step.remediation}')

        if report.ready:
            self.stdout.write(self.style.SUCCESS('✅ Source is ready for CDC'))
        else:
            hint = ' (run with --fix to apply corrective settings)' if report.can_fix and not options['fix'] else ''
            raise CommandError(f'❌ Source is not ready for CDC{hint}')
