"""
手动执行一次过期巡检
运行: python manage.py expire_prescriptions [--date YYYY-MM-DD]
"""
from datetime import datetime

from django.core.management.base import BaseCommand, CommandError

from fulfillment.lifecycle import expire_overdue


class Command(BaseCommand):
    help = '把 valid_until 已过、尚未发完的处方置为 expired'

    def add_arguments(self, parser):
        parser.add_argument('--date', help='以该日期为“今天”判断过期（YYYY-MM-DD），默认当天')

    def handle(self, *args, **options):
        today = None
        if options.get('date'):
            try:
                today = datetime.strptime(options['date'], '%Y-%m-%d').date()
            except ValueError:
                raise CommandError('日期格式应为 YYYY-MM-DD')

        count = expire_overdue(today=today)
        self.stdout.write(f'已过期处方: {count}')
