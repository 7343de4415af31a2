import os
from decimal import Decimal
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.getenv('DJANGO_SECRET_KEY', 'django-insecure-dev-key-change-in-production')
DEBUG = os.getenv('DEBUG', '1') == '1'
ALLOWED_HOSTS = ['*']

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'fulfillment',
]

MIDDLEWARE = [
    'fulfillment.middleware_metrics.MetricsMiddleware',
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
    'pharmacy_fill.middleware.AppExceptionMiddleware',
]

ROOT_URLCONF = 'pharmacy_fill.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.debug',
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

WSGI_APPLICATION = 'pharmacy_fill.wsgi.application'

# 有 POSTGRES_HOST 用 PostgreSQL，否则本地 SQLite（开发 / 测试）
if os.getenv('POSTGRES_HOST'):
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.postgresql',
            'NAME': os.getenv('POSTGRES_DB', 'pharmacy_db'),
            'USER': os.getenv('POSTGRES_USER', 'pharmacy_user'),
            'PASSWORD': os.getenv('POSTGRES_PASSWORD', 'pharmacy_pass'),
            'HOST': os.getenv('POSTGRES_HOST'),
            'PORT': os.getenv('POSTGRES_PORT', '5432'),
        }
    }
else:
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.sqlite3',
            'NAME': BASE_DIR / 'db.sqlite3',
        }
    }

AUTH_PASSWORD_VALIDATORS = []

LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

STATIC_URL = 'static/'

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# 日志：fulfillment 模块统一走 logging
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'standard': {
            'format': '%(asctime)s %(levelname)s %(name)s: %(message)s',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'standard',
        },
    },
    'loggers': {
        'fulfillment': {
            'handlers': ['console'],
            'level': LOG_LEVEL,
            'propagate': False,
        },
    },
}

# 发药计费
# 税率固定 10%，可通过环境变量覆盖
FULFILLMENT_TAX_RATE = Decimal(os.getenv('FULFILLMENT_TAX_RATE', '0.10'))
# 库存目录实现：django（InventoryItem 表）/ static
INVENTORY_CATALOG = os.getenv('INVENTORY_CATALOG', 'django')
# 库存候选最多返回条数
MATCH_CANDIDATE_LIMIT = int(os.getenv('MATCH_CANDIDATE_LIMIT', '10'))
# 提交时按当前库存复核 quantity_dispensed（不扣减库存）
FULFILLMENT_REVALIDATE_STOCK = os.getenv('FULFILLMENT_REVALIDATE_STOCK', '1') == '1'

# Redis（Celery broker + result backend）
REDIS_HOST = os.getenv('REDIS_HOST', 'redis')
REDIS_PORT = int(os.getenv('REDIS_PORT', '6379'))
REDIS_URL = f'redis://{REDIS_HOST}:{REDIS_PORT}/0'

# Celery
CELERY_BROKER_URL = REDIS_URL
CELERY_RESULT_BACKEND = REDIS_URL
CELERY_TIMEZONE = 'UTC'

# 过期处方巡检间隔（秒）
EXPIRY_SWEEP_SECONDS = int(os.getenv('EXPIRY_SWEEP_SECONDS', '3600'))
CELERY_BEAT_SCHEDULE = {
    'expire-overdue-prescriptions': {
        'task': 'fulfillment.tasks.expire_overdue_prescriptions_task',
        'schedule': EXPIRY_SWEEP_SECONDS,
    },
}
