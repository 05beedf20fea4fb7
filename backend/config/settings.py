"""
Django settings for DriveChat backend.
"""
import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent

# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = os.getenv('SECRET_KEY', 'django-insecure-dev-key-change-in-production')

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = os.getenv('DEBUG', 'False').lower() in ('true', '1', 'yes')

ALLOWED_HOSTS = [
    h.strip() for h in os.getenv('ALLOWED_HOSTS', 'localhost,127.0.0.1,testserver').split(',')
]

# Application definition
# No ORM models: documents and indexes live only for the duration of a request.
INSTALLED_APPS = [
    'apps.authn',
    'apps.docs',
    'apps.rag',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.middleware.common.CommonMiddleware',
]

ROOT_URLCONF = 'config.urls'

TEMPLATES = []

WSGI_APPLICATION = 'config.wsgi.application'

# Nothing is persisted, so no database is configured.
DATABASES = {}

# Internationalization
LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

# Chat requests carry the full extracted document set in the body
DATA_UPLOAD_MAX_MEMORY_SIZE = int(os.getenv('DATA_UPLOAD_MAX_MEMORY_SIZE', 50 * 1024 * 1024))

# =============================================================================
# Session tokens (issued by the web front-end)
# =============================================================================
# The front-end owns sign-in; it forwards a signed session token as a
# Bearer header. We only verify the signature and expiry.
SESSION_SECRET = os.getenv('SESSION_SECRET', os.getenv('NEXTAUTH_SECRET', ''))
SESSION_ALGORITHMS = [
    a.strip() for a in os.getenv('SESSION_ALGORITHMS', 'HS256').split(',')
]

# =============================================================================
# Provider credentials
# =============================================================================
GEMINI_API_KEY = os.getenv('GEMINI_API_KEY', '')
OPENAI_API_KEY = os.getenv('OPENAI_API_KEY', '')
OPENAI_BASE_URL = os.getenv('OPENAI_BASE_URL', 'https://api.openai.com/v1')
ANTHROPIC_API_KEY = os.getenv('ANTHROPIC_API_KEY', '')

# Embedding models per provider
GEMINI_EMBED_MODEL = os.getenv('GEMINI_EMBED_MODEL', 'text-embedding-004')
OPENAI_EMBED_MODEL = os.getenv('OPENAI_EMBED_MODEL', 'text-embedding-3-small')

# Timeouts (in seconds). These are the only bound on request duration.
LLM_TIMEOUT = int(os.getenv('LLM_TIMEOUT', '120'))
EMBED_TIMEOUT = int(os.getenv('EMBED_TIMEOUT', '60'))
GOOGLE_API_TIMEOUT = int(os.getenv('GOOGLE_API_TIMEOUT', '30'))

# =============================================================================
# RAG pipeline
# =============================================================================
# Worker pool sizes for per-document embedding and per-query search
EMBED_MAX_WORKERS = int(os.getenv('EMBED_MAX_WORKERS', '8'))
RETRIEVAL_MAX_WORKERS = int(os.getenv('RETRIEVAL_MAX_WORKERS', '4'))

# Keyword expansion (one extra LLM call per chat request)
# Set to False to retrieve with the literal question only
ENABLE_QUERY_EXPANSION = os.getenv('ENABLE_QUERY_EXPANSION', 'True').lower() in ('true', '1', 'yes')

# =============================================================================
# Logging
# =============================================================================
LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{levelname} {asctime} {module} {message}',
            'style': '{',
        },
        'json': {
            'format': '%(message)s',  # Audit logs are already JSON
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
        'audit': {
            'class': 'logging.StreamHandler',
            'formatter': 'json',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': 'INFO',
    },
    'loggers': {
        'apps.authn': {
            'handlers': ['console'],
            'level': 'DEBUG',
            'propagate': False,
        },
        'apps.docs': {
            'handlers': ['console'],
            'level': 'DEBUG',
            'propagate': False,
        },
        'apps.rag': {
            'handlers': ['console'],
            'level': 'DEBUG',
            'propagate': False,
        },
        'audit': {
            'handlers': ['audit'],
            'level': 'INFO',
            'propagate': False,
        },
    },
}
