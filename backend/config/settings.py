"""
Django settings for the KnowledgeBase backend.
"""
import os
import re
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
INSTALLED_APPS = [
    'django.contrib.contenttypes',
    'django.contrib.auth',
    'apps.authn',
    'apps.docs',
    'apps.rag',
    'apps.chat',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'apps.authn.middleware.CorsMiddleware',
    'django.middleware.common.CommonMiddleware',
]

ROOT_URLCONF = 'config.urls'

TEMPLATES = []

WSGI_APPLICATION = 'config.wsgi.application'
ASGI_APPLICATION = 'config.asgi.application'

# Database
# Every store call is bounded by a statement timeout (milliseconds)
DATABASE_TIMEOUT_MS = int(os.getenv('DATABASE_TIMEOUT_MS', '10000'))

DATABASE_URL = os.getenv('DATABASE_URL', '')
_db_match = re.match(
    r'postgres(?:ql)?://(?P<user>[^:]+):(?P<password>[^@]+)@(?P<host>[^:/]+):(?P<port>\d+)/(?P<name>.+)',
    DATABASE_URL
)
if _db_match:
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.postgresql',
            'NAME': _db_match.group('name'),
            'USER': _db_match.group('user'),
            'PASSWORD': _db_match.group('password'),
            'HOST': _db_match.group('host'),
            'PORT': _db_match.group('port'),
            'CONN_MAX_AGE': int(os.getenv('DATABASE_CONN_MAX_AGE', '300')),
            'OPTIONS': {
                'connect_timeout': 5,
                'options': f'-c statement_timeout={DATABASE_TIMEOUT_MS}',
            },
        }
    }
else:
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.sqlite3',
            'NAME': BASE_DIR / 'db.sqlite3',
            'OPTIONS': {
                'timeout': DATABASE_TIMEOUT_MS / 1000,
            },
        }
    }

# Password validation (minimal for API-only backend)
AUTH_PASSWORD_VALIDATORS = []

# Internationalization
LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

# Default primary key field type
DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# =============================================================================
# Document store
# =============================================================================
# "pgvector" or "sqlite"; defaults to the variant matching the database vendor
DOCUMENT_STORE = os.getenv(
    'DOCUMENT_STORE',
    'pgvector' if _db_match else 'sqlite',
).lower()

# Size of the vectors produced by the embedding model
EMBEDDING_DIMENSIONS = int(os.getenv('EMBEDDING_DIMENSIONS', '768'))

# =============================================================================
# Retrieval budgets
# =============================================================================
# Count budget: number of documents returned when no topK is given
RAG_DEFAULT_TOP_K = int(os.getenv('RAG_DEFAULT_TOP_K', '5'))

# Word budget: cumulative body words forwarded to the LLM when no maxWords is given
RAG_MAX_WORDS = int(os.getenv('RAG_MAX_WORDS', '512'))

# =============================================================================
# LLM provider
# =============================================================================
# "openai" (any OpenAI-compatible server) or "ollama"
LLM_PROVIDER = os.getenv('LLM_PROVIDER', 'openai').lower()

OPENAI_BASE_URL = os.getenv('OPENAI_BASE_URL', 'https://api.openai.com/v1')
OPENAI_API_KEY = os.getenv('OPENAI_API_KEY', '')
OPENAI_MODEL = os.getenv('OPENAI_MODEL', 'gpt-4o-mini')
OPENAI_EMBED_MODEL = os.getenv('OPENAI_EMBED_MODEL', 'text-embedding-3-small')
OPENAI_TIMEOUT = int(os.getenv('OPENAI_TIMEOUT', '120'))

OLLAMA_BASE_URL = os.getenv('OLLAMA_BASE_URL', 'http://ollama:11434')
OLLAMA_EMBED_MODEL = os.getenv('OLLAMA_EMBED_MODEL', 'nomic-embed-text')
OLLAMA_CHAT_MODEL = os.getenv('OLLAMA_CHAT_MODEL', 'llama3.2')

# LLM Timeout settings (in seconds) - increase for slower hardware
OLLAMA_CHAT_TIMEOUT = int(os.getenv('OLLAMA_CHAT_TIMEOUT', '600'))  # 10 min
OLLAMA_EMBED_TIMEOUT = int(os.getenv('OLLAMA_EMBED_TIMEOUT', '120'))  # 2 min

# Optional file with the system preamble sent with every RAG completion
SYSTEM_PROMPT_PATH = os.getenv('SYSTEM_PROMPT_PATH', '')

# =============================================================================
# Ingestion limits
# =============================================================================
MAX_BULK_DOCUMENTS = int(os.getenv('MAX_BULK_DOCUMENTS', '100'))

# =============================================================================
# CORS
# =============================================================================
CORS_ALLOW_ORIGIN = os.getenv('CORS_ALLOW_ORIGIN', '*')

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
