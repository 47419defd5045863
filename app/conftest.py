"""
Root pytest configuration for the Django project.

This module configures pytest-django and provides project-wide fixtures.
App-specific fixtures are defined in each app's tests/conftest.py.
"""

import os

import django
import pytest

# Ensure Django settings are configured before any tests run
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")


def pytest_configure():
    """Configure Django settings before tests run."""
    django.setup()

    from django.conf import settings

    # Use fast password hasher for tests
    settings.PASSWORD_HASHERS = [
        "django.contrib.auth.hashers.MD5PasswordHasher",
    ]


def pytest_collection_modifyitems(items):
    """
    Auto-mark tests based on filename patterns.

    Mapping:
    - test_integration.py → e2e (webhook-to-notification workflows)
    - test_views.py, test_tasks.py, test_*_service.py, etc. → integration
    - test_models.py, test_signature.py, test_normalizer.py, etc. → unit
    - Unmatched files → integration (safe default for Django)

    Explicit markers on test functions/classes take precedence.
    """
    e2e_patterns = ["test_integration.py"]

    integration_patterns = [
        "test_views.py",
        "test_tasks.py",
        "test_reconciler.py",
        "test_refund_service.py",
        "test_notifications.py",
    ]

    unit_patterns = [
        "test_models.py",
        "test_serializers.py",
        "test_managers.py",
        "test_gateway_client.py",
        "test_state_transitions.py",
        "test_policy.py",
        "test_signature.py",
        "test_normalizer.py",
    ]

    for item in items:
        existing_markers = {m.name for m in item.iter_markers()}
        if existing_markers & {"unit", "integration", "e2e"}:
            continue

        filename = str(item.fspath).split("/")[-1]

        if any(pattern in filename for pattern in e2e_patterns):
            item.add_marker(pytest.mark.e2e)
        elif any(pattern in filename for pattern in integration_patterns):
            item.add_marker(pytest.mark.integration)
        elif any(pattern in filename for pattern in unit_patterns):
            item.add_marker(pytest.mark.unit)
        else:
            item.add_marker(pytest.mark.integration)


@pytest.fixture(autouse=True)
def celery_eager():
    """
    Run Celery tasks inline unless a test patches .delay().

    The configured Redis result backend is swapped for an in-memory one so
    .delay() never tries to reach a broker host during tests.
    """
    from config.celery import app as celery_app

    previous = {
        "CELERY_TASK_ALWAYS_EAGER": celery_app.conf.task_always_eager,
        "CELERY_TASK_EAGER_PROPAGATES": celery_app.conf.task_eager_propagates,
        "CELERY_TASK_IGNORE_RESULT": celery_app.conf.task_ignore_result,
        "CELERY_RESULT_BACKEND": celery_app.conf.result_backend,
    }
    celery_app.conf.update(
        CELERY_TASK_ALWAYS_EAGER=True,
        CELERY_TASK_EAGER_PROPAGATES=True,
        CELERY_TASK_IGNORE_RESULT=True,
        CELERY_RESULT_BACKEND="cache+memory://",
    )
    yield celery_app
    celery_app.conf.update(previous)


@pytest.fixture(autouse=True)
def webhook_secret(settings):
    """Known webhook secret for signature tests."""
    settings.GATEWAY_WEBHOOK_SECRET = "whsec_test_secret"
    settings.GATEWAY_WEBHOOK_SIGNATURE_HEADER = "X-Tap-Signature"
    settings.REFUND_WEBHOOK_CALLBACK_URL = ""
    return settings.GATEWAY_WEBHOOK_SECRET
